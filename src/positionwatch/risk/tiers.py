"""Risk tier vocabulary.

Each risk kind has its own ordered tier set. UNKNOWN belongs to every
set but sits outside the ordering: it never satisfies a minimum-tier test.
"""

from enum import Enum


class RiskKind(Enum):
    """Kinds of risk tracked per position."""

    LIQUIDATION = "liquidation"
    REDEMPTION = "redemption"
    RANGE = "range"


class Tier(str, Enum):
    """Ordinal severity label produced by the classifier."""

    LOW = "LOW"
    NEUTRAL = "NEUTRAL"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"


# Least to most severe. UNKNOWN is deliberately absent.
TIER_ORDER: dict[RiskKind, tuple[Tier, ...]] = {
    RiskKind.LIQUIDATION: (Tier.LOW, Tier.MEDIUM, Tier.HIGH, Tier.CRITICAL),
    RiskKind.REDEMPTION: (Tier.LOW, Tier.NEUTRAL, Tier.MEDIUM, Tier.HIGH),
    RiskKind.RANGE: (Tier.LOW, Tier.MEDIUM, Tier.HIGH, Tier.CRITICAL),
}


class RangeStatus(str, Enum):
    """Where the pool's current tick sits relative to a position's band."""

    IN_RANGE = "IN_RANGE"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    UNKNOWN = "UNKNOWN"


class CdpState(str, Enum):
    """Whether redemptions are currently economically attractive."""

    ACTIVE = "ACTIVE"
    DORMANT = "DORMANT"
    UNKNOWN = "UNKNOWN"


def tier_rank(kind: RiskKind, tier: Tier) -> int | None:
    """Position of ``tier`` in the ordering for ``kind``, or None if unranked."""
    try:
        return TIER_ORDER[kind].index(tier)
    except ValueError:
        return None


def is_tier_at_least(kind: RiskKind, tier: Tier, minimum: Tier) -> bool:
    """Check whether ``tier`` meets or exceeds ``minimum`` for a risk kind.

    UNKNOWN (or any tier outside the kind's set) never satisfies the test,
    and an unranked minimum can never be met.
    """
    rank = tier_rank(kind, tier)
    min_rank = tier_rank(kind, minimum)
    if rank is None or min_rank is None:
        return False
    return rank >= min_rank


def parse_tier(kind: RiskKind, raw: str) -> Tier:
    """Parse a configured minimum tier name for a risk kind.

    Raises:
        ValueError: If the name is not a ranked tier of that kind.
    """
    name = str(raw).strip().upper()
    allowed = TIER_ORDER[kind]
    for tier in allowed:
        if tier.value == name:
            return tier
    raise ValueError(
        f"{kind.value} tier must be one of {[t.value for t in allowed]}, got '{raw}'"
    )
