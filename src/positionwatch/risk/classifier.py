"""Risk classification.

Maps valuation metrics to a tier per risk kind. Every function here is
total: missing or non-finite inputs produce UNKNOWN instead of raising,
and a non-finite threshold makes its tier unreachable.

All comparisons are less-than-or-equal and evaluated most-severe-first,
so a metric sitting exactly on a threshold lands in the more severe tier.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

from .tiers import CdpState, RangeStatus, RiskKind, Tier

logger = logging.getLogger(__name__)


@dataclass
class LiquidationThresholds:
    """Buffer-fraction thresholds for liquidation tiers.

    Attributes:
        warn: buffer <= warn -> MEDIUM
        high: buffer <= high -> HIGH
        crit: buffer <= crit -> CRITICAL
    """

    warn: float
    high: float
    crit: float


@dataclass
class RedemptionThresholds:
    """Interest-rate delta thresholds (percentage points) for redemption tiers.

    Attributes:
        below_high: delta <= below_high -> HIGH
        below_med: delta <= below_med -> MEDIUM
        neutral_abs: |delta| <= neutral_abs -> NEUTRAL
    """

    below_high: float
    below_med: float
    neutral_abs: float


@dataclass
class RangeThresholds:
    """Band-width fractions for LP range-drift tiers.

    Attributes:
        edge_warn: in range, distance to nearest edge <= edge_warn -> MEDIUM
        edge_high: in range, distance to nearest edge <= edge_high -> HIGH
        out_warn: out of range, distance beyond the bound <= out_warn -> MEDIUM
        out_high: out of range, distance beyond the bound <= out_high -> HIGH
    """

    edge_warn: float
    edge_high: float
    out_warn: float
    out_high: float


@dataclass
class RiskThresholds:
    """Thresholds for every risk kind."""

    liquidation: LiquidationThresholds
    redemption: RedemptionThresholds
    range: RangeThresholds


@dataclass(frozen=True)
class Classification:
    """Result of classifying one risk kind for one position.

    Attributes:
        tier: Resulting tier
        label: Human-readable explanation
        value: The metric that was tiered (buffer, delta or distance fraction)
        position_fraction: For in-range LPs, where the tick sits in the band (0..1)
        range_status: For LPs, the derived range status
    """

    tier: Tier
    label: str
    value: float | None = None
    position_fraction: float | None = None
    range_status: RangeStatus | None = None


@dataclass(frozen=True)
class CdpClassification:
    """Redemption-window state derived from the debt token's market price."""

    state: CdpState
    trigger: float
    price: float | None
    diff: float | None
    label: str


def is_finite_number(value: Any) -> bool:
    """True for real, finite numbers. Booleans and strings are rejected."""
    if value is None or isinstance(value, (bool, str)):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError, OverflowError):
        return False


def _le(value: float, threshold: Any) -> bool:
    # A non-finite threshold makes its tier unreachable.
    return is_finite_number(threshold) and value <= float(threshold)


def classify_liquidation(buffer_fraction: Any, thresholds: LiquidationThresholds) -> Classification:
    """Classify liquidation risk from the buffer fraction.

    Args:
        buffer_fraction: (price - liquidation_price) / price
        thresholds: Liquidation thresholds

    Returns:
        Classification; UNKNOWN when there is no usable buffer
    """
    if not is_finite_number(buffer_fraction):
        return Classification(tier=Tier.UNKNOWN, label="no buffer / no price")

    buffer = float(buffer_fraction)
    if _le(buffer, thresholds.crit):
        tier = Tier.CRITICAL
    elif _le(buffer, thresholds.high):
        tier = Tier.HIGH
    elif _le(buffer, thresholds.warn):
        tier = Tier.MEDIUM
    else:
        tier = Tier.LOW

    return Classification(
        tier=tier,
        label=f"{buffer * 100:.2f}% above liquidation",
        value=buffer,
    )


def classify_redemption(interest_delta: Any, thresholds: RedemptionThresholds) -> Classification:
    """Classify redemption exposure from the interest-rate delta.

    A position paying much less than the reference rate sits early in the
    redemption queue, so the most negative deltas are the most severe.

    Args:
        interest_delta: own rate minus reference rate, in percentage points
        thresholds: Redemption thresholds

    Returns:
        Classification; UNKNOWN when no reference rate is configured
    """
    if not is_finite_number(interest_delta):
        return Classification(tier=Tier.UNKNOWN, label="no reference rate configured")

    delta = float(interest_delta)
    if _le(delta, thresholds.below_high):
        tier = Tier.HIGH
    elif _le(delta, thresholds.below_med):
        tier = Tier.MEDIUM
    elif _le(abs(delta), thresholds.neutral_abs):
        tier = Tier.NEUTRAL
    else:
        tier = Tier.LOW

    sign = "+" if delta >= 0 else ""
    return Classification(
        tier=tier,
        label=f"{sign}{delta:.2f} pp vs reference",
        value=delta,
    )


def derive_range_status(tick_lower: Any, tick_upper: Any, current_tick: Any) -> RangeStatus:
    """IN_RANGE iff lower <= tick < upper; UNKNOWN without a usable tick."""
    if not all(is_finite_number(t) for t in (tick_lower, tick_upper, current_tick)):
        return RangeStatus.UNKNOWN
    if tick_lower <= current_tick < tick_upper:
        return RangeStatus.IN_RANGE
    return RangeStatus.OUT_OF_RANGE


_RANGE_LABELS = {
    (RangeStatus.IN_RANGE, Tier.LOW): "comfortably in range",
    (RangeStatus.IN_RANGE, Tier.MEDIUM): "in range but near edge",
    (RangeStatus.IN_RANGE, Tier.HIGH): "in range and very close to edge",
    (RangeStatus.OUT_OF_RANGE, Tier.MEDIUM): "slightly out of range",
    (RangeStatus.OUT_OF_RANGE, Tier.HIGH): "far out of range",
    (RangeStatus.OUT_OF_RANGE, Tier.CRITICAL): "deeply out of range",
}


def classify_range(
    tick_lower: Any,
    tick_upper: Any,
    current_tick: Any,
    thresholds: RangeThresholds,
) -> Classification:
    """Classify LP range drift from tick geometry.

    In range, the tier grows as the tick approaches either edge. Out of
    range, it grows with the distance beyond the nearest bound. Distances
    are expressed as fractions of the band width.

    Args:
        tick_lower: Lower bound (inclusive)
        tick_upper: Upper bound (exclusive)
        current_tick: Pool's current tick, or None if unreadable
        thresholds: Range thresholds

    Returns:
        Classification carrying the derived range status
    """
    if current_tick is None:
        return Classification(
            tier=Tier.UNKNOWN,
            label="range not computed",
            range_status=RangeStatus.UNKNOWN,
        )

    if not all(is_finite_number(t) for t in (tick_lower, tick_upper, current_tick)):
        return Classification(
            tier=Tier.UNKNOWN,
            label="invalid tick geometry",
            range_status=RangeStatus.UNKNOWN,
        )

    lower, upper, tick = float(tick_lower), float(tick_upper), float(current_tick)
    width = upper - lower
    if not math.isfinite(width) or width <= 0:
        return Classification(
            tier=Tier.UNKNOWN,
            label="invalid tick geometry",
            range_status=RangeStatus.UNKNOWN,
        )

    status = derive_range_status(lower, upper, tick)

    if status == RangeStatus.IN_RANGE:
        position_fraction = (tick - lower) / width
        edge_distance = min(position_fraction, 1 - position_fraction)

        if _le(edge_distance, thresholds.edge_high):
            tier = Tier.HIGH
        elif _le(edge_distance, thresholds.edge_warn):
            tier = Tier.MEDIUM
        else:
            tier = Tier.LOW

        return Classification(
            tier=tier,
            label=_RANGE_LABELS[(status, tier)],
            value=edge_distance,
            position_fraction=position_fraction,
            range_status=status,
        )

    if tick < lower:
        distance = (lower - tick) / width
    else:
        distance = (tick - upper) / width

    if _le(distance, thresholds.out_warn):
        tier = Tier.MEDIUM
    elif _le(distance, thresholds.out_high):
        tier = Tier.HIGH
    else:
        tier = Tier.CRITICAL

    return Classification(
        tier=tier,
        label=_RANGE_LABELS[(status, tier)],
        value=distance,
        range_status=status,
    )


def classify(kind: RiskKind, metrics: Any, thresholds: RiskThresholds) -> Classification:
    """Classify one risk kind from a metrics object.

    Loan metrics carry ``buffer_fraction`` and ``interest_delta``; LP metrics
    carry ``tick_lower``, ``tick_upper`` and ``current_tick``. A metrics object
    lacking the fields a kind needs classifies as UNKNOWN.
    """
    if kind == RiskKind.LIQUIDATION:
        return classify_liquidation(getattr(metrics, "buffer_fraction", None), thresholds.liquidation)
    if kind == RiskKind.REDEMPTION:
        return classify_redemption(getattr(metrics, "interest_delta", None), thresholds.redemption)
    if kind == RiskKind.RANGE:
        return classify_range(
            getattr(metrics, "tick_lower", None),
            getattr(metrics, "tick_upper", None),
            getattr(metrics, "current_tick", None),
            thresholds.range,
        )
    logger.warning(f"Unsupported risk kind: {kind}")
    return Classification(tier=Tier.UNKNOWN, label="unsupported risk kind")


def classify_cdp_state(price: Any, trigger: float) -> CdpClassification:
    """Decide whether the redemption window is economically live.

    Redemptions pay off when the debt token trades below the trigger.

    Args:
        price: Debt-token market price in USD, or None if unavailable
        trigger: Price below which redemptions become attractive

    Returns:
        CdpClassification with ACTIVE, DORMANT or UNKNOWN state
    """
    if not is_finite_number(price):
        return CdpClassification(
            state=CdpState.UNKNOWN,
            trigger=trigger,
            price=None,
            diff=None,
            label="no CDP price available",
        )

    value = float(price)
    diff = value - trigger
    state = CdpState.ACTIVE if value < trigger else CdpState.DORMANT
    if diff >= 0:
        label = f"above trigger by {diff:.4f}"
    else:
        label = f"below trigger by {abs(diff):.4f}"

    return CdpClassification(state=state, trigger=trigger, price=value, diff=diff, label=label)
