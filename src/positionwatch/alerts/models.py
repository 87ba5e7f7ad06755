"""Data models for the position alert system.

This module defines the alert key and state record owned by the alert
engine, one tagged alert variant per risk kind, and the notification
object handed to delivery channels.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..risk.tiers import CdpState, RangeStatus, RiskKind, Tier


class AlertPhase(Enum):
    """Outcome of feeding one classification to the alert engine."""

    NEW = "NEW"
    UPDATED = "UPDATED"
    UNCHANGED = "UNCHANGED"
    RESOLVED = "RESOLVED"
    INACTIVE = "INACTIVE"

    @property
    def notifies(self) -> bool:
        """Whether this phase produces an outward notification."""
        return self in (AlertPhase.NEW, AlertPhase.UPDATED)


class DeliveryStatus(Enum):
    """Notification delivery status."""

    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"  # Some channels failed
    FAILED = "failed"
    SKIPPED = "skipped"  # No delivery attempted


@dataclass(frozen=True)
class AlertKey:
    """Identity of one alert condition: (kind, protocol, owner, position id)."""

    kind: RiskKind
    protocol: str
    owner: str
    position_id: int

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.protocol}:{self.owner}:{self.position_id}"


@dataclass
class AlertRecord:
    """Stored state for one alert key.

    Attributes:
        is_active: Whether the condition is currently alerting
        signature: Hash of the tier-relevant fields while active, else None
        updated_at: Last state change
    """

    is_active: bool = False
    signature: str | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PositionAlert:
    """Fields shared by every alert variant.

    Attributes:
        chain: Chain id
        protocol: Protocol id
        owner: Owner address (lower-case)
        position_id: Trove id or LP token id
        tier: Classified tier
        label: Classifier explanation
    """

    chain: str
    protocol: str
    owner: str
    position_id: int
    tier: Tier
    label: str = ""

    kind: RiskKind = field(init=False, default=RiskKind.LIQUIDATION)

    @property
    def key(self) -> AlertKey:
        return AlertKey(
            kind=self.kind,
            protocol=self.protocol,
            owner=self.owner.lower(),
            position_id=self.position_id,
        )

    def signature_payload(self) -> dict[str, Any]:
        """Tier-relevant fields hashed for change detection."""
        return {"tier": self.tier.value}

    def headline(self) -> str:
        """One-line description used in logs and notifications."""
        return f"{self.kind.value} alert"

    def details(self) -> dict[str, Any]:
        """Variant-specific fields for notification bodies."""
        data = asdict(self)
        for name in ("chain", "protocol", "owner", "position_id", "kind", "label"):
            data.pop(name, None)
        return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


@dataclass
class LiquidationAlert(PositionAlert):
    """Liquidation-risk alert for a loan position."""

    ltv: float | None = None
    price: float | None = None
    liquidation_price: float | None = None
    buffer_fraction: float | None = None
    collateral_symbol: str | None = None

    kind: RiskKind = field(init=False, default=RiskKind.LIQUIDATION)

    def headline(self) -> str:
        return (
            f"Loan at risk of liquidation ({self.protocol}, owner={self.owner}, "
            f"position={self.position_id}, tier={self.tier.value})"
        )


@dataclass
class RedemptionAlert(PositionAlert):
    """Redemption-exposure alert for a loan position."""

    interest_rate_pct: float | None = None
    reference_rate_pct: float | None = None
    interest_delta: float | None = None
    cdp_state: CdpState = CdpState.UNKNOWN
    cdp_price: float | None = None

    kind: RiskKind = field(init=False, default=RiskKind.REDEMPTION)

    def headline(self) -> str:
        return (
            f"Redemption candidate ({self.protocol}, owner={self.owner}, "
            f"position={self.position_id}, tier={self.tier.value}, "
            f"cdp={self.cdp_state.value})"
        )


@dataclass
class RangeAlert(PositionAlert):
    """Range-drift alert for a liquidity position."""

    pair: str = ""
    fee: int | None = None
    tick_lower: int | None = None
    tick_upper: int | None = None
    current_tick: int | None = None
    previous_status: RangeStatus = RangeStatus.UNKNOWN
    current_status: RangeStatus = RangeStatus.UNKNOWN

    kind: RiskKind = field(init=False, default=RiskKind.RANGE)

    def signature_payload(self) -> dict[str, Any]:
        return {"currentStatus": self.current_status.value, "lpRangeTier": self.tier.value}

    def headline(self) -> str:
        return (
            f"LP range change ({self.protocol} {self.pair}, owner={self.owner}, "
            f"position={self.position_id}): {self.previous_status.value} -> "
            f"{self.current_status.value} (tier={self.tier.value})"
        )


@dataclass
class Notification:
    """An outward alert message.

    Attributes:
        phase: NEW or UPDATED (RESOLVED is recorded but never sent)
        kind: Risk kind
        message: Rendered message text
        metadata: The alert variant that triggered it
        timestamp: When the notification was created
    """

    phase: AlertPhase
    kind: RiskKind
    message: str
    metadata: PositionAlert
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "phase": self.phase.value,
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "chain": self.metadata.chain,
            "protocol": self.metadata.protocol,
            "owner": self.metadata.owner,
            "position_id": str(self.metadata.position_id),
            "tier": self.metadata.tier.value,
            "details": self.metadata.details(),
        }
