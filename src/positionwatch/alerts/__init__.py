"""Position Alert System.

Turns classified position risk into deduplicated notifications.

Components:
- models: Alert key, state record, alert variants, notifications
- state: Alert state repositories (in-memory, DuckDB)
- engine: Alert deduplication state machine
- formatter: Alert, heartbeat and chunked message text
- channels: Notification channel implementations
- dispatcher: Multi-channel delivery
- history: Alert transition log
"""

from .engine import AlertEngine, AlertOutcome, compute_signature
from .models import (
    AlertKey,
    AlertPhase,
    AlertRecord,
    DeliveryStatus,
    LiquidationAlert,
    Notification,
    PositionAlert,
    RangeAlert,
    RedemptionAlert,
)
from .state import AlertStateRepository, DuckDBAlertStateRepository, InMemoryAlertStateRepository

__all__ = [
    "AlertEngine",
    "AlertKey",
    "AlertOutcome",
    "AlertPhase",
    "AlertRecord",
    "AlertStateRepository",
    "DeliveryStatus",
    "DuckDBAlertStateRepository",
    "InMemoryAlertStateRepository",
    "LiquidationAlert",
    "Notification",
    "PositionAlert",
    "RangeAlert",
    "RedemptionAlert",
    "compute_signature",
]
