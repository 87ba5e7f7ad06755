"""Alert deduplication engine.

Keeps one AlertRecord per (kind, protocol, owner, position id) and decides,
on every monitoring pass, whether a classification is a new condition, an
escalation, unchanged, or resolved. Only NEW and UPDATED notify; RESOLVED
is logged and recorded but never sent.

Change detection hashes only the tier-relevant fields of each alert
variant, so metric noise within the same tier does not re-alert.
"""

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .formatter import format_alert_message
from .history import AlertHistoryStore
from .models import AlertKey, AlertPhase, AlertRecord, Notification, PositionAlert
from .state import AlertStateRepository, InMemoryAlertStateRepository

logger = logging.getLogger(__name__)

Notifier = Callable[[Notification], Awaitable[Any]]


def compute_signature(payload: dict[str, Any]) -> str:
    """SHA-256 over a canonical JSON encoding of the payload."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class AlertOutcome:
    """What the engine did with one classification."""

    phase: AlertPhase
    key: AlertKey
    notification: Notification | None = None


class AlertEngine:
    """Per-condition alert state machine.

    Args:
        repository: Alert state store (in-memory when omitted)
        notifier: Coroutine receiving NEW/UPDATED notifications
        history: Optional transition log
    """

    def __init__(
        self,
        repository: AlertStateRepository | None = None,
        notifier: Notifier | None = None,
        history: AlertHistoryStore | None = None,
    ):
        self.repository = repository or InMemoryAlertStateRepository()
        self.notifier = notifier
        self.history = history

    async def process(self, alert: PositionAlert, is_active: bool) -> AlertOutcome:
        """Feed one classification to the state machine.

        Args:
            alert: Alert variant for the position and kind
            is_active: Whether the tier meets the minimum and any gating holds

        Returns:
            AlertOutcome with the phase and the notification, if one was sent
        """
        key = alert.key
        prev = self.repository.get(key)
        was_active = prev is not None and prev.is_active

        if not is_active:
            if not was_active:
                return AlertOutcome(phase=AlertPhase.INACTIVE, key=key)

            self.repository.put(key, AlertRecord(is_active=False, signature=None))
            logger.info(f"[{alert.kind.value}] RESOLVED: {alert.headline()}")
            self._record(AlertPhase.RESOLVED, alert)
            return AlertOutcome(phase=AlertPhase.RESOLVED, key=key)

        signature = compute_signature(alert.signature_payload())

        if was_active and prev.signature == signature:
            return AlertOutcome(phase=AlertPhase.UNCHANGED, key=key)

        phase = AlertPhase.UPDATED if was_active else AlertPhase.NEW
        self.repository.put(key, AlertRecord(is_active=True, signature=signature))
        logger.warning(f"[{alert.kind.value}] {phase.value} ALERT: {alert.headline()}")

        notification = Notification(
            phase=phase,
            kind=alert.kind,
            message=format_alert_message(phase, alert),
            metadata=alert,
        )
        dispatch = await self._deliver(notification)
        self._record(phase, alert, notification.message, dispatch)

        return AlertOutcome(phase=phase, key=key, notification=notification)

    async def _deliver(self, notification: Notification) -> Any:
        """Hand the notification to the notifier; failures are logged and dropped."""
        if self.notifier is None:
            return None
        try:
            return await self.notifier(notification)
        except Exception as e:
            logger.error(f"Notification delivery failed for {notification.metadata.key}: {e}")
            return None

    def _record(
        self,
        phase: AlertPhase,
        alert: PositionAlert,
        message: str | None = None,
        dispatch: Any = None,
    ) -> None:
        if self.history is None:
            return
        try:
            self.history.save_transition(phase, alert, message, dispatch)
        except Exception as e:
            logger.error(f"Failed to record alert history for {alert.key}: {e}")

    def snapshot(self) -> list[tuple[AlertKey, AlertRecord]]:
        """Current alert state, for status queries."""
        return self.repository.items()

    def close(self) -> None:
        """Tear down the state repository."""
        self.repository.close()
