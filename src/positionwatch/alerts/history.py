"""Alert history logging to DuckDB.

Every NEW, UPDATED and RESOLVED transition is appended to a table for
auditing and the status front-end.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import duckdb

from .dispatcher import DispatchResult
from .models import AlertPhase, DeliveryStatus, PositionAlert

logger = logging.getLogger(__name__)


@dataclass
class AlertHistoryEntry:
    """One stored alert transition."""

    id: int
    timestamp: datetime
    phase: str
    kind: str
    chain: str
    protocol: str
    owner: str
    position_id: str
    tier: str
    label: str | None
    message: str | None
    channels_sent: list[str]
    delivery_status: str
    error_message: str | None


class AlertHistoryStore:
    """Stores alert transitions in DuckDB.

    Features:
    - Persistent storage of all transitions
    - Retention policy (cleanup of old rows)
    - Query methods for the status front-end
    """

    def __init__(self, db_path: Path | str, retention_days: int = 90):
        """Initialize the history store.

        Args:
            db_path: Path to DuckDB database file
            retention_days: Number of days to retain alerts
        """
        self.db_path = Path(db_path)
        self.retention_days = retention_days
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database table if it doesn't exist."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS alert_history (
                    id INTEGER PRIMARY KEY,
                    timestamp TIMESTAMP WITH TIME ZONE,
                    phase VARCHAR,
                    kind VARCHAR,
                    chain VARCHAR,
                    protocol VARCHAR,
                    owner VARCHAR,
                    position_id VARCHAR,
                    tier VARCHAR,
                    label VARCHAR,
                    message VARCHAR,
                    channels_sent VARCHAR,
                    delivery_status VARCHAR,
                    error_message VARCHAR
                )
            """)
            cursor.execute("""
                CREATE SEQUENCE IF NOT EXISTS alert_history_id_seq START 1
            """)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get a database connection."""
        return duckdb.connect(str(self.db_path))

    def save_transition(
        self,
        phase: AlertPhase,
        alert: PositionAlert,
        message: str | None = None,
        dispatch: DispatchResult | None = None,
    ) -> int:
        """Save an alert transition to history.

        Args:
            phase: NEW, UPDATED or RESOLVED
            alert: Alert variant
            message: Rendered notification text, if one was sent
            dispatch: Delivery outcome, if a notification was sent

        Returns:
            The assigned row ID
        """
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            alert_id = cursor.execute("SELECT nextval('alert_history_id_seq')").fetchone()[0]

            cursor.execute(
                """
                INSERT INTO alert_history (
                    id, timestamp, phase, kind, chain, protocol, owner,
                    position_id, tier, label, message, channels_sent,
                    delivery_status, error_message
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                [
                    alert_id,
                    datetime.now(timezone.utc),
                    phase.value,
                    alert.kind.value,
                    alert.chain,
                    alert.protocol,
                    alert.owner,
                    str(alert.position_id),
                    alert.tier.value,
                    alert.label,
                    message,
                    ",".join(dispatch.channels_sent) if dispatch else "",
                    dispatch.delivery_status.value if dispatch else DeliveryStatus.SKIPPED.value,
                    dispatch.error_message if dispatch else None,
                ],
            )
            conn.commit()

            logger.debug(f"Saved alert transition {alert_id} ({phase.value} {alert.key})")
            return alert_id
        finally:
            conn.close()

    def get_recent_alerts(self, limit: int = 100) -> list[AlertHistoryEntry]:
        """Get recent transitions, most recent first."""
        conn = self._get_connection()
        try:
            results = conn.execute(
                """
                SELECT id, timestamp, phase, kind, chain, protocol, owner,
                       position_id, tier, label, message, channels_sent,
                       delivery_status, error_message
                FROM alert_history
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
            """,
                [limit],
            ).fetchall()
        finally:
            conn.close()

        return [
            AlertHistoryEntry(
                id=row[0],
                timestamp=row[1],
                phase=row[2],
                kind=row[3],
                chain=row[4],
                protocol=row[5],
                owner=row[6],
                position_id=row[7],
                tier=row[8],
                label=row[9],
                message=row[10],
                channels_sent=row[11].split(",") if row[11] else [],
                delivery_status=row[12],
                error_message=row[13],
            )
            for row in results
        ]

    def cleanup_old_alerts(self) -> int:
        """Remove transitions older than the retention period.

        Returns:
            Number of rows deleted
        """
        conn = self._get_connection()
        try:
            cursor = conn.cursor()

            cutoff = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
            cutoff = cutoff - timedelta(days=self.retention_days)

            count_before = cursor.execute(
                "SELECT COUNT(*) FROM alert_history WHERE timestamp < ?",
                [cutoff],
            ).fetchone()[0]

            cursor.execute("DELETE FROM alert_history WHERE timestamp < ?", [cutoff])
            conn.commit()

            if count_before > 0:
                logger.info(f"Cleaned up {count_before} old alerts")

            return count_before
        finally:
            conn.close()

    def get_alert_count(self, since: datetime | None = None) -> int:
        """Get count of stored transitions, optionally since a timestamp."""
        conn = self._get_connection()
        try:
            if since:
                result = conn.execute(
                    "SELECT COUNT(*) FROM alert_history WHERE timestamp >= ?",
                    [since],
                ).fetchone()
            else:
                result = conn.execute("SELECT COUNT(*) FROM alert_history").fetchone()
            return result[0]
        finally:
            conn.close()
