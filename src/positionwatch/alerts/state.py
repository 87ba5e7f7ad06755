"""Alert state repositories.

The alert engine owns one repository instance. The default keeps state in
process memory, so a restart forgets which conditions were already
notified. The DuckDB repository keeps it across restarts.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import duckdb

from ..risk.tiers import RiskKind
from .models import AlertKey, AlertRecord

logger = logging.getLogger(__name__)


class AlertStateRepository(ABC):
    """Keyed store of AlertRecord values."""

    @abstractmethod
    def get(self, key: AlertKey) -> AlertRecord | None:
        """Stored record for ``key``, or None if never recorded."""
        ...

    @abstractmethod
    def put(self, key: AlertKey, record: AlertRecord) -> None:
        """Insert or replace the record for ``key``."""
        ...

    @abstractmethod
    def items(self) -> list[tuple[AlertKey, AlertRecord]]:
        """Snapshot of every stored record."""
        ...

    def active_items(self) -> list[tuple[AlertKey, AlertRecord]]:
        return [(key, record) for key, record in self.items() if record.is_active]

    def close(self) -> None:
        """Release resources held by the repository."""


class InMemoryAlertStateRepository(AlertStateRepository):
    """Process-local alert state."""

    def __init__(self) -> None:
        self._records: dict[AlertKey, AlertRecord] = {}

    def get(self, key: AlertKey) -> AlertRecord | None:
        return self._records.get(key)

    def put(self, key: AlertKey, record: AlertRecord) -> None:
        self._records[key] = record

    def items(self) -> list[tuple[AlertKey, AlertRecord]]:
        return list(self._records.items())

    def close(self) -> None:
        self._records.clear()


class DuckDBAlertStateRepository(AlertStateRepository):
    """Alert state persisted in DuckDB.

    Position ids are stored as text because trove ids span the full
    uint256 range.
    """

    def __init__(self, db_path: Path | str):
        """Initialize the repository.

        Args:
            db_path: Path to DuckDB database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database table if it doesn't exist."""
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alert_state (
                    kind VARCHAR NOT NULL,
                    protocol VARCHAR NOT NULL,
                    owner VARCHAR NOT NULL,
                    position_id VARCHAR NOT NULL,
                    is_active BOOLEAN NOT NULL,
                    signature VARCHAR,
                    updated_at TIMESTAMP WITH TIME ZONE,
                    PRIMARY KEY (kind, protocol, owner, position_id)
                )
            """)
        finally:
            conn.close()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get a database connection."""
        return duckdb.connect(str(self.db_path))

    def get(self, key: AlertKey) -> AlertRecord | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT is_active, signature, updated_at
                FROM alert_state
                WHERE kind = ? AND protocol = ? AND owner = ? AND position_id = ?
            """,
                [key.kind.value, key.protocol, key.owner, str(key.position_id)],
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        return AlertRecord(is_active=bool(row[0]), signature=row[1], updated_at=row[2])

    def put(self, key: AlertKey, record: AlertRecord) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO alert_state
                    (kind, protocol, owner, position_id, is_active, signature, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                [
                    key.kind.value,
                    key.protocol,
                    key.owner,
                    str(key.position_id),
                    record.is_active,
                    record.signature,
                    record.updated_at,
                ],
            )
        finally:
            conn.close()

    def items(self) -> list[tuple[AlertKey, AlertRecord]]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT kind, protocol, owner, position_id, is_active, signature, updated_at
                FROM alert_state
                ORDER BY kind, protocol, owner, position_id
            """
            ).fetchall()
        finally:
            conn.close()

        return [
            (
                AlertKey(
                    kind=RiskKind(row[0]),
                    protocol=row[1],
                    owner=row[2],
                    position_id=int(row[3]),
                ),
                AlertRecord(is_active=bool(row[4]), signature=row[5], updated_at=row[6]),
            )
            for row in rows
        ]

    def close(self) -> None:
        logger.info(f"Alert state kept in {self.db_path}")
