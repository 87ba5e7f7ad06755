#!/usr/bin/env python3
"""Initialize the DuckDB alert databases with their schema.

Creates the alert history table and, when alert state persistence is
enabled, the alert state table, at the paths given in the monitor
configuration.

Usage:
    python scripts/init_alert_db.py [--config PATH] [--history-db PATH] [--state-db PATH]

Options:
    --history-db PATH    Override history.db_path
    --state-db PATH      Override alert_state.db_path (creates it even if persistence is off)
"""

import argparse
import logging
import sys
from pathlib import Path

import duckdb

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.positionwatch.alerts.history import AlertHistoryStore  # noqa: E402
from src.positionwatch.alerts.state import DuckDBAlertStateRepository  # noqa: E402
from src.positionwatch.config import ConfigError, load_monitor_config  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="[%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/monitor.yaml")


def list_tables(db_path: Path) -> list[str]:
    conn = duckdb.connect(str(db_path))
    try:
        tables = conn.execute(
            "SELECT table_name FROM information_schema.tables WHERE table_schema = 'main'"
        ).fetchall()
    finally:
        conn.close()
    return [t[0] for t in tables]


def init_history_db(db_path: Path, retention_days: int = 90) -> None:
    """Create the alert_history table."""
    logger.info(f"Creating alert history database: {db_path}")
    AlertHistoryStore(db_path, retention_days=retention_days)
    if "alert_history" in list_tables(db_path):
        logger.info("Created table: alert_history")


def init_state_db(db_path: Path) -> None:
    """Create the alert_state table."""
    logger.info(f"Creating alert state database: {db_path}")
    DuckDBAlertStateRepository(db_path).close()
    if "alert_state" in list_tables(db_path):
        logger.info("Created table: alert_state")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Initialize the alert DuckDB databases")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the monitor configuration (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--history-db", type=Path, default=None, help="Alert history database path")
    parser.add_argument("--state-db", type=Path, default=None, help="Alert state database path")

    args = parser.parse_args()

    try:
        config = load_monitor_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        init_history_db(args.history_db or Path(config.history.db_path), config.history.retention_days)
        if args.state_db or config.alert_state.persist:
            init_state_db(args.state_db or Path(config.alert_state.db_path))
        logger.info("Database initialized successfully")
        return 0
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
