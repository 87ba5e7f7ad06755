#!/usr/bin/env python3
"""Run the position monitor: periodic risk passes plus heartbeat summaries.

One monitoring pass runs at startup, then every ``schedule.interval_seconds``.
A heartbeat summary of all positions is sent every
``schedule.heartbeat_interval_hours`` (0 disables it). SIGINT/SIGTERM stop
the loop after the current pass.

Usage:
    python scripts/run_monitor.py [--config PATH] [--once] [--api-port PORT]

Examples:
    # Foreground service
    python scripts/run_monitor.py --config config/monitor.yaml

    # Single pass (cron-friendly)
    python scripts/run_monitor.py --once

    # With the read-only status API on port 8080
    python scripts/run_monitor.py --api-port 8080
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
import time
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.positionwatch.alerts.dispatcher import AlertDispatcher, build_channels  # noqa: E402
from src.positionwatch.alerts.engine import AlertEngine  # noqa: E402
from src.positionwatch.alerts.history import AlertHistoryStore  # noqa: E402
from src.positionwatch.alerts.state import (  # noqa: E402
    AlertStateRepository,
    DuckDBAlertStateRepository,
    InMemoryAlertStateRepository,
)
from src.positionwatch.api.main import create_app  # noqa: E402
from src.positionwatch.chain.providers import build_readers  # noqa: E402
from src.positionwatch.config import ConfigError, MonitorConfig, load_monitor_config  # noqa: E402
from src.positionwatch.monitor.service import MonitoringService  # noqa: E402
from src.positionwatch.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger("run_monitor")

DEFAULT_CONFIG_PATH = Path("config/monitor.yaml")


def build_service(config: MonitorConfig) -> MonitoringService:
    """Wire readers, alert state, history and delivery into a MonitoringService."""
    readers = build_readers(config.chains)
    dispatcher = AlertDispatcher(build_channels(config.channels))

    repository: AlertStateRepository
    if config.alert_state.persist:
        repository = DuckDBAlertStateRepository(config.alert_state.db_path)
        logger.info(f"Alert state persisted in {config.alert_state.db_path}")
    else:
        repository = InMemoryAlertStateRepository()

    history = None
    if config.history.enabled:
        history = AlertHistoryStore(config.history.db_path, config.history.retention_days)

    engine = AlertEngine(repository=repository, notifier=dispatcher.notify, history=history)
    return MonitoringService(config, readers, engine, dispatcher=dispatcher)


class MonitorRunner:
    """Scheduling loop around a MonitoringService."""

    def __init__(self, service: MonitoringService, interval_seconds: int, heartbeat_hours: float):
        self.service = service
        self.interval_seconds = interval_seconds
        self.heartbeat_seconds = heartbeat_hours * 3600
        self._stop = asyncio.Event()
        self._last_heartbeat: float | None = None

    def stop(self) -> None:
        logger.info("Stop signal received")
        self._stop.set()

    def heartbeat_due(self, now: float) -> bool:
        if self.heartbeat_seconds <= 0:
            return False
        return self._last_heartbeat is None or now - self._last_heartbeat >= self.heartbeat_seconds

    async def tick(self) -> None:
        try:
            await self.service.run_pass()
        except Exception as e:
            logger.error(f"Monitoring pass failed: {e}")

        now = time.monotonic()
        if self.heartbeat_due(now):
            self._last_heartbeat = now
            try:
                await self.service.send_heartbeat()
            except Exception as e:
                logger.error(f"Heartbeat failed: {e}")

        history = self.service.engine.history
        if history is not None:
            try:
                history.cleanup_old_alerts()
            except Exception as e:
                logger.error(f"Alert history cleanup failed: {e}")

    async def run(self) -> None:
        logger.info(
            f"Monitor started: pass every {self.interval_seconds}s, "
            f"heartbeat every {self.heartbeat_seconds / 3600:g}h"
        )
        while not self._stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass


async def serve_api(service: MonitoringService, port: int) -> None:
    server = uvicorn.Server(uvicorn.Config(create_app(service), host="0.0.0.0", port=port, log_config=None))
    await server.serve()


async def run(args: argparse.Namespace, config: MonitorConfig) -> None:
    service = build_service(config)
    runner = MonitorRunner(
        service,
        interval_seconds=args.interval or config.schedule.interval_seconds,
        heartbeat_hours=config.schedule.heartbeat_interval_hours,
    )

    try:
        if args.once:
            await service.run_pass()
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, runner.stop)

        api_task = None
        if args.api_port:
            api_task = asyncio.create_task(serve_api(service, args.api_port))

        await runner.run()

        if api_task is not None:
            api_task.cancel()
            try:
                with contextlib.suppress(asyncio.CancelledError):
                    await api_task
            except Exception as e:
                logger.error(f"Status API stopped with an error: {e}")
    finally:
        service.close()
        logger.info("Shutdown complete")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Monitor loan and LP positions and send risk alerts")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the monitor configuration (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Override schedule.interval_seconds",
    )
    parser.add_argument("--api-port", type=int, default=None, help="Serve the status API on this port")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    try:
        config = load_monitor_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        logging.basicConfig(level=logging.ERROR, format="[%(levelname)s] %(message)s")
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging("DEBUG" if args.debug else config.logging.level, config.logging.file)

    try:
        asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    return 0


if __name__ == "__main__":
    sys.exit(main())
