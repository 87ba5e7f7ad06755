#!/usr/bin/env python3
"""Discover loan and LP position NFTs held by the configured owners.

Scans Transfer logs of every configured position contract from its
checkpoint (or bootstrap block) to the current head, confirms current
ownership, appends new positions to the per-contract CSV files and
advances the checkpoint.

Usage:
    python scripts/discover_positions.py [--config PATH] [CONTRACT_KEY ...]

Examples:
    # Scan every configured contract
    python scripts/discover_positions.py

    # Only the trove NFTs of one protocol
    python scripts/discover_positions.py liquity_weth_troves
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.positionwatch.chain.providers import build_readers  # noqa: E402
from src.positionwatch.config import ConfigError, ContractConfig, MonitorConfig, load_monitor_config  # noqa: E402
from src.positionwatch.scanner.checkpoint import open_checkpoints  # noqa: E402
from src.positionwatch.scanner.scanner import ContractScanResult, PositionScanner  # noqa: E402
from src.positionwatch.scanner.store import load_address_book  # noqa: E402
from src.positionwatch.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger("discover_positions")

DEFAULT_CONFIG_PATH = Path("config/monitor.yaml")


def select_contracts(config: MonitorConfig, keys: list[str]) -> list[ContractConfig]:
    """Contracts to scan; every configured one when no keys are given.

    Raises:
        ConfigError: If a key is not configured
    """
    contracts = config.all_contracts()
    if not keys:
        return contracts

    by_key = {c.key: c for c in contracts}
    unknown = [k for k in keys if k not in by_key]
    if unknown:
        raise ConfigError(f"Unknown contract key(s): {unknown}. Valid keys: {sorted(by_key)}")
    return [by_key[k] for k in keys]


async def run_discovery(config: MonitorConfig, contracts: list[ContractConfig]) -> list[ContractScanResult]:
    owners = load_address_book(config.scan.addresses_csv)
    logger.info(f"Loaded {len(owners)} owner addresses from {config.scan.addresses_csv}")

    checkpoints = open_checkpoints(config.scan)

    readers = build_readers(config.chains)
    scanner = PositionScanner(
        readers,
        window_size=config.scan.max_log_range_blocks,
        owner_concurrency=config.scan.owner_concurrency,
    )

    results = []
    for contract in contracts:
        logger.info(f"=== {contract.key} ({contract.chain}/{contract.protocol}) ===")
        results.append(await scanner.scan_contract(contract, owners, checkpoints[contract.section]))
    return results


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Discover position NFTs held by configured owners")
    parser.add_argument(
        "contracts",
        nargs="*",
        help="Contract keys to scan (default: all configured contracts)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the monitor configuration (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    try:
        config = load_monitor_config(args.config)
        contracts = select_contracts(config, args.contracts)
    except (ConfigError, FileNotFoundError) as e:
        logging.basicConfig(level=logging.ERROR, format="[%(levelname)s] %(message)s")
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging("DEBUG" if args.debug else config.logging.level, config.logging.file)

    results = asyncio.run(run_discovery(config, contracts))

    total_new = sum(r.appended for r in results)
    total_failed = sum(r.failed_windows for r in results)
    logger.info(f"Discovery complete: {total_new} new positions, {total_failed} failed windows")
    return 0


if __name__ == "__main__":
    sys.exit(main())
