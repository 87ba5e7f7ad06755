"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from src.positionwatch.chain.abi import TRANSFER_TOPIC
from src.positionwatch.chain.reader import ChainReadError, address_topic
from src.positionwatch.config import parse_monitor_config
from src.positionwatch.risk.classifier import (
    LiquidationThresholds,
    RangeThresholds,
    RedemptionThresholds,
    RiskThresholds,
)

WAD = 10**18
ZERO = "0x0000000000000000000000000000000000000000"

OWNER = "0x00000000000000000000000000000000000000a1"
OTHER_OWNER = "0x00000000000000000000000000000000000000b2"
TROVE_NFT = "0x1000000000000000000000000000000000000001"
TROVE_MANAGER = "0x1000000000000000000000000000000000000002"
COLL_TOKEN = "0x1000000000000000000000000000000000000003"
PRICE_FEED = "0x1000000000000000000000000000000000000004"
POSITION_MANAGER = "0x2000000000000000000000000000000000000001"
FACTORY = "0x2000000000000000000000000000000000000002"
POOL = "0x2000000000000000000000000000000000000003"
TOKEN0 = "0x2000000000000000000000000000000000000004"
TOKEN1 = "0x2000000000000000000000000000000000000005"


class FakeChainReader:
    """In-memory stand-in for ChainReader.

    Contract calls are answered from a table keyed by (address, function,
    args); a missing entry or a stored exception raises ChainReadError.
    """

    def __init__(self, chain: str = "ETH", block_number: int = 0):
        self.chain = chain
        self.block_number: int | Exception = block_number
        self.logs: list[dict[str, Any]] = []
        self.failing_windows: set[tuple[int, int]] = set()
        self.responses: dict[tuple[str, str, tuple], Any] = {}
        self.log_queries: list[tuple[int, int]] = []
        self.calls: list[tuple[str, str, tuple]] = []

    # setup helpers

    def set_call(self, address: str, fn_name: str, *args: Any, value: Any) -> None:
        self.responses[(address.lower(), fn_name, args)] = value

    def add_transfer(self, nft: str, to: str, token_id: int, block: int, sender: str = ZERO) -> None:
        self.logs.append(
            {
                "address": nft.lower(),
                "blockNumber": block,
                "topics": [
                    TRANSFER_TOPIC,
                    address_topic(sender),
                    address_topic(to),
                    "0x" + format(token_id, "064x"),
                ],
            }
        )

    def set_owner(self, nft: str, token_id: int, owner: str) -> None:
        self.set_call(nft, "ownerOf", token_id, value=owner)

    def install_trove(
        self,
        trove_id: int,
        debt: float,
        coll: float,
        rate_pct: float,
        price: float | None,
        mcr: float = 1.1,
        status: int = 1,
        symbol: str = "WETH",
    ) -> None:
        """Register every read LoanReader makes for one trove."""
        self.set_call(TROVE_NFT, "troveManager", value=TROVE_MANAGER)
        self.set_call(TROVE_NFT, "collToken", value=COLL_TOKEN)
        self.set_call(COLL_TOKEN, "symbol", value=symbol)
        self.set_call(COLL_TOKEN, "decimals", value=18)
        self.set_call(TROVE_MANAGER, "priceFeed", value=PRICE_FEED)
        self.set_call(TROVE_MANAGER, "MCR", value=int(mcr * WAD))
        self.set_call(TROVE_MANAGER, "getTroveStatus", trove_id, value=status)
        self.set_call(
            TROVE_MANAGER,
            "getLatestTroveData",
            trove_id,
            value=(
                int(debt * WAD),
                int(coll * WAD),
                0,
                0,
                int(0.5 * WAD),
                int(debt * WAD),
                int(rate_pct / 100 * WAD),
                0,
                0,
                0,
            ),
        )
        if price is not None:
            self.set_call(PRICE_FEED, "fetchPrice", value=(int(price * WAD), True))
        else:
            self.set_call(PRICE_FEED, "fetchPrice", value=(0, False))
            self.set_call(PRICE_FEED, "lastGoodPrice", value=0)
            self.set_call(PRICE_FEED, "fetchRedemptionPrice", value=(0, False))

    def install_lp(
        self,
        token_id: int,
        tick_lower: int,
        tick_upper: int,
        current_tick: int | None,
        liquidity: int = 10**12,
        fee: int = 500,
    ) -> None:
        """Register every read LpReader makes for one position."""
        self.set_call(
            POSITION_MANAGER,
            "positions",
            token_id,
            value=(0, ZERO, TOKEN0, TOKEN1, fee, tick_lower, tick_upper, liquidity, 0, 0, 0, 0),
        )
        self.set_call(TOKEN0, "symbol", value="WETH")
        self.set_call(TOKEN1, "symbol", value="USDC")
        self.set_call(POSITION_MANAGER, "factory", value=FACTORY)
        self.set_call(FACTORY, "getPool", TOKEN0, TOKEN1, fee, value=POOL)
        self.set_tick(current_tick)

    def set_tick(self, tick: int | None) -> None:
        if tick is None:
            self.set_call(POOL, "slot0", value=ChainReadError("slot0 reverted"))
        else:
            self.set_call(POOL, "slot0", value=(0, tick, 0, 0, 0, 0, True))

    # ChainReader interface

    async def get_block_number(self) -> int:
        if isinstance(self.block_number, Exception):
            raise ChainReadError(str(self.block_number))
        return self.block_number

    async def get_logs(
        self, address: str, from_block: int, to_block: int, topics: list[str | None]
    ) -> list[dict]:
        self.log_queries.append((from_block, to_block))
        if (from_block, to_block) in self.failing_windows:
            raise ChainReadError(f"get_logs [{from_block}, {to_block}] failed")

        matched = []
        for log in self.logs:
            if log["address"] != address.lower():
                continue
            if not from_block <= log["blockNumber"] <= to_block:
                continue
            if any(t is not None and t != log["topics"][i] for i, t in enumerate(topics)):
                continue
            matched.append(log)
        return matched

    async def call(self, address: str, abi: Any, fn_name: str, *args: Any) -> Any:
        key = (address.lower(), fn_name, args)
        self.calls.append(key)
        if key not in self.responses:
            raise ChainReadError(f"{fn_name}{args} on {address}: no response")
        value = self.responses[key]
        if isinstance(value, Exception):
            raise ChainReadError(str(value))
        return value

    async def owner_of(self, nft_address: str, token_id: int) -> str:
        return str(await self.call(nft_address, None, "ownerOf", token_id)).lower()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_reader() -> FakeChainReader:
    return FakeChainReader(chain="ETH")


@pytest.fixture
def make_reader():
    """Factory for additional fake readers (e.g. a second chain)."""
    return FakeChainReader


@pytest.fixture
def thresholds() -> RiskThresholds:
    return RiskThresholds(
        liquidation=LiquidationThresholds(warn=0.30, high=0.15, crit=0.05),
        redemption=RedemptionThresholds(below_high=-1.0, below_med=-0.5, neutral_abs=0.25),
        range=RangeThresholds(edge_warn=0.10, edge_high=0.05, out_warn=0.10, out_high=0.50),
    )


@pytest.fixture
def raw_config(temp_dir) -> dict[str, Any]:
    """A complete, valid configuration mapping rooted in temp_dir."""
    return {
        "position_monitor": {
            "scan": {
                "max_log_range_blocks": 1000,
                "loan_checkpoint_path": str(temp_dir / "loan_scan_state.json"),
                "lp_checkpoint_path": str(temp_dir / "lp_scan_state.json"),
                "addresses_csv": str(temp_dir / "addresses.csv"),
            },
            "chains": {"ETH": {"rpc_env_key": "TEST_ETH_RPC_URL"}},
            "loans": {
                "contracts": [
                    {
                        "key": "troves",
                        "chain": "eth",
                        "protocol": "liquity_weth",
                        "address": TROVE_NFT,
                        "csv_file": str(temp_dir / "troves.csv"),
                        "reference_rate_key": "WETH",
                    }
                ]
            },
            "lps": {
                "contracts": [
                    {
                        "key": "uni",
                        "chain": "ETH",
                        "protocol": "UNISWAP_V3",
                        "address": POSITION_MANAGER,
                        "csv_file": str(temp_dir / "lps.csv"),
                    }
                ],
                "ignore": {"uniswap_v3": [999]},
            },
            "thresholds": {
                "liquidation": {"warn": 0.30, "high": 0.15, "crit": 0.05},
                "redemption": {"below_high": -1.0, "below_med": -0.5, "neutral_abs": 0.25},
                "range": {"edge_warn": 0.10, "edge_high": 0.05, "out_warn": 0.10, "out_high": 0.50},
            },
            "min_alert_tiers": {"liquidation": "HIGH", "redemption": "HIGH", "range": "MEDIUM"},
            "cdp": {"trigger": 1.0, "price_mode": "STATIC", "price_usd": 0.99},
            "reference_rates": {"static": {"LIQUITY_WETH": 6.0}},
        }
    }


@pytest.fixture
def monitor_config(raw_config):
    return parse_monitor_config(raw_config)


@pytest.fixture
def addrs() -> SimpleNamespace:
    """Contract and owner addresses the fake reader is wired with."""
    return SimpleNamespace(
        owner=OWNER,
        other_owner=OTHER_OWNER,
        trove_nft=TROVE_NFT,
        trove_manager=TROVE_MANAGER,
        price_feed=PRICE_FEED,
        position_manager=POSITION_MANAGER,
        factory=FACTORY,
        pool=POOL,
        token0=TOKEN0,
        token1=TOKEN1,
    )
