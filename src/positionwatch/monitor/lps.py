"""Liquidity position reads and summaries.

Reads Uniswap-v3 style position managers: ``positions(id)`` gives the
pair, fee and tick band; the manager's factory locates the pool whose
``slot0`` holds the current tick.
"""

import logging
from dataclasses import dataclass

from ..chain.abi import ERC20_ABI, FACTORY_ABI, POOL_ABI, POSITION_MANAGER_ABI
from ..chain.reader import ChainReader, ChainReadError
from ..risk.classifier import Classification, RiskThresholds, classify
from ..risk.tiers import RangeStatus, RiskKind
from ..risk.valuator import LpMetrics, valuate_lp
from ..scanner.store import PositionRecord

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class LpSummary:
    """Current state of one liquidity position."""

    chain: str
    protocol: str
    owner: str
    contract: str
    position_id: int
    token0: str
    token1: str
    pair: str
    fee: int
    liquidity: int
    pool_address: str | None
    metrics: LpMetrics
    range: Classification


class LpReader:
    """Builds LpSummary objects from chain reads.

    Token symbols are cached for the life of the reader.

    Args:
        readers: Chain id -> reader
        thresholds: Classifier thresholds
        ignore: Protocol -> token ids excluded from monitoring
    """

    def __init__(
        self,
        readers: dict[str, ChainReader],
        thresholds: RiskThresholds,
        ignore: dict[str, set[int]] | None = None,
    ):
        self.readers = readers
        self.thresholds = thresholds
        self.ignore = ignore or {}
        self._symbols: dict[tuple[str, str], str] = {}

    def is_ignored(self, record: PositionRecord) -> bool:
        return record.position_id in self.ignore.get(record.protocol, set())

    async def token_symbol(self, reader: ChainReader, address: str) -> str:
        """Token symbol, falling back to the address when unreadable."""
        key = (reader.chain, address.lower())
        if key in self._symbols:
            return self._symbols[key]
        try:
            symbol = str(await reader.call(address, ERC20_ABI, "symbol"))
        except ChainReadError as e:
            logger.debug(f"symbol() failed for {address}: {e}")
            return address
        self._symbols[key] = symbol
        return symbol

    async def current_tick(
        self, reader: ChainReader, manager: str, token0: str, token1: str, fee: int
    ) -> tuple[str | None, int | None]:
        """Pool address and current tick; (None, None) when the pool cannot be read."""
        try:
            factory = await reader.call(manager, POSITION_MANAGER_ABI, "factory")
            if not factory or factory.lower() == ZERO_ADDRESS:
                return None, None
            pool = await reader.call(factory, FACTORY_ABI, "getPool", token0, token1, fee)
            if not pool or pool.lower() == ZERO_ADDRESS:
                return None, None
            slot0 = await reader.call(pool, POOL_ABI, "slot0")
        except ChainReadError as e:
            logger.debug(f"Pool lookup failed for {token0}/{token1}/{fee}: {e}")
            return None, None
        return pool, int(slot0[1])

    async def summarize(self, record: PositionRecord) -> LpSummary | None:
        """Read and classify one LP position.

        Returns:
            LpSummary, or None when the position has no liquidity

        Raises:
            ChainReadError: When the position itself cannot be read
        """
        reader = self.readers.get(record.chain)
        if reader is None:
            raise ChainReadError(f"No chain reader for {record.chain}")

        position = await reader.call(
            record.contract, POSITION_MANAGER_ABI, "positions", record.position_id
        )
        token0, token1 = position[2], position[3]
        fee, tick_lower, tick_upper = int(position[4]), int(position[5]), int(position[6])
        liquidity = int(position[7])

        if liquidity == 0:
            logger.debug(f"{record.protocol} #{record.position_id}: no liquidity, skipping")
            return None

        symbol0 = await self.token_symbol(reader, token0)
        symbol1 = await self.token_symbol(reader, token1)
        pool, tick = await self.current_tick(reader, record.contract, token0, token1, fee)

        metrics = valuate_lp(tick_lower, tick_upper, tick)

        return LpSummary(
            chain=record.chain,
            protocol=record.protocol,
            owner=record.owner,
            contract=record.contract,
            position_id=record.position_id,
            token0=token0,
            token1=token1,
            pair=f"{symbol0}-{symbol1}",
            fee=fee,
            liquidity=liquidity,
            pool_address=pool,
            metrics=metrics,
            range=classify(RiskKind.RANGE, metrics, self.thresholds),
        )


def describe_lp(summary: LpSummary) -> str:
    """Compact one-line log summary."""
    m = summary.metrics
    if m.range_status == RangeStatus.UNKNOWN:
        tick_text = "current tick unknown"
    else:
        tick_text = f"tick {m.current_tick} in [{m.tick_lower}, {m.tick_upper})"
    return (
        f"{summary.protocol} {summary.pair} #{summary.position_id}: {m.range_status.value}, "
        f"{tick_text}, tier {summary.range.tier.value} ({summary.range.label})"
    )


def describe_lp_detail(summary: LpSummary) -> str:
    """Multi-line detail block for verbose logging."""
    return "\n".join(
        [
            f"LP POSITION ({summary.protocol})",
            f"  Owner:     {summary.owner}",
            f"  Chain:     {summary.chain}",
            f"  NFT:       {summary.contract}",
            f"  Token ID:  {summary.position_id}",
            f"  Pair:      {summary.pair} (fee {summary.fee})",
            f"  Pool:      {summary.pool_address or 'unknown'}",
            f"  Liquidity: {summary.liquidity}",
        ]
    )
