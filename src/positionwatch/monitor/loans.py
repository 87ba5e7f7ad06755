"""Loan (trove) position reads and summaries.

Reads Liquity-v2 style troves: the trove NFT points at its TroveManager
and collateral token; the manager exposes the trove data, status, price
feed and minimum collateral ratio.
"""

import logging
from dataclasses import dataclass

from ..chain.abi import (
    ERC20_ABI,
    LATEST_TROVE_DATA_FIELDS,
    PRICE_FEED_ABI,
    TROVE_MANAGER_ABI,
    TROVE_NFT_ABI,
)
from ..chain.reader import ChainReader, ChainReadError
from ..config import ContractConfig
from ..risk.classifier import Classification, RiskThresholds, classify
from ..risk.tiers import RiskKind
from ..risk.valuator import LoanMetrics, PriceSource, select_price, valuate_loan
from ..scanner.store import PositionRecord
from .reference_rates import ReferenceRateSource

logger = logging.getLogger(__name__)

WAD = 10**18

TROVE_STATUS = {
    1: "ACTIVE",
    2: "CLOSED_BY_OWNER",
    3: "CLOSED_BY_LIQUIDATION",
    4: "CLOSED_BY_REDEMPTION",
}


def trove_status_label(code: int) -> str:
    """Human label for a TroveManager status code."""
    return TROVE_STATUS.get(int(code), f"UNKNOWN({int(code)})")


def from_wad(value: int, decimals: int = 18) -> float:
    return int(value) / (10**decimals)


@dataclass
class LoanSummary:
    """Current state of one loan position."""

    chain: str
    protocol: str
    owner: str
    contract: str
    position_id: int
    status: str
    collateral_symbol: str
    accrued_interest: float
    metrics: LoanMetrics
    liquidation: Classification
    redemption: Classification
    icr: float | None = None


@dataclass
class _TroveContracts:
    trove_manager: str
    coll_token: str
    coll_symbol: str
    coll_decimals: int


class LoanReader:
    """Builds LoanSummary objects from chain reads.

    Args:
        readers: Chain id -> reader
        reference_rates: Reference interest-rate source
        thresholds: Classifier thresholds
    """

    def __init__(
        self,
        readers: dict[str, ChainReader],
        reference_rates: ReferenceRateSource,
        thresholds: RiskThresholds,
    ):
        self.readers = readers
        self.reference_rates = reference_rates
        self.thresholds = thresholds
        self._contracts: dict[tuple[str, str], _TroveContracts] = {}

    def _reader(self, chain: str) -> ChainReader:
        reader = self.readers.get(chain)
        if reader is None:
            raise ChainReadError(f"No chain reader for {chain}")
        return reader

    async def _trove_contracts(self, reader: ChainReader, nft_address: str) -> _TroveContracts:
        """TroveManager and collateral metadata for a trove NFT (cached)."""
        cache_key = (reader.chain, nft_address.lower())
        if cache_key not in self._contracts:
            trove_manager = await reader.call(nft_address, TROVE_NFT_ABI, "troveManager")
            coll_token = await reader.call(nft_address, TROVE_NFT_ABI, "collToken")
            coll_symbol = await reader.call(coll_token, ERC20_ABI, "symbol")
            coll_decimals = await reader.call(coll_token, ERC20_ABI, "decimals")
            self._contracts[cache_key] = _TroveContracts(
                trove_manager=trove_manager,
                coll_token=coll_token,
                coll_symbol=str(coll_symbol),
                coll_decimals=int(coll_decimals),
            )
        return self._contracts[cache_key]

    @staticmethod
    def price_sources(reader: ChainReader, price_feed: str) -> list[PriceSource]:
        """Collateral price strategies in priority order."""

        async def fetch_price() -> float | None:
            price, is_valid = await reader.call(price_feed, PRICE_FEED_ABI, "fetchPrice")
            return from_wad(price) if is_valid else None

        async def last_good_price() -> float | None:
            return from_wad(await reader.call(price_feed, PRICE_FEED_ABI, "lastGoodPrice"))

        async def fetch_redemption_price() -> float | None:
            price, is_valid = await reader.call(price_feed, PRICE_FEED_ABI, "fetchRedemptionPrice")
            return from_wad(price) if is_valid else None

        return [
            PriceSource("fetchPrice()", fetch_price),
            PriceSource("lastGoodPrice()", last_good_price),
            PriceSource("fetchRedemptionPrice()", fetch_redemption_price),
        ]

    async def summarize(self, record: PositionRecord, contract: ContractConfig) -> LoanSummary | None:
        """Read and classify one trove.

        Returns:
            LoanSummary, or None when the trove carries no debt

        Raises:
            ChainReadError: When a read the summary cannot do without fails
        """
        reader = self._reader(record.chain)
        trove = await self._trove_contracts(reader, record.contract)
        trove_id = record.position_id

        raw = await reader.call(trove.trove_manager, TROVE_MANAGER_ABI, "getLatestTroveData", trove_id)
        data = dict(zip(LATEST_TROVE_DATA_FIELDS, raw))
        status_code = await reader.call(trove.trove_manager, TROVE_MANAGER_ABI, "getTroveStatus", trove_id)

        debt = from_wad(data["entireDebt"])
        if debt <= 0:
            logger.debug(f"{record.protocol} #{trove_id}: no debt, skipping")
            return None

        collateral = from_wad(data["entireColl"], trove.coll_decimals)
        interest_pct = from_wad(data["annualInterestRate"]) * 100.0

        price_feed = await reader.call(trove.trove_manager, TROVE_MANAGER_ABI, "priceFeed")
        quote = await select_price(self.price_sources(reader, price_feed))
        mcr = from_wad(await reader.call(trove.trove_manager, TROVE_MANAGER_ABI, "MCR"))

        reference_pct = await self.reference_rates.get_rate_pct(
            record.protocol, contract.reference_rate_key
        )

        metrics = valuate_loan(
            collateral_amount=collateral,
            debt_amount=debt,
            min_collateral_ratio=mcr,
            price=quote,
            interest_rate_pct=interest_pct,
            reference_rate_pct=reference_pct,
        )

        icr = None
        if quote is not None:
            try:
                raw_icr = await reader.call(
                    trove.trove_manager,
                    TROVE_MANAGER_ABI,
                    "getCurrentICR",
                    trove_id,
                    int(quote.value * WAD),
                )
                icr = from_wad(raw_icr)
            except ChainReadError as e:
                logger.debug(f"{record.protocol} #{trove_id}: getCurrentICR unavailable: {e}")

        return LoanSummary(
            chain=record.chain,
            protocol=record.protocol,
            owner=record.owner,
            contract=record.contract,
            position_id=trove_id,
            status=trove_status_label(status_code),
            collateral_symbol=trove.coll_symbol,
            accrued_interest=from_wad(data["accruedInterest"]),
            metrics=metrics,
            liquidation=classify(RiskKind.LIQUIDATION, metrics, self.thresholds),
            redemption=classify(RiskKind.REDEMPTION, metrics, self.thresholds),
            icr=icr,
        )


def describe_loan(summary: LoanSummary) -> str:
    """Compact one-line log summary."""
    m = summary.metrics
    if m.price is None:
        return (
            f"{summary.protocol} #{summary.position_id} is {summary.status} but no price is "
            f"available to compute LTV / liquidation price"
        )
    return (
        f"{summary.protocol} #{summary.position_id} {summary.status}: "
        f"LTV {m.ltv * 100:.2f}%, price {m.price:.5f} ({m.price_source}), "
        f"liq {m.liquidation_price:.5f}, liquidation {summary.liquidation.tier.value} "
        f"({summary.liquidation.label}), redemption {summary.redemption.tier.value} "
        f"({summary.redemption.label})"
    )


def describe_loan_detail(summary: LoanSummary) -> str:
    """Multi-line detail block for verbose logging."""
    m = summary.metrics
    lines = [
        f"LOAN POSITION ({summary.protocol})",
        f"  Owner:            {summary.owner}",
        f"  Chain:            {summary.chain}",
        f"  NFT:              {summary.contract}",
        f"  Trove ID:         {summary.position_id}",
        f"  Collateral:       {m.collateral_amount:.6f} {summary.collateral_symbol}",
        f"  Debt (entire):    {m.debt_amount:.6f}",
        f"  Accrued interest: {summary.accrued_interest:.6f}",
        f"  Annual rate:      {m.interest_rate_pct:.2f}%",
        f"  Status:           {summary.status}",
        f"  MCR:              {m.min_collateral_ratio:.4f}",
    ]
    if m.price is not None:
        lines.append(f"  Price:            {m.price} ({m.price_source})")
    if summary.icr is not None:
        lines.append(f"  ICR:              {summary.icr:.4f}")
    return "\n".join(lines)
