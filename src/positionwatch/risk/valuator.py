"""Position valuation.

Derives risk metrics from raw on-chain reads. The ``valuate_*`` functions
are pure; chain reads happen before they are called. Price selection is
modelled as an ordered list of strategies, the first validated quote wins.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from .classifier import derive_range_status, is_finite_number
from .tiers import RangeStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    """A validated collateral price and where it came from."""

    value: float
    source: str


@dataclass(frozen=True)
class PriceSource:
    """One price strategy.

    Attributes:
        name: Source name recorded on the resulting quote
        fetch: Coroutine returning a raw price (or None when the source has none)
    """

    name: str
    fetch: Callable[[], Awaitable[float | None]]


async def select_price(sources: Sequence[PriceSource]) -> PriceQuote | None:
    """Try each price source in order and return the first usable quote.

    A source is usable when it returns a finite, strictly positive value.
    Failures are logged and the next source is tried.

    Returns:
        PriceQuote, or None when no source yields a valid price
    """
    for source in sources:
        try:
            raw = await source.fetch()
        except Exception as e:
            logger.debug(f"Price source {source.name} failed: {e}")
            continue

        if is_finite_number(raw) and float(raw) > 0:
            return PriceQuote(value=float(raw), source=source.name)

        logger.debug(f"Price source {source.name} returned no usable value ({raw!r})")

    return None


@dataclass(frozen=True)
class LoanMetrics:
    """Derived metrics for a loan position.

    Price-dependent fields are None when no price quote was available.
    ``interest_delta`` is None when no reference rate is configured.
    """

    collateral_amount: float
    debt_amount: float
    min_collateral_ratio: float
    liquidation_price: float
    price: float | None = None
    price_source: str | None = None
    collateral_value: float | None = None
    ltv: float | None = None
    buffer_fraction: float | None = None
    interest_rate_pct: float | None = None
    reference_rate_pct: float | None = None
    interest_delta: float | None = None


@dataclass(frozen=True)
class LpMetrics:
    """Derived metrics for a liquidity position.

    ``position_fraction`` is set only in range, ``distance_fraction`` only
    out of range.
    """

    tick_lower: int
    tick_upper: int
    current_tick: int | None
    range_status: RangeStatus
    position_fraction: float | None = None
    distance_fraction: float | None = None


def valuate_loan(
    collateral_amount: float,
    debt_amount: float,
    min_collateral_ratio: float,
    price: PriceQuote | None,
    interest_rate_pct: float | None = None,
    reference_rate_pct: float | None = None,
) -> LoanMetrics:
    """Compute loan metrics.

    Args:
        collateral_amount: Collateral in token units
        debt_amount: Debt in debt-token units (including accrued interest)
        min_collateral_ratio: Ratio below which the loan is liquidatable (e.g. 1.1)
        price: Collateral price quote, or None if no source produced one
        interest_rate_pct: Annual rate the position pays, in percent
        reference_rate_pct: Reference rate for the same collateral branch, in percent

    Returns:
        LoanMetrics
    """
    if collateral_amount > 0:
        liquidation_price = debt_amount * min_collateral_ratio / collateral_amount
    else:
        liquidation_price = 0.0

    interest_delta = None
    if is_finite_number(interest_rate_pct) and is_finite_number(reference_rate_pct):
        interest_delta = float(interest_rate_pct) - float(reference_rate_pct)

    if price is None:
        return LoanMetrics(
            collateral_amount=collateral_amount,
            debt_amount=debt_amount,
            min_collateral_ratio=min_collateral_ratio,
            liquidation_price=liquidation_price,
            interest_rate_pct=interest_rate_pct,
            reference_rate_pct=reference_rate_pct,
            interest_delta=interest_delta,
        )

    collateral_value = collateral_amount * price.value
    ltv = debt_amount / collateral_value if collateral_value > 0 else 0.0
    buffer_fraction = (price.value - liquidation_price) / price.value if price.value > 0 else None

    return LoanMetrics(
        collateral_amount=collateral_amount,
        debt_amount=debt_amount,
        min_collateral_ratio=min_collateral_ratio,
        liquidation_price=liquidation_price,
        price=price.value,
        price_source=price.source,
        collateral_value=collateral_value,
        ltv=ltv,
        buffer_fraction=buffer_fraction,
        interest_rate_pct=interest_rate_pct,
        reference_rate_pct=reference_rate_pct,
        interest_delta=interest_delta,
    )


def valuate_lp(tick_lower: int, tick_upper: int, current_tick: int | None) -> LpMetrics:
    """Compute range metrics for a liquidity position.

    Args:
        tick_lower: Lower tick bound (inclusive)
        tick_upper: Upper tick bound (exclusive)
        current_tick: Pool's current tick, or None when the pool could not be read

    Returns:
        LpMetrics
    """
    status = derive_range_status(tick_lower, tick_upper, current_tick)
    if status == RangeStatus.UNKNOWN:
        return LpMetrics(
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            current_tick=current_tick,
            range_status=status,
        )

    width = tick_upper - tick_lower
    if not is_finite_number(width) or width <= 0:
        return LpMetrics(
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            current_tick=current_tick,
            range_status=RangeStatus.UNKNOWN,
        )

    if status == RangeStatus.IN_RANGE:
        return LpMetrics(
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            current_tick=current_tick,
            range_status=status,
            position_fraction=(current_tick - tick_lower) / width,
        )

    if current_tick < tick_lower:
        distance = (tick_lower - current_tick) / width
    else:
        distance = (current_tick - tick_upper) / width

    return LpMetrics(
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        current_tick=current_tick,
        range_status=status,
        distance_fraction=distance,
    )
