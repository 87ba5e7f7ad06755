"""Debt-token market price for the redemption window.

Redemptions become economically live when the debt token trades below a
trigger price. The price is read from a Uniswap-v3 style pool or taken
from configuration.
"""

import logging

from ..chain.abi import ERC20_ABI, POOL_ABI
from ..chain.reader import ChainReader, ChainReadError
from ..config import CdpConfig
from ..risk.classifier import CdpClassification, classify_cdp_state, is_finite_number

logger = logging.getLogger(__name__)


def pool_price_from_tick(tick: int, decimals0: int, decimals1: int) -> float:
    """Price of token0 in token1 units: ``1.0001^tick * 10^(dec0 - dec1)``."""
    return (1.0001**tick) * (10 ** (decimals0 - decimals1))


def orient_pool_price(price1_over0: float, symbol0: str, symbol1: str, token_symbol: str) -> float | None:
    """Express the pool price as the debt token's price.

    Returns:
        Price of the debt token, or None when neither side matches the
        symbol or the result is not a positive finite number
    """
    wanted = token_symbol.upper()
    if wanted in symbol0.upper():
        price = price1_over0
    elif wanted in symbol1.upper():
        if price1_over0 == 0:
            return None
        price = 1 / price1_over0
    else:
        logger.error(
            f"Could not identify {token_symbol} in pool (token0={symbol0}, token1={symbol1})"
        )
        return None

    if not is_finite_number(price) or price <= 0:
        return None
    return price


class CdpPriceSource:
    """Reads the debt-token price and classifies the redemption window.

    Args:
        config: CDP settings
        readers: Chain id -> reader, used in POOL mode
    """

    def __init__(self, config: CdpConfig, readers: dict[str, ChainReader]):
        self.config = config
        self.readers = readers

    async def get_price(self) -> float | None:
        """Current debt-token price in USD, or None if unavailable."""
        if self.config.price_mode == "STATIC":
            return self.config.price_usd
        return await self._pool_price()

    async def _pool_price(self) -> float | None:
        reader = self.readers.get(self.config.pool_chain)
        if reader is None:
            logger.error(f"No chain reader for CDP pool chain {self.config.pool_chain}")
            return None

        pool = self.config.pool_address
        try:
            token0 = await reader.call(pool, POOL_ABI, "token0")
            token1 = await reader.call(pool, POOL_ABI, "token1")
            slot0 = await reader.call(pool, POOL_ABI, "slot0")
        except ChainReadError as e:
            logger.error(f"Failed to read CDP pool {pool}: {e}")
            return None

        symbols = []
        decimals = []
        for token, default_symbol in ((token0, "TOKEN0"), (token1, "TOKEN1")):
            try:
                symbols.append(str(await reader.call(token, ERC20_ABI, "symbol")))
            except ChainReadError:
                symbols.append(default_symbol)
            try:
                decimals.append(int(await reader.call(token, ERC20_ABI, "decimals")))
            except ChainReadError:
                decimals.append(18)

        tick = int(slot0[1])
        price1_over0 = pool_price_from_tick(tick, decimals[0], decimals[1])
        return orient_pool_price(price1_over0, symbols[0], symbols[1], self.config.token_symbol)

    async def get_state(self) -> CdpClassification:
        """Classify the redemption window from the current price."""
        try:
            price = await self.get_price()
        except Exception as e:
            logger.error(f"CDP price lookup failed: {e}")
            price = None

        state = classify_cdp_state(price, self.config.trigger)
        logger.info(
            f"CDP {self.config.token_symbol}: price={state.price} trigger={state.trigger} "
            f"state={state.state.value} ({state.label})"
        )
        return state
