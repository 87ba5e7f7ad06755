"""Reference interest rates for redemption classification.

Rates come from a remote JSON document when configured, falling back to
static per-protocol rates from the configuration and then to
``GLOBAL_IR_<PROTOCOL>`` environment variables. All rates are percent.
"""

import logging
import math
import os
import time
from typing import Any

import httpx

from ..config import ReferenceRateConfig

logger = logging.getLogger(__name__)


class ReferenceRateFetchError(Exception):
    """Error fetching or parsing the reference-rate document."""


def parse_rate_document(data: Any) -> dict[str, float]:
    """Extract ``branch.<KEY>.interest_rate_avg`` fractions as percent.

    Raises:
        ReferenceRateFetchError: If the document has no ``branch`` object
    """
    if not isinstance(data, dict) or not isinstance(data.get("branch"), dict):
        raise ReferenceRateFetchError("reference rate document missing 'branch' object")

    rates: dict[str, float] = {}
    for branch_key, branch in data["branch"].items():
        raw = branch.get("interest_rate_avg") if isinstance(branch, dict) else None
        if raw is None:
            continue
        try:
            rates[str(branch_key).upper()] = float(raw) * 100.0
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-numeric interest_rate_avg for {branch_key}: {raw!r}")
    return rates


class ReferenceRateSource:
    """Resolves the reference rate for a protocol, with a TTL cache.

    Args:
        config: Reference-rate settings
        timeout: HTTP timeout in seconds
    """

    def __init__(self, config: ReferenceRateConfig, timeout: float = 10.0):
        self.config = config
        self.timeout = timeout
        self._cache: dict[str, float] | None = None
        self._cached_at = 0.0
        self._failed_at: float | None = None

    async def fetch_remote(self) -> dict[str, float]:
        """Fetch the remote rate document (cached for ``ttl_seconds``).

        A failed fetch is remembered for ``ttl_seconds`` as well, so callers
        fall back to static rates without repeating the request.

        Raises:
            ReferenceRateFetchError: If the request or parsing fails
        """
        now = time.monotonic()
        if self._cache is not None and now - self._cached_at < self.config.ttl_seconds:
            return self._cache
        if self._failed_at is not None and now - self._failed_at < self.config.ttl_seconds:
            raise ReferenceRateFetchError(
                f"Reference rate fetch failed {now - self._failed_at:.0f}s ago; not retrying yet"
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                logger.debug(f"Fetching reference rates from {self.config.url}")
                response = await client.get(self.config.url)
                response.raise_for_status()
                rates = parse_rate_document(response.json())
        except httpx.HTTPError as e:
            self._failed_at = now
            raise ReferenceRateFetchError(f"HTTP error fetching reference rates: {e}") from e
        except ValueError as e:
            self._failed_at = now
            raise ReferenceRateFetchError(f"Invalid reference rate response: {e}") from e

        self._cache = rates
        self._cached_at = now
        self._failed_at = None
        logger.info(f"Fetched {len(rates)} reference rates")
        return rates

    def static_rate_pct(self, protocol: str) -> float | None:
        """Static rate from configuration or ``GLOBAL_IR_<PROTOCOL>``."""
        protocol = protocol.upper()
        if protocol in self.config.static:
            return self.config.static[protocol]

        raw = os.getenv(f"GLOBAL_IR_{protocol}")
        if not raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            logger.warning(f"GLOBAL_IR_{protocol} is not a number: {raw!r}")
            return None
        return value if math.isfinite(value) else None

    async def get_rate_pct(self, protocol: str, key: str | None = None) -> float | None:
        """Reference rate for a protocol, in percent, or None if unknown.

        Args:
            protocol: Protocol id (used for static fallbacks)
            key: Branch key in the remote document (defaults to the protocol)
        """
        if self.config.url:
            try:
                rates = await self.fetch_remote()
            except ReferenceRateFetchError as e:
                logger.warning(f"{e}; falling back to static reference rates")
            else:
                rate = rates.get((key or protocol).upper())
                if rate is not None:
                    return rate

        return self.static_rate_pct(protocol)
