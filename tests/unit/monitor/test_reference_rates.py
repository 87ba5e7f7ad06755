"""Unit tests for reference interest-rate resolution."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.positionwatch.config import ReferenceRateConfig
from src.positionwatch.monitor.reference_rates import (
    ReferenceRateFetchError,
    ReferenceRateSource,
    parse_rate_document,
)

RATES_URL = "https://rates.test/v2.json"
CLIENT_PATH = "src.positionwatch.monitor.reference_rates.httpx.AsyncClient"


def _mock_client(mock_class: MagicMock, body: dict) -> AsyncMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value=body)
    mock_client = AsyncMock()
    mock_client.get = AsyncMock(return_value=response)
    mock_class.return_value.__aenter__.return_value = mock_client
    return mock_client


class TestParseRateDocument:
    def test_fractions_become_percent(self) -> None:
        doc = {
            "branch": {
                "weth": {"interest_rate_avg": "0.045"},
                "RETH": {"interest_rate_avg": 0.05},
                "broken": {"interest_rate_avg": "n/a"},
                "empty": {},
            }
        }
        rates = parse_rate_document(doc)
        assert rates == {"WETH": pytest.approx(4.5), "RETH": pytest.approx(5.0)}

    def test_missing_branch(self) -> None:
        with pytest.raises(ReferenceRateFetchError):
            parse_rate_document({"data": []})


class TestReferenceRateSource:
    """Tests for ReferenceRateSource."""

    @pytest.mark.asyncio
    async def test_remote_rate_by_key(self) -> None:
        source = ReferenceRateSource(ReferenceRateConfig(url=RATES_URL))

        with patch(CLIENT_PATH) as mock_class:
            _mock_client(mock_class, {"branch": {"WETH": {"interest_rate_avg": 0.06}}})
            rate = await source.get_rate_pct("LIQUITY_WETH", key="weth")

        assert rate == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_document_cached_within_ttl(self) -> None:
        source = ReferenceRateSource(ReferenceRateConfig(url=RATES_URL, ttl_seconds=300))

        with patch(CLIENT_PATH) as mock_class:
            mock_client = _mock_client(mock_class, {"branch": {"WETH": {"interest_rate_avg": 0.06}}})
            await source.get_rate_pct("LIQUITY_WETH", key="WETH")
            await source.get_rate_pct("LIQUITY_WETH", key="WETH")

        assert mock_client.get.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_refetches(self) -> None:
        source = ReferenceRateSource(ReferenceRateConfig(url=RATES_URL, ttl_seconds=0))

        with patch(CLIENT_PATH) as mock_class:
            mock_client = _mock_client(mock_class, {"branch": {}})
            await source.fetch_remote()
            await source.fetch_remote()

        assert mock_client.get.await_count == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_falls_back_to_static(self) -> None:
        config = ReferenceRateConfig(url=RATES_URL, static={"liquity_weth": 5.5})
        source = ReferenceRateSource(config)

        with patch(CLIENT_PATH) as mock_class:
            mock_client = _mock_client(mock_class, {})
            mock_client.get.side_effect = httpx.ConnectError("down")
            rate = await source.get_rate_pct("LIQUITY_WETH", key="WETH")

        assert rate == 5.5

    @pytest.mark.asyncio
    async def test_fetch_failure_remembered_within_ttl(self) -> None:
        config = ReferenceRateConfig(url=RATES_URL, ttl_seconds=300, static={"LIQUITY_WETH": 5.5})
        source = ReferenceRateSource(config)

        with patch(CLIENT_PATH) as mock_class:
            mock_client = _mock_client(mock_class, {})
            mock_client.get.side_effect = httpx.ConnectTimeout("timed out")
            rates = [await source.get_rate_pct("LIQUITY_WETH", key="WETH") for _ in range(3)]

        assert rates == [5.5, 5.5, 5.5]
        assert mock_client.get.await_count == 1
        with pytest.raises(ReferenceRateFetchError, match="not retrying yet"):
            await source.fetch_remote()

    @pytest.mark.asyncio
    async def test_zero_ttl_retries_after_failure(self) -> None:
        source = ReferenceRateSource(ReferenceRateConfig(url=RATES_URL, ttl_seconds=0))

        with patch(CLIENT_PATH) as mock_class:
            mock_client = _mock_client(mock_class, {"branch": {"WETH": {"interest_rate_avg": 0.06}}})
            response = mock_client.get.return_value
            mock_client.get.side_effect = [httpx.ConnectError("down"), response]

            with pytest.raises(ReferenceRateFetchError):
                await source.fetch_remote()
            rates = await source.fetch_remote()

        assert rates == {"WETH": pytest.approx(6.0)}
        assert mock_client.get.await_count == 2

    @pytest.mark.asyncio
    async def test_key_missing_from_document_falls_back(self) -> None:
        config = ReferenceRateConfig(url=RATES_URL, static={"LIQUITY_RETH": 7.0})
        source = ReferenceRateSource(config)

        with patch(CLIENT_PATH) as mock_class:
            _mock_client(mock_class, {"branch": {"WETH": {"interest_rate_avg": 0.06}}})
            rate = await source.get_rate_pct("LIQUITY_RETH", key="RETH")

        assert rate == 7.0

    @pytest.mark.asyncio
    async def test_env_fallback(self, monkeypatch) -> None:
        monkeypatch.setenv("GLOBAL_IR_LIQUITY_WSTETH", "4.25")
        source = ReferenceRateSource(ReferenceRateConfig())
        assert await source.get_rate_pct("liquity_wsteth") == 4.25

    @pytest.mark.asyncio
    async def test_static_config_beats_env(self, monkeypatch) -> None:
        monkeypatch.setenv("GLOBAL_IR_LIQUITY_WETH", "9.0")
        source = ReferenceRateSource(ReferenceRateConfig(static={"LIQUITY_WETH": 6.0}))
        assert await source.get_rate_pct("LIQUITY_WETH") == 6.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["abc", "nan", "inf"])
    async def test_unusable_env_value(self, monkeypatch, raw) -> None:
        monkeypatch.setenv("GLOBAL_IR_LIQUITY_WETH", raw)
        source = ReferenceRateSource(ReferenceRateConfig())
        assert await source.get_rate_pct("LIQUITY_WETH") is None

    @pytest.mark.asyncio
    async def test_no_source_configured(self, monkeypatch) -> None:
        monkeypatch.delenv("GLOBAL_IR_LIQUITY_WETH", raising=False)
        source = ReferenceRateSource(ReferenceRateConfig())
        assert await source.get_rate_pct("LIQUITY_WETH") is None
