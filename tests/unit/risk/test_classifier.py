"""Unit tests for the risk classifier.

Tests for:
- Liquidation tiers from the buffer fraction (boundaries land in the more severe tier)
- Redemption tiers from the interest-rate delta
- LP range tiers in and out of range
- Redemption-window (CDP) state
- Totality on missing or non-finite inputs
"""

import math
from dataclasses import replace
from types import SimpleNamespace

import pytest

from src.positionwatch.risk.classifier import (
    RangeThresholds,
    classify,
    classify_cdp_state,
    classify_liquidation,
    classify_range,
    classify_redemption,
    derive_range_status,
    is_finite_number,
)
from src.positionwatch.risk.tiers import CdpState, RangeStatus, RiskKind, Tier


class TestLiquidation:
    """Tests for classify_liquidation."""

    @pytest.mark.parametrize(
        "buffer,expected",
        [
            (0.40, Tier.LOW),
            (0.30, Tier.MEDIUM),
            (0.20, Tier.MEDIUM),
            (0.15, Tier.HIGH),
            (0.10, Tier.HIGH),
            (0.05, Tier.CRITICAL),
            (0.03, Tier.CRITICAL),
            (-0.10, Tier.CRITICAL),
        ],
    )
    def test_tiers(self, thresholds, buffer, expected) -> None:
        result = classify_liquidation(buffer, thresholds.liquidation)
        assert result.tier == expected
        assert result.value == buffer

    def test_label(self, thresholds) -> None:
        result = classify_liquidation(0.40, thresholds.liquidation)
        assert result.label == "40.00% above liquidation"

    @pytest.mark.parametrize("buffer", [None, math.nan, math.inf, "0.2", True])
    def test_unusable_buffer_is_unknown(self, thresholds, buffer) -> None:
        result = classify_liquidation(buffer, thresholds.liquidation)
        assert result.tier == Tier.UNKNOWN
        assert result.label == "no buffer / no price"

    def test_non_finite_threshold_makes_tier_unreachable(self, thresholds) -> None:
        """A NaN crit threshold never matches, so the next tier applies."""
        liq = replace(thresholds.liquidation, crit=math.nan)
        assert classify_liquidation(0.01, liq).tier == Tier.HIGH


class TestRedemption:
    """Tests for classify_redemption."""

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (-2.0, Tier.HIGH),
            (-1.0, Tier.HIGH),
            (-0.75, Tier.MEDIUM),
            (-0.5, Tier.MEDIUM),
            (-0.25, Tier.NEUTRAL),
            (0.0, Tier.NEUTRAL),
            (0.25, Tier.NEUTRAL),
            (1.5, Tier.LOW),
        ],
    )
    def test_tiers(self, thresholds, delta, expected) -> None:
        assert classify_redemption(delta, thresholds.redemption).tier == expected

    def test_label_signs(self, thresholds) -> None:
        assert classify_redemption(0.5, thresholds.redemption).label == "+0.50 pp vs reference"
        assert classify_redemption(-1.25, thresholds.redemption).label == "-1.25 pp vs reference"

    def test_no_reference_rate(self, thresholds) -> None:
        result = classify_redemption(None, thresholds.redemption)
        assert result.tier == Tier.UNKNOWN
        assert result.label == "no reference rate configured"


class TestRangeStatus:
    """Tests for derive_range_status."""

    def test_lower_bound_inclusive_upper_exclusive(self) -> None:
        assert derive_range_status(-100, 100, -100) == RangeStatus.IN_RANGE
        assert derive_range_status(-100, 100, 99) == RangeStatus.IN_RANGE
        assert derive_range_status(-100, 100, 100) == RangeStatus.OUT_OF_RANGE
        assert derive_range_status(-100, 100, -101) == RangeStatus.OUT_OF_RANGE

    def test_missing_tick(self) -> None:
        assert derive_range_status(-100, 100, None) == RangeStatus.UNKNOWN


class TestRange:
    """Tests for classify_range."""

    def test_centre_of_band_is_low(self, thresholds) -> None:
        result = classify_range(0, 1000, 500, thresholds.range)
        assert result.tier == Tier.LOW
        assert result.range_status == RangeStatus.IN_RANGE
        assert result.position_fraction == pytest.approx(0.5)
        assert result.label == "comfortably in range"

    def test_near_edge(self, thresholds) -> None:
        # 8% of the band from the upper edge
        result = classify_range(0, 1000, 920, thresholds.range)
        assert result.tier == Tier.MEDIUM
        assert result.value == pytest.approx(0.08)

    def test_very_close_to_edge(self, thresholds) -> None:
        result = classify_range(0, 1000, 30, thresholds.range)
        assert result.tier == Tier.HIGH
        assert result.label == "in range and very close to edge"

    def test_edge_boundaries_are_inclusive(self, thresholds) -> None:
        assert classify_range(0, 1000, 100, thresholds.range).tier == Tier.MEDIUM
        assert classify_range(0, 1000, 50, thresholds.range).tier == Tier.HIGH

    @pytest.mark.parametrize(
        "tick,expected",
        [
            (1050, Tier.MEDIUM),   # 5% beyond upper
            (1100, Tier.MEDIUM),   # exactly out_warn
            (1300, Tier.HIGH),
            (1500, Tier.HIGH),     # exactly out_high
            (2000, Tier.CRITICAL),
            (-600, Tier.CRITICAL),
        ],
    )
    def test_out_of_range(self, thresholds, tick, expected) -> None:
        result = classify_range(0, 1000, tick, thresholds.range)
        assert result.range_status == RangeStatus.OUT_OF_RANGE
        assert result.tier == expected

    def test_tick_not_computed(self, thresholds) -> None:
        result = classify_range(0, 1000, None, thresholds.range)
        assert result.tier == Tier.UNKNOWN
        assert result.label == "range not computed"
        assert result.range_status == RangeStatus.UNKNOWN

    @pytest.mark.parametrize("lower,upper", [(100, 100), (200, 100)])
    def test_degenerate_band(self, thresholds, lower, upper) -> None:
        result = classify_range(lower, upper, 150, thresholds.range)
        assert result.tier == Tier.UNKNOWN
        assert result.label == "invalid tick geometry"

    def test_band_width_overflow_is_unknown(self, thresholds) -> None:
        result = classify_range(-1.7e308, 1.7e308, 0, thresholds.range)
        assert result.tier == Tier.UNKNOWN
        assert result.label == "invalid tick geometry"
        assert result.range_status == RangeStatus.UNKNOWN

    def test_all_thresholds_non_finite(self) -> None:
        """Every threshold NaN: in range is LOW, out of range is CRITICAL."""
        nan = RangeThresholds(edge_warn=math.nan, edge_high=math.nan, out_warn=math.nan, out_high=math.nan)
        assert classify_range(0, 1000, 1, nan).tier == Tier.LOW
        assert classify_range(0, 1000, 1001, nan).tier == Tier.CRITICAL


class TestClassifyDispatch:
    """Tests for classify()."""

    def test_metrics_without_fields_are_unknown(self, thresholds) -> None:
        empty = SimpleNamespace()
        for kind in RiskKind:
            assert classify(kind, empty, thresholds).tier == Tier.UNKNOWN

    def test_reads_metric_fields(self, thresholds) -> None:
        metrics = SimpleNamespace(buffer_fraction=0.1, interest_delta=-2.0)
        assert classify(RiskKind.LIQUIDATION, metrics, thresholds).tier == Tier.HIGH
        assert classify(RiskKind.REDEMPTION, metrics, thresholds).tier == Tier.HIGH


class TestCdpState:
    """Tests for classify_cdp_state."""

    def test_below_trigger_is_active(self) -> None:
        result = classify_cdp_state(0.995, 1.0)
        assert result.state == CdpState.ACTIVE
        assert result.diff == pytest.approx(-0.005)
        assert result.label == "below trigger by 0.0050"

    def test_at_trigger_is_dormant(self) -> None:
        assert classify_cdp_state(1.0, 1.0).state == CdpState.DORMANT

    def test_above_trigger_is_dormant(self) -> None:
        result = classify_cdp_state(1.002, 1.0)
        assert result.state == CdpState.DORMANT
        assert result.label == "above trigger by 0.0020"

    @pytest.mark.parametrize("price", [None, math.nan])
    def test_no_price_is_unknown(self, price) -> None:
        result = classify_cdp_state(price, 1.0)
        assert result.state == CdpState.UNKNOWN
        assert result.price is None


class TestIsFiniteNumber:
    @pytest.mark.parametrize("value", [0, 1.5, -3, 10**30])
    def test_accepts(self, value) -> None:
        assert is_finite_number(value)

    @pytest.mark.parametrize("value", [None, True, "1", math.nan, -math.inf, object()])
    def test_rejects(self, value) -> None:
        assert not is_finite_number(value)
