"""Risk tiers, position valuation and classification."""

from .classifier import (
    CdpClassification,
    Classification,
    LiquidationThresholds,
    RangeThresholds,
    RedemptionThresholds,
    RiskThresholds,
    classify,
    classify_cdp_state,
    classify_liquidation,
    classify_range,
    classify_redemption,
)
from .tiers import CdpState, RangeStatus, RiskKind, Tier, is_tier_at_least, parse_tier
from .valuator import LoanMetrics, LpMetrics, PriceQuote, PriceSource, select_price, valuate_loan, valuate_lp

__all__ = [
    "CdpClassification",
    "CdpState",
    "Classification",
    "LiquidationThresholds",
    "LoanMetrics",
    "LpMetrics",
    "PriceQuote",
    "PriceSource",
    "RangeStatus",
    "RangeThresholds",
    "RedemptionThresholds",
    "RiskKind",
    "RiskThresholds",
    "Tier",
    "classify",
    "classify_cdp_state",
    "classify_liquidation",
    "classify_range",
    "classify_redemption",
    "is_tier_at_least",
    "parse_tier",
    "select_price",
    "valuate_loan",
    "valuate_lp",
]
