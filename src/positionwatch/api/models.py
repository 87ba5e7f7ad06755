"""Pydantic response models for the status API."""

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Service liveness and last-pass summary."""

    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    pass_running: bool = Field(..., description="Whether a monitoring pass is in progress")
    last_pass_at: datetime | None = Field(None, description="When the last pass finished")
    last_pass_errors: int | None = Field(None, ge=0, description="Position errors in the last pass")


class TierResponse(BaseModel):
    tier: str = Field(..., description="Risk tier")
    label: str = Field(..., description="Classifier explanation")


class LoanStatus(BaseModel):
    """Current state of one loan position."""

    chain: str
    protocol: str
    owner: str
    position_id: str = Field(..., description="Trove id (decimal string, uint256)")
    status: str = Field(..., description="Trove status label")
    collateral_symbol: str
    collateral_amount: float = Field(..., ge=0)
    debt_amount: float = Field(..., ge=0)
    price: float | None = Field(None, description="Collateral price")
    price_source: str | None = Field(None, description="Price strategy that produced the price")
    liquidation_price: float | None = None
    ltv: float | None = Field(None, description="Loan-to-value fraction")
    interest_rate_pct: float | None = None
    reference_rate_pct: float | None = None
    liquidation: TierResponse
    redemption: TierResponse


class LpStatus(BaseModel):
    """Current state of one liquidity position."""

    chain: str
    protocol: str
    owner: str
    position_id: str = Field(..., description="Position NFT token id")
    pair: str
    fee: int = Field(..., ge=0)
    tick_lower: int
    tick_upper: int
    current_tick: int | None = None
    range_status: str = Field(..., description="IN_RANGE, OUT_OF_RANGE or UNKNOWN")
    range: TierResponse


class CdpStatus(BaseModel):
    state: str = Field(..., description="ACTIVE, DORMANT or UNKNOWN")
    price: float | None = None
    trigger: float
    label: str


class LoansResponse(BaseModel):
    loans: list[LoanStatus]
    cdp: CdpStatus | None = Field(None, description="Redemption window at the last pass")


class LpsResponse(BaseModel):
    lps: list[LpStatus]


class AlertStatus(BaseModel):
    """Stored alert state for one condition."""

    kind: str
    protocol: str
    owner: str
    position_id: str
    is_active: bool
    updated_at: datetime


class AlertsResponse(BaseModel):
    alerts: list[AlertStatus]
    active_count: int = Field(..., ge=0)
