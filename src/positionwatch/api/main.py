"""FastAPI application exposing read-only position status.

The app wraps a running MonitoringService. Loan and LP endpoints read
positions fresh from chain through the same summary builders the
heartbeat uses; they never touch alert state.
"""

import logging

from fastapi import FastAPI, Query, Request

from ..alerts.models import AlertKey, AlertRecord
from ..monitor.loans import LoanSummary
from ..monitor.lps import LpSummary
from ..monitor.service import MonitoringService
from ..risk.classifier import CdpClassification, Classification
from .models import (
    AlertsResponse,
    AlertStatus,
    CdpStatus,
    HealthResponse,
    LoansResponse,
    LoanStatus,
    LpsResponse,
    LpStatus,
    TierResponse,
)

logger = logging.getLogger(__name__)


def _tier(classification: Classification) -> TierResponse:
    return TierResponse(tier=classification.tier.value, label=classification.label)


def loan_status(summary: LoanSummary) -> LoanStatus:
    m = summary.metrics
    return LoanStatus(
        chain=summary.chain,
        protocol=summary.protocol,
        owner=summary.owner,
        position_id=str(summary.position_id),
        status=summary.status,
        collateral_symbol=summary.collateral_symbol,
        collateral_amount=m.collateral_amount,
        debt_amount=m.debt_amount,
        price=m.price,
        price_source=m.price_source,
        liquidation_price=m.liquidation_price,
        ltv=m.ltv,
        interest_rate_pct=m.interest_rate_pct,
        reference_rate_pct=m.reference_rate_pct,
        liquidation=_tier(summary.liquidation),
        redemption=_tier(summary.redemption),
    )


def lp_status(summary: LpSummary) -> LpStatus:
    m = summary.metrics
    return LpStatus(
        chain=summary.chain,
        protocol=summary.protocol,
        owner=summary.owner,
        position_id=str(summary.position_id),
        pair=summary.pair,
        fee=summary.fee,
        tick_lower=m.tick_lower,
        tick_upper=m.tick_upper,
        current_tick=m.current_tick,
        range_status=m.range_status.value,
        range=_tier(summary.range),
    )


def cdp_status(cdp: CdpClassification) -> CdpStatus:
    return CdpStatus(state=cdp.state.value, price=cdp.price, trigger=cdp.trigger, label=cdp.label)


def alert_status(key: AlertKey, record: AlertRecord) -> AlertStatus:
    return AlertStatus(
        kind=key.kind.value,
        protocol=key.protocol,
        owner=key.owner,
        position_id=str(key.position_id),
        is_active=record.is_active,
        updated_at=record.updated_at,
    )


def create_app(service: MonitoringService) -> FastAPI:
    """Build the status API around a monitoring service."""
    app = FastAPI(
        title="Position Watch API",
        description="Read-only status of monitored loan and LP positions",
        version="0.1.0",
    )
    app.state.service = service

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        svc: MonitoringService = request.app.state.service
        report = svc.last_report
        return HealthResponse(
            status="ok",
            service="positionwatch",
            pass_running=svc.is_running,
            last_pass_at=report.finished_at if report else None,
            last_pass_errors=report.errors if report else None,
        )

    @app.get("/status/loans", response_model=LoansResponse)
    async def get_loans(request: Request):
        """Current state of every loan position."""
        svc: MonitoringService = request.app.state.service
        summaries = await svc.loan_summaries()
        return LoansResponse(
            loans=[loan_status(s) for s in summaries],
            cdp=cdp_status(svc.last_cdp) if svc.last_cdp else None,
        )

    @app.get("/status/lps", response_model=LpsResponse)
    async def get_lps(request: Request):
        """Current state of every LP position."""
        svc: MonitoringService = request.app.state.service
        summaries = await svc.lp_summaries()
        return LpsResponse(lps=[lp_status(s) for s in summaries])

    @app.get("/status/alerts", response_model=AlertsResponse)
    async def get_alerts(
        request: Request,
        active_only: bool = Query(False, description="Only return currently active alerts"),
    ):
        """Stored alert state for every condition seen so far."""
        svc: MonitoringService = request.app.state.service
        entries = svc.engine.snapshot()
        alerts = [alert_status(key, record) for key, record in entries]
        if active_only:
            alerts = [a for a in alerts if a.is_active]
        return AlertsResponse(
            alerts=alerts,
            active_count=sum(1 for _, record in entries if record.is_active),
        )

    return app
