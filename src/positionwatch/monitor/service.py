"""Monitoring pass orchestration.

A pass reads every known position (loans first, then LPs), classifies
each risk kind, and feeds the results to the alert engine. Passes never
overlap: a tick that arrives while a pass is running is skipped. A
failure on one position is logged and the pass moves on.
"""

import asyncio
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..alerts.dispatcher import AlertDispatcher, DispatchResult
from ..alerts.engine import AlertEngine
from ..alerts.formatter import format_heartbeat
from ..alerts.models import AlertPhase, LiquidationAlert, RangeAlert, RedemptionAlert
from ..chain.reader import ChainReader
from ..config import ContractConfig, MonitorConfig
from ..risk.classifier import CdpClassification
from ..risk.tiers import CdpState, RangeStatus, RiskKind, is_tier_at_least
from ..scanner.store import PositionRecord, read_positions
from .cdp import CdpPriceSource
from .loans import LoanReader, LoanSummary, describe_loan, describe_loan_detail
from .lps import LpReader, LpSummary, describe_lp, describe_lp_detail
from .reference_rates import ReferenceRateSource

logger = logging.getLogger(__name__)


@dataclass
class PassReport:
    """Outcome of one monitoring pass."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    loans_checked: int = 0
    lps_checked: int = 0
    errors: int = 0
    notifications: int = 0
    resolved: int = 0

    def count(self, phase: AlertPhase) -> None:
        if phase.notifies:
            self.notifications += 1
        elif phase == AlertPhase.RESOLVED:
            self.resolved += 1


def position_key(record: PositionRecord) -> tuple[str, str, str, int]:
    return (record.protocol, record.chain, record.owner, record.position_id)


class MonitoringService:
    """Runs monitoring passes and heartbeats over all discovered positions.

    Args:
        config: Monitor configuration
        readers: Chain id -> reader
        engine: Alert engine owning alert state
        dispatcher: Delivery for heartbeats (alerts go through the engine's notifier)
        reference_rates: Reference-rate source (built from config when omitted)
        cdp_source: CDP price source (built from config when omitted)
    """

    def __init__(
        self,
        config: MonitorConfig,
        readers: dict[str, ChainReader],
        engine: AlertEngine,
        dispatcher: AlertDispatcher | None = None,
        reference_rates: ReferenceRateSource | None = None,
        cdp_source: CdpPriceSource | None = None,
    ):
        self.config = config
        self.readers = readers
        self.engine = engine
        self.dispatcher = dispatcher
        self.reference_rates = reference_rates or ReferenceRateSource(config.reference_rates)
        self.cdp_source = cdp_source or CdpPriceSource(config.cdp, readers)

        self.loan_reader = LoanReader(readers, self.reference_rates, config.thresholds)
        self.lp_reader = LpReader(readers, config.thresholds, config.lp_ignore)

        self._lock = asyncio.Lock()
        self._prev_range_status: dict[tuple[str, str, str, int], RangeStatus] = {}

        self.last_report: PassReport | None = None
        self.last_loans: list[LoanSummary] = []
        self.last_lps: list[LpSummary] = []
        self.last_cdp: CdpClassification | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def _positions(
        self, contracts: list[ContractConfig], report: PassReport | None = None
    ) -> Iterator[tuple[ContractConfig, PositionRecord]]:
        """Every stored position row for the given contracts.

        A position file that cannot be read is logged (and counted as an
        error on ``report``); the remaining contracts are still yielded.
        """
        for contract in contracts:
            try:
                records = read_positions(contract.csv_file)
            except Exception as e:
                if report is not None:
                    report.errors += 1
                logger.error(f"{contract.key}: could not read positions from {contract.csv_file}: {e}")
                continue
            for record in records:
                if record.chain != contract.chain:
                    continue
                if record.contract.lower() != contract.address.lower():
                    continue
                yield contract, record

    def _log_summary(self, line: str, detail: str) -> None:
        logger.info(line)
        if self.config.verbose:
            logger.info(detail)
        else:
            logger.debug(detail)

    async def run_pass(self) -> PassReport | None:
        """Run one pass unless another is in progress.

        Returns:
            PassReport, or None when the tick was skipped
        """
        if self._lock.locked():
            logger.warning("Previous monitoring pass still running; skipping this tick")
            return None

        async with self._lock:
            report = PassReport()
            logger.info("Loan + LP monitor start")
            await self.monitor_loans(report)
            await self.monitor_lps(report)
            report.finished_at = datetime.now(timezone.utc)
            elapsed = (report.finished_at - report.started_at).total_seconds()
            logger.info(
                f"Loan + LP monitor end: {report.loans_checked} loans, {report.lps_checked} LPs, "
                f"{report.notifications} notifications, {report.resolved} resolved, "
                f"{report.errors} errors ({elapsed:.1f}s)"
            )
            self.last_report = report
            return report

    async def monitor_loans(self, report: PassReport) -> None:
        """Check every loan and feed liquidation and redemption alerts."""
        cdp = await self.cdp_source.get_state()
        self.last_cdp = cdp
        min_tiers = self.config.min_alert_tiers
        summaries: list[LoanSummary] = []

        for contract, record in self._positions(self.config.loans, report):
            try:
                summary = await self.loan_reader.summarize(record, contract)
                if summary is None:
                    continue
                summaries.append(summary)
                report.loans_checked += 1
                self._log_summary(describe_loan(summary), describe_loan_detail(summary))

                m = summary.metrics
                liquidation = LiquidationAlert(
                    chain=summary.chain,
                    protocol=summary.protocol,
                    owner=summary.owner,
                    position_id=summary.position_id,
                    tier=summary.liquidation.tier,
                    label=summary.liquidation.label,
                    ltv=m.ltv,
                    price=m.price,
                    liquidation_price=m.liquidation_price,
                    buffer_fraction=m.buffer_fraction,
                    collateral_symbol=summary.collateral_symbol,
                )
                outcome = await self.engine.process(
                    liquidation,
                    is_tier_at_least(RiskKind.LIQUIDATION, liquidation.tier, min_tiers.liquidation),
                )
                report.count(outcome.phase)

                redemption = RedemptionAlert(
                    chain=summary.chain,
                    protocol=summary.protocol,
                    owner=summary.owner,
                    position_id=summary.position_id,
                    tier=summary.redemption.tier,
                    label=summary.redemption.label,
                    interest_rate_pct=m.interest_rate_pct,
                    reference_rate_pct=m.reference_rate_pct,
                    interest_delta=m.interest_delta,
                    cdp_state=cdp.state,
                    cdp_price=cdp.price,
                )
                redemption_active = cdp.state == CdpState.ACTIVE and is_tier_at_least(
                    RiskKind.REDEMPTION, redemption.tier, min_tiers.redemption
                )
                outcome = await self.engine.process(redemption, redemption_active)
                report.count(outcome.phase)

            except Exception as e:
                report.errors += 1
                logger.error(
                    f"Loan {record.chain}/{record.protocol} owner={record.owner} "
                    f"#{record.position_id} failed: {e}"
                )

        self.last_loans = summaries

    async def monitor_lps(self, report: PassReport) -> None:
        """Check every LP position and feed range alerts.

        A range alert is active only while the position is out of range and
        its tier meets the minimum.
        """
        min_tier = self.config.min_alert_tiers.range
        summaries: list[LpSummary] = []

        for _, record in self._positions(self.config.lps, report):
            if self.lp_reader.is_ignored(record):
                continue
            try:
                summary = await self.lp_reader.summarize(record)
                if summary is None:
                    continue
                summaries.append(summary)
                report.lps_checked += 1
                self._log_summary(describe_lp(summary), describe_lp_detail(summary))

                key = position_key(record)
                m = summary.metrics
                previous = self._prev_range_status.get(key, RangeStatus.UNKNOWN)
                self._prev_range_status[key] = m.range_status

                alert = RangeAlert(
                    chain=summary.chain,
                    protocol=summary.protocol,
                    owner=summary.owner,
                    position_id=summary.position_id,
                    tier=summary.range.tier,
                    label=summary.range.label,
                    pair=summary.pair,
                    fee=summary.fee,
                    tick_lower=m.tick_lower,
                    tick_upper=m.tick_upper,
                    current_tick=m.current_tick,
                    previous_status=previous,
                    current_status=m.range_status,
                )
                is_active = m.range_status == RangeStatus.OUT_OF_RANGE and is_tier_at_least(
                    RiskKind.RANGE, alert.tier, min_tier
                )
                outcome = await self.engine.process(alert, is_active)
                report.count(outcome.phase)

            except Exception as e:
                report.errors += 1
                logger.error(
                    f"LP {record.chain}/{record.protocol} owner={record.owner} "
                    f"#{record.position_id} failed: {e}"
                )

        self.last_lps = summaries

    async def loan_summaries(self) -> list[LoanSummary]:
        """Fresh loan summaries without touching alert state."""
        summaries = []
        for contract, record in self._positions(self.config.loans):
            try:
                summary = await self.loan_reader.summarize(record, contract)
            except Exception as e:
                logger.error(f"Loan #{record.position_id} ({record.protocol}) summary failed: {e}")
                continue
            if summary is not None:
                summaries.append(summary)
        return summaries

    async def lp_summaries(self) -> list[LpSummary]:
        """Fresh LP summaries without touching alert state."""
        summaries = []
        for _, record in self._positions(self.config.lps):
            if self.lp_reader.is_ignored(record):
                continue
            try:
                summary = await self.lp_reader.summarize(record)
            except Exception as e:
                logger.error(f"LP #{record.position_id} ({record.protocol}) summary failed: {e}")
                continue
            if summary is not None:
                summaries.append(summary)
        return summaries

    async def send_heartbeat(self) -> DispatchResult | None:
        """Send a summary of every monitored position to all channels."""
        loans = await self.loan_summaries()
        lps = await self.lp_summaries()
        message = format_heartbeat(loans, lps)

        if self.dispatcher is None:
            logger.info(f"Heartbeat (no dispatcher):\n{message}")
            return None

        result = await self.dispatcher.dispatch(message)
        logger.info(f"Heartbeat sent: {result.delivery_status.value}")
        return result

    def close(self) -> None:
        """Tear down alert state."""
        self.engine.close()
