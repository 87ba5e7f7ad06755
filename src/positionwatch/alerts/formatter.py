"""Message formatting for notification channels.

Provides:
- Alert notification text
- Heartbeat summaries of all monitored positions
- Chunking of long messages to a channel's size limit
"""

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from ..risk.tiers import RangeStatus, Tier
from .models import AlertPhase, PositionAlert

TELEGRAM_MAX_LENGTH = 4096
DISCORD_MAX_LENGTH = 2000

# Room left for the "(i/n) " prefix and odd unicode.
CHUNK_HEADROOM = 100

TIER_EMOJI = {
    Tier.CRITICAL: "🚨",
    Tier.HIGH: "⚠️",
    Tier.MEDIUM: "🟠",
    Tier.NEUTRAL: "⚪",
    Tier.LOW: "🟢",
    Tier.UNKNOWN: "❔",
}

KIND_PREFIX = {
    "liquidation": "[LIQ]",
    "redemption": "[REDEMP]",
    "range": "[LP]",
}

# Heartbeat LP ordering: most urgent first.
RANGE_STATUS_ORDER = {
    RangeStatus.OUT_OF_RANGE: 0,
    RangeStatus.UNKNOWN: 1,
    RangeStatus.IN_RANGE: 2,
}


def _fmt_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    if value is None:
        return "n/a"
    return str(value)


def format_alert_message(phase: AlertPhase, alert: PositionAlert) -> str:
    """Render an alert notification.

    Args:
        phase: NEW or UPDATED
        alert: Alert variant carrying the position and tier data

    Returns:
        Plain-text message
    """
    emoji = TIER_EMOJI.get(alert.tier, "📢")
    prefix = KIND_PREFIX.get(alert.kind.value, "[ALERT]")

    lines = [
        f"{emoji} {prefix} {phase.value} {alert.kind.value.upper()} ALERT",
        alert.headline(),
    ]
    if alert.label:
        lines.append(alert.label)

    details = alert.details()
    if details:
        lines.append("")
        lines.append("Details:")
        for name, value in details.items():
            lines.append(f"• {name}: {_fmt_value(value)}")

    lines.append(f"chain: {alert.chain}")
    return "\n".join(lines)


def split_message(text: str, max_length: int = DISCORD_MAX_LENGTH) -> list[str]:
    """Split a message into chunks that fit a channel's length limit.

    Lines are kept whole where possible; a single line longer than the
    chunk size is hard-split. When more than one chunk results, each is
    prefixed with ``(i/n)``.

    Args:
        text: Message text
        max_length: Channel's hard limit

    Returns:
        Chunks in order; empty for empty text
    """
    if not text:
        return []

    chunk_size = max_length - CHUNK_HEADROOM if max_length > 2 * CHUNK_HEADROOM else max_length
    lines = text.replace("\r\n", "\n").split("\n")

    chunks: list[str] = []
    buf = ""
    for line in lines:
        if len(line) > chunk_size:
            if buf:
                chunks.append(buf)
                buf = ""
            for i in range(0, len(line), chunk_size):
                chunks.append(line[i : i + chunk_size])
            continue

        add_len = (0 if not buf else 1) + len(line)
        if len(buf) + add_len > chunk_size:
            if buf:
                chunks.append(buf)
            buf = line
            continue

        buf = f"{buf}\n{line}" if buf else line

    if buf:
        chunks.append(buf)

    if len(chunks) > 1:
        total = len(chunks)
        chunks = [f"({i}/{total}) {chunk}" for i, chunk in enumerate(chunks, start=1)]

    return [chunk[:max_length] for chunk in chunks]


def _pct(value: float | None, digits: int = 2) -> str:
    return f"{value * 100:.{digits}f}%" if value is not None else "n/a"


def format_loan_line(summary: Any) -> str:
    """Heartbeat entry for one loan summary."""
    lines = [
        f"• {summary.protocol} ({summary.chain}) #{summary.position_id}: status {summary.status}"
    ]
    metrics = summary.metrics
    if metrics is not None and metrics.price is not None:
        lines.append(
            f"   LTV {_pct(metrics.ltv)}, price {metrics.price:.5f}, "
            f"liq {metrics.liquidation_price:.5f}, buffer {_pct(metrics.buffer_fraction)} "
            f"(tier {summary.liquidation.tier.value})"
        )
    else:
        lines.append("   Price / liq: unavailable; cannot compute LTV / buffer")

    if metrics is not None and metrics.interest_rate_pct is not None:
        ir_line = f"   IR {metrics.interest_rate_pct:.2f}% p.a."
        if metrics.reference_rate_pct is not None:
            ir_line += f" vs reference {metrics.reference_rate_pct:.2f}%"
        ir_line += f", redemption tier {summary.redemption.tier.value}"
        lines.append(ir_line)

    return "\n".join(lines)


def format_lp_line(summary: Any) -> str:
    """Heartbeat entry for one LP summary."""
    lines = [
        f"• {summary.protocol} {summary.pair} ({summary.chain}) #{summary.position_id}: "
        f"range {summary.metrics.range_status.value}"
    ]
    if summary.range.tier != Tier.UNKNOWN:
        lines.append(f"   Range tier {summary.range.tier.value} ({summary.range.label})")
    if summary.metrics.current_tick is not None:
        lines.append(
            f"   Tick [{summary.metrics.tick_lower}, {summary.metrics.tick_upper}) "
            f"current {summary.metrics.current_tick}"
        )
    if summary.liquidity:
        lines.append(f"   Liquidity {summary.liquidity}")
    return "\n".join(lines)


def sort_loans_for_heartbeat(loans: Iterable[Any]) -> list[Any]:
    """Riskiest first: LTV descending, a missing LTV counts as zero."""
    return sorted(
        loans,
        key=lambda s: -(s.metrics.ltv or 0.0) if s.metrics is not None else 0.0,
    )


def sort_lps_for_heartbeat(lps: Iterable[Any]) -> list[Any]:
    """OUT_OF_RANGE, then UNKNOWN, then IN_RANGE; ties by protocol."""
    return sorted(
        lps,
        key=lambda s: (RANGE_STATUS_ORDER.get(s.metrics.range_status, 99), s.protocol),
    )


def format_heartbeat(loans: list[Any], lps: list[Any], now: datetime | None = None) -> str:
    """Render the periodic summary of every monitored position.

    Args:
        loans: Loan summaries
        lps: LP summaries
        now: Timestamp shown in the header (defaults to current UTC time)

    Returns:
        Plain-text heartbeat message
    """
    now = now or datetime.now(timezone.utc)
    lines = ["📊 DeFi Heartbeat", f"as of {now.isoformat()}", "", "Loans"]

    if not loans:
        lines.append("(no monitored loans)")
    else:
        lines.extend(format_loan_line(s) for s in sort_loans_for_heartbeat(loans))

    lines.append("")
    lines.append("LP Positions")
    if not lps:
        lines.append("(no monitored LP positions)")
    else:
        lines.extend(format_lp_line(s) for s in sort_lps_for_heartbeat(lps))

    return "\n".join(lines)
