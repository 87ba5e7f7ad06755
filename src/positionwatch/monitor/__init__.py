"""Position monitoring: chain reads, classification and alerting passes."""

from .cdp import CdpPriceSource
from .loans import LoanReader, LoanSummary
from .lps import LpReader, LpSummary
from .reference_rates import ReferenceRateSource
from .service import MonitoringService, PassReport

__all__ = [
    "CdpPriceSource",
    "LoanReader",
    "LoanSummary",
    "LpReader",
    "LpSummary",
    "MonitoringService",
    "PassReport",
    "ReferenceRateSource",
]
