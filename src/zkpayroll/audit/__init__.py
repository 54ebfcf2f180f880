"""Selective disclosure for auditors."""

from .aggregator import AggregateReport, AuditAggregator, AuditReport, DetailedReport, ReportEntry
from .view_keys import (
    AggregateOnlyScope,
    EmployeeListScope,
    FullCompanyScope,
    Scope,
    TimeRangeScope,
    ViewKey,
    ViewKeyManager,
)

__all__ = [
    "AggregateOnlyScope",
    "AggregateReport",
    "AuditAggregator",
    "AuditReport",
    "DetailedReport",
    "EmployeeListScope",
    "FullCompanyScope",
    "ReportEntry",
    "Scope",
    "TimeRangeScope",
    "ViewKey",
    "ViewKeyManager",
]
