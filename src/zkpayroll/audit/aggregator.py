"""Scope-restricted audit reports over public payment records.

Reports are derived on demand from :class:`~zkpayroll.ledger.records.PaymentRecord`
rows and a :class:`~zkpayroll.audit.view_keys.ViewKey`; they are never stored.
Only public record fields are read, and the report type depends on the scope:

=================  ==================  =======================================
Scope              Report              Contents
=================  ==================  =======================================
FullCompany        DetailedReport      totals + one entry per payment
AggregateOnly      AggregateReport     totals only (no employee field exists)
TimeRange          DetailedReport      periods clipped to the key's range
EmployeeList       DetailedReport      listed employees only
=================  ==================  =======================================
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel

from zkpayroll.audit.view_keys import (
    AggregateOnlyScope,
    EmployeeListScope,
    TimeRangeScope,
    ViewKey,
    ViewKeyManager,
)
from zkpayroll.crypto.field import HexBytes
from zkpayroll.errors import ExpiredViewKeyError, InvalidScopeError
from zkpayroll.ledger.records import PaymentRecord

logger = logging.getLogger(__name__)

PROOF_HASH_SIZE = 32


class AggregateReport(BaseModel):
    """Counts and sums only.

    Attributes:
        company: Audited company
        period_start: First period covered (``YYYYMM``)
        period_end: Last period covered (``YYYYMM``)
        payment_count: Number of payments
        employee_count: Number of distinct employees paid
        total_paid: Sum of payment amounts
        verified: Every included record is well formed and belongs to the company
    """

    model_config = {"frozen": True}

    company: str
    period_start: int
    period_end: int
    payment_count: int
    employee_count: int
    total_paid: int
    verified: bool


class ReportEntry(BaseModel):
    model_config = {"frozen": True}

    employee: str
    period: int
    amount: int
    proof_hash: HexBytes
    timestamp: datetime


class DetailedReport(AggregateReport):
    """Aggregates plus one entry per included payment."""

    entries: list[ReportEntry]


AuditReport = AggregateReport | DetailedReport


class AuditAggregator:
    """Build audit reports for view key holders.

    Args:
        view_keys: Manager consulted for revocations; without one, only the
            key's own expiry and revocation fields are checked
    """

    def __init__(self, view_keys: ViewKeyManager | None = None):
        self.view_keys = view_keys

    def _is_valid(self, view_key: ViewKey, now: datetime | None) -> bool:
        if self.view_keys is not None:
            return self.view_keys.is_valid(view_key, now)
        return view_key.is_active(now)

    def generate_report(
        self,
        view_key: ViewKey,
        records: Iterable[PaymentRecord],
        period_start: int,
        period_end: int,
        now: datetime | None = None,
    ) -> AuditReport:
        """Compute the report *view_key* permits over *records*.

        Args:
            view_key: The auditor's key
            records: Candidate records; other companies' records are ignored
            period_start: First period requested (``YYYYMM``)
            period_end: Last period requested (``YYYYMM``)
            now: Evaluation time, defaults to the current UTC time

        Raises:
            ExpiredViewKeyError: If the key is expired or revoked.
            InvalidScopeError: If ``period_start > period_end``.
        """
        if not self._is_valid(view_key, now):
            raise ExpiredViewKeyError(
                f"View key {view_key.id[:8]} is expired or revoked",
                details={"view_key_id": view_key.id},
            )
        if period_start > period_end:
            raise InvalidScopeError(f"period_start {period_start} is after period_end {period_end}")

        scope = view_key.scope
        if isinstance(scope, TimeRangeScope):
            period_start = max(period_start, scope.start)
            period_end = min(period_end, scope.end)

        included = [
            r
            for r in records
            if r.company == view_key.company and period_start <= r.period <= period_end
        ]
        if isinstance(scope, EmployeeListScope):
            included = [r for r in included if r.employee in scope.employees]

        summary = {
            "company": view_key.company,
            "period_start": period_start,
            "period_end": period_end,
            "payment_count": len(included),
            "employee_count": len({r.employee for r in included}),
            "total_paid": sum(r.amount for r in included),
            "verified": all(len(r.proof_hash) == PROOF_HASH_SIZE for r in included),
        }
        logger.info(
            "Audit report for %s via %s key %s: %d payments",
            view_key.company,
            scope.kind,
            view_key.id[:8],
            len(included),
        )

        if isinstance(scope, AggregateOnlyScope):
            return AggregateReport(**summary)
        return DetailedReport(
            **summary,
            entries=[
                ReportEntry(
                    employee=r.employee,
                    period=r.period,
                    amount=r.amount,
                    proof_hash=r.proof_hash,
                    timestamp=r.timestamp,
                )
                for r in included
            ],
        )
