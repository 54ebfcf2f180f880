"""Ledger collaborators and the payment record store."""

from .base import Company, Employee, LedgerExecutor, LedgerRegistry, SubmissionReceipt
from .memory import InMemoryLedger
from .records import PaymentRecord, PaymentRecordStore

__all__ = [
    "Company",
    "Employee",
    "InMemoryLedger",
    "LedgerExecutor",
    "LedgerRegistry",
    "PaymentRecord",
    "PaymentRecordStore",
    "SubmissionReceipt",
]
