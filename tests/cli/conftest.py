"""Shared fixtures for CLI tests."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from zkpayroll.ledger.records import PaymentRecord, PaymentRecordStore


@pytest.fixture
def tmp_config_path(tmp_path: Path) -> Path:
    """Provide a temporary config file path."""
    return tmp_path / "zkpayroll.yaml"


@pytest.fixture
def records_db(tmp_path: Path) -> Path:
    """Record database with two employees paid over three periods."""
    db_path = tmp_path / "records.db"
    store = PaymentRecordStore(db_path=db_path)
    for period in (202601, 202602, 202603):
        for employee, amount in (("GALICE", 5_000), ("GBOB", 4_000)):
            store.append(
                PaymentRecord(
                    company="acme",
                    employee=employee,
                    amount=amount,
                    period=period,
                    proof_hash=bytes([period % 256]) * 32,
                    nullifier=f"{employee}{period}".encode().ljust(32, b"\x00"),
                    timestamp=datetime(2026, 1, 31, tzinfo=UTC),
                )
            )
    return db_path
