"""Append-only store of accepted payments.

One :class:`PaymentRecord` is written per payment the ledger accepted. Records
hold what the ledger already made public: `amount` is the value that was
transferred, which equals the committed salary for that payment. Blinding
factors and commitment openings are never stored. Records are the sole input
of audit reports.

Schema:
- payment_records: one row per accepted payment, unique per
  (company, employee, period) and per nullifier
- record_metadata: schema version

The store has no update or delete operation.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from zkpayroll.crypto.field import HexBytes
from zkpayroll.errors import NullifierReplayError


class PaymentRecord(BaseModel):
    """A payment accepted by the ledger.

    Attributes:
        company: Paying company
        employee: Paid employee (ledger address)
        amount: Publicly transferred amount, smallest currency unit
        period: ``YYYYMM`` billing period
        proof_hash: 32-byte hash of the accepted proof
        nullifier: The payment's nullifier
        timestamp: Acceptance time (UTC)
        record_id: Row id once stored
    """

    model_config = {"frozen": True}

    company: str
    employee: str
    amount: int = Field(ge=0)
    period: int
    proof_hash: HexBytes
    nullifier: HexBytes
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    record_id: int | None = None


class PaymentRecordStore:
    """SQLite-backed append-only payment records.

    Args:
        db_path: Path to the SQLite file, or ``":memory:"`` for a private
            in-process database
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path = "~/.zkpayroll/records.db"):
        self._memory_conn: sqlite3.Connection | None = None
        if str(db_path) == ":memory:":
            self.db_path: Path | None = None
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
        else:
            self.db_path = Path(db_path).expanduser()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with optimized settings."""
        if self._memory_conn is not None:
            return self._memory_conn
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        try:
            yield conn
        finally:
            if conn is not self._memory_conn:
                conn.close()

    def _initialize_schema(self) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS record_metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO record_metadata (key, value) VALUES ('schema_version', ?)",
                (str(self.SCHEMA_VERSION),),
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS payment_records (
                    record_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    company TEXT NOT NULL,
                    employee TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    period INTEGER NOT NULL,
                    proof_hash BLOB NOT NULL,
                    nullifier BLOB NOT NULL UNIQUE,
                    timestamp TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_payment_employee_period
                ON payment_records(company, employee, period)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_payment_company_period
                ON payment_records(company, period)
                """
            )
            conn.commit()

    def append(self, record: PaymentRecord) -> PaymentRecord:
        """Append *record* and return it with its ``record_id``.

        Raises:
            NullifierReplayError: If the nullifier, or the employee's period,
                is already recorded.
        """
        with self._connection() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO payment_records (
                        company, employee, amount, period, proof_hash, nullifier, timestamp
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.company,
                        record.employee,
                        record.amount,
                        record.period,
                        record.proof_hash,
                        record.nullifier,
                        record.timestamp.isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise NullifierReplayError(
                    f"Payment for {record.employee} in period {record.period} already recorded",
                    details={"employee": record.employee, "period": record.period},
                ) from e
            return record.model_copy(update={"record_id": cursor.lastrowid})

    def query(
        self,
        company: str,
        employee: str | None = None,
        period_start: int | None = None,
        period_end: int | None = None,
    ) -> list[PaymentRecord]:
        """Records of *company*, optionally narrowed by employee and period range.

        Returns:
            Records ordered by period, then insertion order
        """
        clauses = ["company = ?"]
        params: list[Any] = [company]
        if employee is not None:
            clauses.append("employee = ?")
            params.append(employee)
        if period_start is not None:
            clauses.append("period >= ?")
            params.append(period_start)
        if period_end is not None:
            clauses.append("period <= ?")
            params.append(period_end)

        with self._connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT * FROM payment_records
                WHERE {" AND ".join(clauses)}
                ORDER BY period, record_id
                """,
                params,
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

    def is_recorded(self, company: str, employee: str, period: int) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                SELECT 1 FROM payment_records
                WHERE company = ? AND employee = ? AND period = ?
                """,
                (company, employee, period),
            )
            return cursor.fetchone() is not None

    def count(self, company: str | None = None) -> int:
        with self._connection() as conn:
            if company is None:
                cursor = conn.execute("SELECT COUNT(*) FROM payment_records")
            else:
                cursor = conn.execute(
                    "SELECT COUNT(*) FROM payment_records WHERE company = ?", (company,)
                )
            return cursor.fetchone()[0]

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PaymentRecord:
        data = dict(row)
        return PaymentRecord(
            record_id=data["record_id"],
            company=data["company"],
            employee=data["employee"],
            amount=data["amount"],
            period=data["period"],
            proof_hash=bytes(data["proof_hash"]),
            nullifier=bytes(data["nullifier"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
