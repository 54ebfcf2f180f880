"""In-process reference ledger for tests and local development.

:class:`InMemoryLedger` implements both collaborator interfaces with the
checks a deployed executor performs: the proof must be bound to the
employee's registered commitment and address, must verify under the deployed
verification key, and its nullifier must be new. Accepted payments are
appended to a :class:`~zkpayroll.ledger.records.PaymentRecordStore`.
"""

import asyncio
import hashlib
import hmac
import logging

from zkpayroll.errors import (
    CompanyNotFoundError,
    EmployeeNotFoundError,
    NullifierReplayError,
    ProofRejectedError,
)
from zkpayroll.ledger.base import (
    Company,
    Employee,
    LedgerExecutor,
    LedgerRegistry,
    SubmissionReceipt,
)
from zkpayroll.ledger.records import PaymentRecord, PaymentRecordStore
from zkpayroll.proofs.circuit import verify_groth16
from zkpayroll.proofs.models import PaymentProof, VerificationKeyMaterial
from zkpayroll.proofs.witness import recipient_binding_hash

logger = logging.getLogger(__name__)


class InMemoryLedger(LedgerRegistry, LedgerExecutor):
    """Registry and executor backed by process memory.

    Args:
        verification_key: Key the executor verifies proofs with
        records: Store accepted payments are appended to (defaults to a
            private in-memory SQLite store)
    """

    def __init__(
        self,
        verification_key: VerificationKeyMaterial,
        records: PaymentRecordStore | None = None,
    ):
        self.verification_key = verification_key
        self.records = records or PaymentRecordStore(":memory:")
        self._companies: dict[str, Company] = {}
        self._employees: dict[tuple[str, str], Employee] = {}
        self._nullifiers: set[bytes] = set()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def _require_company(self, company: str) -> Company:
        record = self._companies.get(company)
        if record is None or not record.is_active:
            raise CompanyNotFoundError(f"Company {company} is not registered")
        return record

    def _require_employee(self, company: str, employee: str) -> Employee:
        record = self._employees.get((company, employee))
        if record is None:
            raise EmployeeNotFoundError(
                f"Employee {employee} is not registered at {company}",
                details={"company": company, "employee": employee},
            )
        return record

    async def register_company(self, company: str, admin: str, treasury: str) -> Company:
        record = Company(id=company, admin=admin, treasury=treasury)
        self._companies[company] = record
        logger.info("Registered company %s", company)
        return record

    async def add_employee(self, company: str, employee: str, commitment: bytes) -> Employee:
        self._require_company(company)
        record = Employee(company=company, address=employee, salary_commitment=commitment)
        self._employees[(company, employee)] = record
        self._companies[company].employee_count += 1
        return record

    async def get_employee(self, company: str, employee: str) -> Employee:
        return self._require_employee(company, employee).model_copy()

    async def update_commitment(self, company: str, employee: str, commitment: bytes) -> None:
        record = self._require_employee(company, employee)
        if not record.is_active:
            raise EmployeeNotFoundError(f"Employee {employee} is deactivated")
        record.salary_commitment = commitment

    async def deactivate_employee(self, company: str, employee: str) -> None:
        record = self._require_employee(company, employee)
        if record.is_active:
            record.is_active = False
            self._companies[company].employee_count -= 1

    async def list_active_employees(self, company: str) -> list[Employee]:
        self._require_company(company)
        return [
            e.model_copy()
            for (c, _), e in sorted(self._employees.items())
            if c == company and e.is_active
        ]

    # ------------------------------------------------------------------
    # Executor
    # ------------------------------------------------------------------

    async def execute_payment(
        self,
        company: str,
        employee: str,
        amount: int,
        proof: PaymentProof,
        period: int,
    ) -> SubmissionReceipt:
        self._require_company(company)
        record = self._require_employee(company, employee)
        if not record.is_active:
            raise ProofRejectedError(f"Employee {employee} is deactivated")

        inputs = proof.public_inputs
        if not hmac.compare_digest(inputs.commitment, record.salary_commitment):
            raise ProofRejectedError("Proof is not bound to the registered commitment")
        if not hmac.compare_digest(inputs.recipient_hash, recipient_binding_hash(employee)):
            raise ProofRejectedError("Proof is not bound to the recipient address")

        if proof.nullifier in self._nullifiers:
            logger.warning("Rejected replayed nullifier %s", proof.nullifier.hex()[:16])
            raise NullifierReplayError(
                "Nullifier already used", details={"employee": employee, "period": period}
            )

        valid = await asyncio.to_thread(verify_groth16, proof, inputs, self.verification_key)
        if not valid:
            logger.warning("Rejected invalid proof for %s period %d", employee, period)
            raise ProofRejectedError("Proof verification failed")

        async with self._lock:
            # Re-check under the lock; a concurrent submission may have landed
            if proof.nullifier in self._nullifiers:
                raise NullifierReplayError(
                    "Nullifier already used", details={"employee": employee, "period": period}
                )
            stored = self.records.append(
                PaymentRecord(
                    company=company,
                    employee=employee,
                    amount=amount,
                    period=period,
                    proof_hash=proof.digest(),
                    nullifier=proof.nullifier,
                )
            )
            self._nullifiers.add(proof.nullifier)
            record.last_payment_timestamp = stored.timestamp

        tx_hash = hashlib.sha256(
            proof.digest() + stored.timestamp.isoformat().encode()
        ).hexdigest()
        logger.info("Accepted payment for %s period %d (tx %s)", employee, period, tx_hash[:16])
        return SubmissionReceipt(
            transaction_hash=tx_hash,
            company=company,
            employee=employee,
            period=period,
            nullifier=proof.nullifier,
            accepted_at=stored.timestamp,
        )

    async def is_paid(self, company: str, employee: str, period: int) -> bool:
        return self.records.is_recorded(company, employee, period)
