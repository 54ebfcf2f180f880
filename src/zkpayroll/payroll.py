"""Payroll orchestration on top of the payment core.

:class:`PayrollService` owns the employer side of the blinding-factor
lifecycle (create on hire, rotate on salary change, erase on deactivation)
and runs payments: fetch secret, prove, submit.

Serialization rules:

- secret-store access for one (company, employee) is exclusive for the whole
  of a payment, a salary rotation or a deactivation
- one payment per (commitment, period) is in flight at any time, and the
  ledger's "is paid" answer is checked right before proving
- a replayed nullifier reported by the ledger is an "already paid" outcome
  and is never retried

Example:
    >>> service = PayrollService(ledger, ledger, secrets, ProofService(circuit))
    >>> await service.add_employee("acme", "GALICE", 500_000)
    >>> result = await service.process_payment("acme", "GALICE", 202601)
    >>> assert result.success
"""

import asyncio
import logging

from pydantic import BaseModel

from zkpayroll.crypto.commitment import CommitmentEngine, salary_to_field
from zkpayroll.crypto.nullifier import validate_period
from zkpayroll.errors import (
    EmployeeNotFoundError,
    ErrorCode,
    NullifierReplayError,
    PayrollError,
    ProofRejectedError,
)
from zkpayroll.keystore import EmployeeSecret, SecretStore
from zkpayroll.ledger.base import Company, Employee, LedgerExecutor, LedgerRegistry
from zkpayroll.locks import KeyedLock
from zkpayroll.proofs.service import ProofService

logger = logging.getLogger(__name__)


class PaymentResult(BaseModel):
    """Outcome of one payment attempt.

    Attributes:
        success: The ledger accepted the payment
        employee: Paid employee
        period: Billing period
        transaction_hash: Ledger transaction hash when accepted
        error: Human-readable failure reason
        error_code: Stable code of the failure
        already_paid: The period was already paid (not an error to retry)
    """

    success: bool
    employee: str
    period: int
    transaction_hash: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    already_paid: bool = False


class PayrollService:
    """Employer-side payroll operations.

    Args:
        registry: Ledger registry collaborator
        executor: Ledger executor collaborator
        secrets: Opened secret store holding blinding factors
        proofs: Proof service
    """

    def __init__(
        self,
        registry: LedgerRegistry,
        executor: LedgerExecutor,
        secrets: SecretStore,
        proofs: ProofService,
    ):
        self.registry = registry
        self.executor = executor
        self.secrets = secrets
        self.proofs = proofs
        self._payment_locks = KeyedLock()

    async def register_company(self, company: str, admin: str, treasury: str) -> Company:
        return await self.registry.register_company(company, admin, treasury)

    # ------------------------------------------------------------------
    # Employee lifecycle
    # ------------------------------------------------------------------

    async def add_employee(self, company: str, employee: str, salary: int) -> Employee:
        """Commit to *salary* under a fresh blinding factor and register *employee*.

        Raises:
            EncodingError: If *salary* is not a valid amount.
            CompanyNotFoundError: If the company is not registered.
        """
        salary_to_field(salary)
        async with self.secrets.lock(company, employee):
            blinding = CommitmentEngine.generate_blinding_factor()
            commitment = CommitmentEngine.commit(salary, blinding)
            await self.secrets.put(company, employee, EmployeeSecret(salary, blinding))
            try:
                record = await self.registry.add_employee(company, employee, commitment)
            except PayrollError:
                await self.secrets.delete(company, employee)
                raise
        logger.info("Added employee %s to %s", employee, company)
        return record

    async def update_salary(self, company: str, employee: str, new_salary: int) -> bytes:
        """Rotate the employee's blinding factor and publish a new commitment.

        Returns:
            The new commitment.

        Raises:
            EmployeeNotFoundError: If the employee is unknown or inactive.
            SecretNotFoundError: If no secret is stored for the employee.
        """
        salary_to_field(new_salary)
        async with self.secrets.lock(company, employee):
            current = await self.registry.get_employee(company, employee)
            if not current.is_active:
                raise EmployeeNotFoundError(f"Employee {employee} is deactivated")
            previous = await self.secrets.get(company, employee)

            blinding = CommitmentEngine.generate_blinding_factor()
            commitment = CommitmentEngine.commit(new_salary, blinding)
            await self.secrets.put(company, employee, EmployeeSecret(new_salary, blinding))
            try:
                await self.registry.update_commitment(company, employee, commitment)
            except PayrollError:
                await self.secrets.put(company, employee, previous)
                raise
        logger.info("Rotated salary commitment for %s at %s", employee, company)
        return commitment

    async def deactivate_employee(self, company: str, employee: str) -> None:
        """Deactivate *employee* on the ledger and erase their blinding factor."""
        async with self.secrets.lock(company, employee):
            await self.registry.deactivate_employee(company, employee)
            await self.secrets.delete(company, employee)
        logger.info("Deactivated employee %s at %s", employee, company)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def process_payment(
        self,
        company: str,
        employee: str,
        period: int,
        amount: int | None = None,
    ) -> PaymentResult:
        """Prove and submit one salary payment.

        Args:
            company: Paying company
            employee: Employee address
            period: ``YYYYMM`` billing period
            amount: Amount to pay; defaults to the stored salary. The proof
                only succeeds when it equals the committed salary.

        Returns:
            A successful result, an ``already_paid`` result, or a failed
            result when the ledger rejected the proof.

        Raises:
            SecretNotFoundError: If no blinding factor is stored.
            EmployeeNotFoundError: If the employee is unknown or inactive.
            ProofGenerationError: If the stored secret no longer opens the
                registered commitment (or *amount* differs from it).
        """
        period = validate_period(period)
        async with self.secrets.lock(company, employee):
            record = await self.registry.get_employee(company, employee)
            if not record.is_active:
                raise EmployeeNotFoundError(f"Employee {employee} is deactivated")
            secret = await self.secrets.get(company, employee)
            salary = secret.salary if amount is None else amount
            commitment = record.salary_commitment

            async with self._payment_locks.hold((commitment, period)):
                if await self.executor.is_paid(company, employee, period):
                    logger.info("Period %d already paid for %s", period, employee)
                    return self._already_paid(employee, period)

                proof = await self.proofs.generate_payment_proof(
                    salary, secret.blinding, employee, commitment, period
                )
                try:
                    receipt = await self.executor.execute_payment(
                        company, employee, salary, proof, period
                    )
                except NullifierReplayError:
                    logger.info("Ledger reports period %d already paid for %s", period, employee)
                    return self._already_paid(employee, period)
                except ProofRejectedError as e:
                    logger.warning("Ledger rejected payment for %s: %s", employee, e)
                    return PaymentResult(
                        success=False,
                        employee=employee,
                        period=period,
                        error=str(e),
                        error_code=e.code,
                    )

        return PaymentResult(
            success=True,
            employee=employee,
            period=period,
            transaction_hash=receipt.transaction_hash,
        )

    @staticmethod
    def _already_paid(employee: str, period: int) -> PaymentResult:
        return PaymentResult(
            success=False,
            employee=employee,
            period=period,
            error="Period already paid",
            error_code=ErrorCode.ALREADY_PAID,
            already_paid=True,
        )

    async def _pay_one(self, company: str, employee: str, period: int) -> PaymentResult:
        try:
            return await self.process_payment(company, employee, period)
        except PayrollError as e:
            logger.warning("Payment for %s failed: %s", employee, e)
            return PaymentResult(
                success=False,
                employee=employee,
                period=period,
                error=str(e),
                error_code=e.code,
            )

    async def process_payroll(
        self,
        company: str,
        period: int,
        employees: list[str] | None = None,
    ) -> list[PaymentResult]:
        """Pay every active (or every listed) employee for *period*.

        Employees are processed concurrently; the proof service bounds how
        many proofs run at once. Failures, including missing secrets, become
        unsuccessful results instead of aborting the batch.
        """
        period = validate_period(period)
        if employees is None:
            employees = [e.address for e in await self.registry.list_active_employees(company)]

        results = await asyncio.gather(*(self._pay_one(company, e, period) for e in employees))

        paid = sum(r.success for r in results)
        logger.info(
            "Payroll %s period %d: %d/%d paid, %d already paid",
            company,
            period,
            paid,
            len(results),
            sum(r.already_paid for r in results),
        )
        return list(results)

    async def is_payment_complete(self, company: str, employee: str, period: int) -> bool:
        return await self.executor.is_paid(company, employee, validate_period(period))
