"""Ledger collaborator interfaces.

The payment core talks to the public ledger through two narrow interfaces:

- :class:`LedgerRegistry` holds companies and employees with their current
  salary commitment.
- :class:`LedgerExecutor` accepts a proof + nullifier + period as a payment,
  rejects duplicate nullifiers and failed proofs, and answers "is this period
  paid".

Transaction construction, signing, fees and RPC retries belong to concrete
adapters and are outside this package.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from zkpayroll.crypto.field import HexBytes
from zkpayroll.proofs.models import PaymentProof


class Company(BaseModel):
    """A registered employer."""

    id: str
    admin: str
    treasury: str
    employee_count: int = 0
    is_active: bool = True


class Employee(BaseModel):
    """An employee as recorded by the ledger registry.

    Attributes:
        company: Employing company
        address: Employee ledger address (payment recipient)
        salary_commitment: Current 32-byte salary commitment
        is_active: False once deactivated
        last_payment_timestamp: When the last accepted payment landed
    """

    company: str
    address: str
    salary_commitment: HexBytes
    is_active: bool = True
    last_payment_timestamp: datetime | None = None


class SubmissionReceipt(BaseModel):
    """Acknowledgement of an accepted payment."""

    transaction_hash: str
    company: str
    employee: str
    period: int
    nullifier: HexBytes
    accepted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class LedgerRegistry(ABC):
    """Company and employee registry."""

    @abstractmethod
    async def register_company(self, company: str, admin: str, treasury: str) -> Company:
        """Register *company*."""

    @abstractmethod
    async def add_employee(self, company: str, employee: str, commitment: bytes) -> Employee:
        """Register *employee* with their first salary commitment.

        Raises:
            CompanyNotFoundError: If the company is not registered.
        """

    @abstractmethod
    async def get_employee(self, company: str, employee: str) -> Employee:
        """Look up an employee.

        Raises:
            EmployeeNotFoundError: If the employee is unknown.
        """

    @abstractmethod
    async def update_commitment(self, company: str, employee: str, commitment: bytes) -> None:
        """Replace the employee's salary commitment."""

    @abstractmethod
    async def deactivate_employee(self, company: str, employee: str) -> None:
        """Mark the employee inactive; no further payments are accepted."""

    @abstractmethod
    async def list_active_employees(self, company: str) -> list[Employee]:
        """Active employees of *company*."""


class LedgerExecutor(ABC):
    """Payment executor."""

    @abstractmethod
    async def execute_payment(
        self,
        company: str,
        employee: str,
        amount: int,
        proof: PaymentProof,
        period: int,
    ) -> SubmissionReceipt:
        """Submit a payment.

        Raises:
            NullifierReplayError: If the nullifier (or the employee's period)
                was already paid.
            ProofRejectedError: If the proof does not verify or is not bound
                to the employee's commitment and address.
        """

    @abstractmethod
    async def is_paid(self, company: str, employee: str, period: int) -> bool:
        """Whether *employee* has an accepted payment for *period*."""
