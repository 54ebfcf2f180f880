"""Tests for payroll orchestration."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from zkpayroll.crypto.commitment import CommitmentEngine
from zkpayroll.errors import (
    CompanyNotFoundError,
    EmployeeNotFoundError,
    EncodingError,
    ErrorCode,
    NullifierReplayError,
    ProofGenerationError,
    ProofRejectedError,
    SecretNotFoundError,
)
from zkpayroll.keystore import InMemorySecretStore
from zkpayroll.ledger.base import LedgerExecutor, SubmissionReceipt
from zkpayroll.ledger.memory import InMemoryLedger
from zkpayroll.payroll import PayrollService
from zkpayroll.proofs.models import PROOF_SIZE, PaymentProof, PaymentPublicInputs
from zkpayroll.proofs.service import ProofService

ZERO_PROOF = PaymentProof.from_bytes(
    bytes(PROOF_SIZE),
    PaymentPublicInputs(commitment=bytes(32), nullifier=bytes(32), recipient_hash=bytes(32)),
)


def mock_proofs() -> Mock:
    proofs = Mock(spec=ProofService)
    proofs.generate_payment_proof.return_value = ZERO_PROOF
    return proofs


def mock_executor(paid: set | None = None) -> Mock:
    """Executor that accepts every proof once per (employee, period)."""
    paid = set() if paid is None else paid
    executor = Mock(spec=LedgerExecutor)

    def is_paid(company, employee, period):
        return (employee, period) in paid

    def execute_payment(company, employee, amount, proof, period):
        if (employee, period) in paid:
            raise NullifierReplayError("Nullifier already used")
        paid.add((employee, period))
        return SubmissionReceipt(
            transaction_hash="ab" * 32,
            company=company,
            employee=employee,
            period=period,
            nullifier=proof.nullifier,
        )

    executor.is_paid.side_effect = is_paid
    executor.execute_payment.side_effect = execute_payment
    return executor


async def make_service(ledger, executor=None, proofs=None) -> PayrollService:
    secrets = InMemorySecretStore()
    await secrets.open()
    await ledger.register_company("acme", "GADMIN", "GTREASURY")
    return PayrollService(ledger, executor or ledger, secrets, proofs or mock_proofs())


@pytest.fixture
def ledger(dev_circuit):
    return InMemoryLedger(dev_circuit.verification_key())


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_pay_once_then_already_paid(self, ledger, dev_circuit):
        service = await make_service(ledger, proofs=ProofService(dev_circuit))
        await service.add_employee("acme", "GALICE", 500_000)

        first = await service.process_payment("acme", "GALICE", 202601)
        second = await service.process_payment("acme", "GALICE", 202601)

        assert first.success
        assert first.transaction_hash
        assert not second.success
        assert second.already_paid
        assert second.error_code == ErrorCode.ALREADY_PAID
        assert await service.is_payment_complete("acme", "GALICE", 202601)
        assert not await service.is_payment_complete("acme", "GALICE", 202602)
        [record] = ledger.records.query("acme")
        assert record.amount == 500_000
        assert service.proofs.stats["generated"] == 1

    @pytest.mark.asyncio
    async def test_amount_other_than_committed_salary(self, ledger, dev_circuit):
        service = await make_service(ledger, proofs=ProofService(dev_circuit))
        await service.add_employee("acme", "GALICE", 500_000)

        with pytest.raises(ProofGenerationError):
            await service.process_payment("acme", "GALICE", 202601, amount=499_999)

        assert not await service.is_payment_complete("acme", "GALICE", 202601)


class TestEmployeeLifecycle:
    @pytest.mark.asyncio
    async def test_add_employee_stores_opening(self, ledger):
        service = await make_service(ledger)

        employee = await service.add_employee("acme", "GALICE", 500_000)

        secret = await service.secrets.get("acme", "GALICE")
        assert secret.salary == 500_000
        assert CommitmentEngine.verify(employee.salary_commitment, 500_000, secret.blinding)

    @pytest.mark.asyncio
    async def test_add_employee_invalid_salary(self, ledger):
        service = await make_service(ledger)
        with pytest.raises(EncodingError):
            await service.add_employee("acme", "GALICE", -5)
        assert await service.secrets.list_employees("acme") == []

    @pytest.mark.asyncio
    async def test_add_employee_unknown_company_erases_secret(self, ledger):
        service = await make_service(ledger)

        with pytest.raises(CompanyNotFoundError):
            await service.add_employee("globex", "GALICE", 500_000)

        assert await service.secrets.list_employees("globex") == []

    @pytest.mark.asyncio
    async def test_update_salary_rotates_blinding(self, ledger):
        service = await make_service(ledger)
        await service.add_employee("acme", "GALICE", 500_000)
        before = await service.secrets.get("acme", "GALICE")

        commitment = await service.update_salary("acme", "GALICE", 550_000)

        after = await service.secrets.get("acme", "GALICE")
        assert after.salary == 550_000
        assert after.blinding != before.blinding
        assert (await ledger.get_employee("acme", "GALICE")).salary_commitment == commitment
        assert CommitmentEngine.verify(commitment, 550_000, after.blinding)

    @pytest.mark.asyncio
    async def test_update_salary_restores_secret_on_ledger_failure(self, ledger):
        service = await make_service(ledger)
        await service.add_employee("acme", "GALICE", 500_000)
        before = await service.secrets.get("acme", "GALICE")

        with (
            patch.object(
                ledger,
                "update_commitment",
                AsyncMock(side_effect=EmployeeNotFoundError("gone")),
            ),
            pytest.raises(EmployeeNotFoundError),
        ):
            await service.update_salary("acme", "GALICE", 550_000)

        restored = await service.secrets.get("acme", "GALICE")
        assert restored.salary == 500_000
        assert restored.blinding == before.blinding

    @pytest.mark.asyncio
    async def test_update_salary_of_deactivated_employee(self, ledger):
        service = await make_service(ledger)
        await service.add_employee("acme", "GALICE", 500_000)
        await service.deactivate_employee("acme", "GALICE")

        with pytest.raises(EmployeeNotFoundError):
            await service.update_salary("acme", "GALICE", 550_000)

    @pytest.mark.asyncio
    async def test_deactivate_erases_secret(self, ledger):
        service = await make_service(ledger)
        await service.add_employee("acme", "GALICE", 500_000)

        await service.deactivate_employee("acme", "GALICE")

        with pytest.raises(SecretNotFoundError):
            await service.secrets.get("acme", "GALICE")
        with pytest.raises(EmployeeNotFoundError):
            await service.process_payment("acme", "GALICE", 202601)


class TestProcessPayment:
    @pytest.mark.asyncio
    async def test_ledger_replay_is_already_paid(self, ledger):
        executor = mock_executor()
        executor.execute_payment.side_effect = NullifierReplayError("Nullifier already used")
        service = await make_service(ledger, executor=executor)
        await service.add_employee("acme", "GALICE", 500_000)

        result = await service.process_payment("acme", "GALICE", 202601)

        assert result.already_paid
        assert result.error_code == ErrorCode.ALREADY_PAID
        executor.execute_payment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_proof_is_failed_result(self, ledger):
        executor = mock_executor()
        executor.execute_payment.side_effect = ProofRejectedError("Proof verification failed")
        service = await make_service(ledger, executor=executor)
        await service.add_employee("acme", "GALICE", 500_000)

        result = await service.process_payment("acme", "GALICE", 202601)

        assert not result.success
        assert not result.already_paid
        assert result.error_code == ErrorCode.INVALID_PROOF
        assert "verification failed" in result.error

    @pytest.mark.asyncio
    async def test_paid_period_skips_proving(self, ledger):
        proofs = mock_proofs()
        service = await make_service(
            ledger, executor=mock_executor({("GALICE", 202601)}), proofs=proofs
        )
        await service.add_employee("acme", "GALICE", 500_000)

        result = await service.process_payment("acme", "GALICE", 202601)

        assert result.already_paid
        proofs.generate_payment_proof.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_proof_built_from_stored_opening(self, ledger):
        proofs = mock_proofs()
        service = await make_service(ledger, executor=mock_executor(), proofs=proofs)
        employee = await service.add_employee("acme", "GALICE", 500_000)
        secret = await service.secrets.get("acme", "GALICE")

        await service.process_payment("acme", "GALICE", 202601)

        proofs.generate_payment_proof.assert_awaited_once_with(
            500_000, secret.blinding, "GALICE", employee.salary_commitment, 202601
        )

    @pytest.mark.asyncio
    async def test_concurrent_payments_submit_once(self, ledger):
        executor = mock_executor()
        service = await make_service(ledger, executor=executor)
        await service.add_employee("acme", "GALICE", 500_000)

        results = await asyncio.gather(
            *(service.process_payment("acme", "GALICE", 202601) for _ in range(3))
        )

        assert sum(r.success for r in results) == 1
        assert sum(r.already_paid for r in results) == 2
        executor.execute_payment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_period(self, ledger):
        service = await make_service(ledger)
        await service.add_employee("acme", "GALICE", 500_000)

        with pytest.raises(EncodingError):
            await service.process_payment("acme", "GALICE", 1767225600)

    @pytest.mark.asyncio
    async def test_missing_secret(self, ledger):
        service = await make_service(ledger, executor=mock_executor())
        await ledger.add_employee("acme", "GALICE", b"\x01" * 32)

        with pytest.raises(SecretNotFoundError):
            await service.process_payment("acme", "GALICE", 202601)


class TestProcessPayroll:
    @pytest.mark.asyncio
    async def test_pays_active_employees(self, ledger):
        service = await make_service(ledger, executor=mock_executor())
        for employee, salary in (("GALICE", 500_000), ("GBOB", 400_000), ("GCAROL", 450_000)):
            await service.add_employee("acme", employee, salary)
        await service.deactivate_employee("acme", "GCAROL")

        results = await service.process_payroll("acme", 202601)

        assert [r.employee for r in results] == ["GALICE", "GBOB"]
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_missing_secret_reported(self, ledger):
        service = await make_service(ledger, executor=mock_executor())
        await service.add_employee("acme", "GALICE", 500_000)
        await ledger.add_employee("acme", "GBOB", b"\x01" * 32)

        results = await service.process_payroll("acme", 202601)

        by_employee = {r.employee: r for r in results}
        assert by_employee["GALICE"].success
        assert not by_employee["GBOB"].success
        assert by_employee["GBOB"].error_code == ErrorCode.SECRET_NOT_FOUND

    @pytest.mark.asyncio
    async def test_explicit_employee_list(self, ledger):
        executor = mock_executor({("GALICE", 202601)})
        service = await make_service(ledger, executor=executor)
        await service.add_employee("acme", "GALICE", 500_000)
        await service.add_employee("acme", "GBOB", 400_000)

        results = await service.process_payroll("acme", 202601, employees=["GALICE", "GNOBODY"])

        assert results[0].already_paid
        assert results[1].error_code == ErrorCode.EMPLOYEE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_invalid_period(self, ledger):
        service = await make_service(ledger)
        with pytest.raises(EncodingError):
            await service.process_payroll("acme", 202613)
