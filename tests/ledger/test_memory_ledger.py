"""Tests for the in-process reference ledger."""

import pytest

from zkpayroll.crypto.commitment import CommitmentEngine
from zkpayroll.crypto.field import encode_scalar
from zkpayroll.errors import (
    CompanyNotFoundError,
    EmployeeNotFoundError,
    NullifierReplayError,
    ProofRejectedError,
)
from zkpayroll.ledger.memory import InMemoryLedger
from zkpayroll.ledger.records import PaymentRecordStore
from zkpayroll.proofs.witness import PaymentWitness

BLINDING = bytes(range(1, 33))
SALARY = 500_000
COMMITMENT = CommitmentEngine.commit(SALARY, BLINDING)


@pytest.fixture(scope="module")
def alice_proof(dev_circuit):
    """Valid proof paying GALICE for 202601."""
    witness = PaymentWitness(
        salary=bytearray(encode_scalar(SALARY)),
        blinding=bytearray(BLINDING),
        recipient="GALICE",
        commitment=COMMITMENT,
        period=202601,
    )
    return dev_circuit.prove(witness)


@pytest.fixture
def ledger(dev_circuit):
    return InMemoryLedger(dev_circuit.verification_key())


async def register(ledger, employees=("GALICE",)):
    await ledger.register_company("acme", "GADMIN", "GTREASURY")
    for employee in employees:
        await ledger.add_employee("acme", employee, COMMITMENT)


class TestRegistry:
    @pytest.mark.asyncio
    async def test_register_and_add(self, ledger):
        await register(ledger, ("GALICE", "GBOB"))

        employee = await ledger.get_employee("acme", "GBOB")

        assert employee.salary_commitment == COMMITMENT
        assert employee.is_active
        assert ledger._companies["acme"].employee_count == 2

    @pytest.mark.asyncio
    async def test_add_to_unknown_company(self, ledger):
        with pytest.raises(CompanyNotFoundError):
            await ledger.add_employee("acme", "GALICE", COMMITMENT)

    @pytest.mark.asyncio
    async def test_unknown_employee(self, ledger):
        await register(ledger)
        with pytest.raises(EmployeeNotFoundError) as exc_info:
            await ledger.get_employee("acme", "GNOBODY")
        assert exc_info.value.details == {"company": "acme", "employee": "GNOBODY"}

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, ledger):
        await register(ledger)
        employee = await ledger.get_employee("acme", "GALICE")
        employee.is_active = False
        assert (await ledger.get_employee("acme", "GALICE")).is_active

    @pytest.mark.asyncio
    async def test_update_commitment(self, ledger):
        await register(ledger)
        await ledger.update_commitment("acme", "GALICE", b"\x07" * 32)
        assert (await ledger.get_employee("acme", "GALICE")).salary_commitment == b"\x07" * 32

    @pytest.mark.asyncio
    async def test_deactivate(self, ledger):
        await register(ledger, ("GALICE", "GBOB"))

        await ledger.deactivate_employee("acme", "GALICE")
        await ledger.deactivate_employee("acme", "GALICE")

        active = await ledger.list_active_employees("acme")
        assert [e.address for e in active] == ["GBOB"]
        assert ledger._companies["acme"].employee_count == 1
        with pytest.raises(EmployeeNotFoundError):
            await ledger.update_commitment("acme", "GALICE", b"\x07" * 32)

    @pytest.mark.asyncio
    async def test_list_unknown_company(self, ledger):
        with pytest.raises(CompanyNotFoundError):
            await ledger.list_active_employees("globex")


class TestExecutePayment:
    @pytest.mark.asyncio
    async def test_accepts_valid_proof(self, ledger, alice_proof):
        await register(ledger)

        receipt = await ledger.execute_payment("acme", "GALICE", SALARY, alice_proof, 202601)

        assert len(receipt.transaction_hash) == 64
        assert receipt.nullifier == alice_proof.nullifier
        assert await ledger.is_paid("acme", "GALICE", 202601)
        assert not await ledger.is_paid("acme", "GALICE", 202602)
        [record] = ledger.records.query("acme")
        assert record.amount == SALARY
        assert record.proof_hash == alice_proof.digest()
        employee = await ledger.get_employee("acme", "GALICE")
        assert employee.last_payment_timestamp == record.timestamp

    @pytest.mark.asyncio
    async def test_replay_rejected(self, ledger, alice_proof):
        await register(ledger)
        await ledger.execute_payment("acme", "GALICE", SALARY, alice_proof, 202601)

        with pytest.raises(NullifierReplayError):
            await ledger.execute_payment("acme", "GALICE", SALARY, alice_proof, 202601)

        assert ledger.records.count() == 1

    @pytest.mark.asyncio
    async def test_fresh_proof_for_paid_period_rejected(self, ledger, dev_circuit, alice_proof):
        await register(ledger)
        await ledger.execute_payment("acme", "GALICE", SALARY, alice_proof, 202601)
        fresh = dev_circuit.prove(
            PaymentWitness(
                salary=bytearray(encode_scalar(SALARY)),
                blinding=bytearray(BLINDING),
                recipient="GALICE",
                commitment=COMMITMENT,
                period=202601,
            )
        )

        assert fresh.to_bytes() != alice_proof.to_bytes()
        assert fresh.nullifier == alice_proof.nullifier
        with pytest.raises(NullifierReplayError):
            await ledger.execute_payment("acme", "GALICE", SALARY, fresh, 202601)

        assert ledger.records.count() == 1

    @pytest.mark.asyncio
    async def test_wrong_commitment(self, ledger, alice_proof):
        await register(ledger)
        await ledger.update_commitment("acme", "GALICE", b"\x07" * 32)

        with pytest.raises(ProofRejectedError, match="commitment"):
            await ledger.execute_payment("acme", "GALICE", SALARY, alice_proof, 202601)

    @pytest.mark.asyncio
    async def test_proof_for_other_recipient(self, ledger, alice_proof):
        await register(ledger, ("GALICE", "GMALLORY"))

        with pytest.raises(ProofRejectedError, match="recipient"):
            await ledger.execute_payment("acme", "GMALLORY", SALARY, alice_proof, 202601)

    @pytest.mark.asyncio
    async def test_tampered_proof(self, ledger, alice_proof):
        await register(ledger)
        tampered = alice_proof.model_copy(update={"c": alice_proof.a})

        with pytest.raises(ProofRejectedError, match="verification failed"):
            await ledger.execute_payment("acme", "GALICE", SALARY, tampered, 202601)

        assert not await ledger.is_paid("acme", "GALICE", 202601)

    @pytest.mark.asyncio
    async def test_deactivated_employee(self, ledger, alice_proof):
        await register(ledger)
        await ledger.deactivate_employee("acme", "GALICE")

        with pytest.raises(ProofRejectedError, match="deactivated"):
            await ledger.execute_payment("acme", "GALICE", SALARY, alice_proof, 202601)

    @pytest.mark.asyncio
    async def test_records_written_to_given_store(self, dev_circuit, alice_proof, tmp_path):
        store = PaymentRecordStore(tmp_path / "records.db")
        ledger = InMemoryLedger(dev_circuit.verification_key(), records=store)
        await register(ledger)

        await ledger.execute_payment("acme", "GALICE", SALARY, alice_proof, 202601)

        assert PaymentRecordStore(tmp_path / "records.db").is_recorded("acme", "GALICE", 202601)
