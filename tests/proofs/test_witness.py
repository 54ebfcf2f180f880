"""Tests for the payment witness."""

import pytest

from zkpayroll.crypto.commitment import CommitmentEngine
from zkpayroll.crypto.field import CURVE_ORDER, decode_scalar, encode_scalar
from zkpayroll.crypto.nullifier import NullifierEngine
from zkpayroll.errors import ProofGenerationError
from zkpayroll.proofs.witness import PaymentWitness, recipient_binding_hash


def make_witness(salary, blinding, recipient="GALICE", period=202601, commitment=None):
    return PaymentWitness(
        salary=bytearray(encode_scalar(salary)),
        blinding=bytearray(blinding),
        recipient=recipient,
        commitment=commitment or CommitmentEngine.commit(salary, blinding),
        period=period,
    )


class TestRecipientBindingHash:
    def test_size_and_determinism(self):
        assert len(recipient_binding_hash("GALICE")) == 32
        assert recipient_binding_hash("GALICE") == recipient_binding_hash("GALICE")

    def test_distinct_recipients(self):
        assert recipient_binding_hash("GALICE") != recipient_binding_hash("GBOB")

    def test_in_field(self):
        assert decode_scalar(recipient_binding_hash("GALICE")) < CURVE_ORDER


class TestPaymentWitness:
    def test_values(self, blinding):
        witness = make_witness(500_000, blinding)
        assert witness.salary_value == 500_000
        assert witness.blinding_value == int.from_bytes(blinding, "big")

    def test_public_inputs(self, blinding):
        witness = make_witness(500_000, blinding, recipient="GBOB", period=202602)
        commitment = CommitmentEngine.commit(500_000, blinding)
        inputs = witness.public_inputs
        assert inputs.commitment == commitment
        assert inputs.nullifier == NullifierEngine.derive_nullifier(commitment, 202602, blinding)
        assert inputs.recipient_hash == recipient_binding_hash("GBOB")

    def test_public_inputs_cached(self, blinding):
        witness = make_witness(1, blinding)
        assert witness.public_inputs is witness.public_inputs

    def test_stale_opening_rejected(self, blinding, other_blinding):
        stale = CommitmentEngine.commit(500_000, other_blinding)
        witness = make_witness(500_000, blinding, commitment=stale)
        with pytest.raises(ProofGenerationError, match="do not open"):
            witness.public_inputs

    def test_wrong_amount_rejected(self, blinding):
        commitment = CommitmentEngine.commit(500_000, blinding)
        witness = make_witness(400_000, blinding, commitment=commitment)
        with pytest.raises(ProofGenerationError):
            witness.public_inputs

    def test_scrub_zeroes_buffers(self, blinding):
        witness = make_witness(500_000, blinding)
        salary_buf, blinding_buf = witness.salary, witness.blinding
        assert not witness.scrubbed

        witness.scrub()

        assert witness.scrubbed
        assert salary_buf == bytearray(32)
        assert blinding_buf == bytearray(32)

    def test_scrub_does_not_touch_caller_bytes(self, blinding):
        original = bytes(blinding)
        witness = make_witness(1, blinding)
        witness.scrub()
        assert blinding == original
