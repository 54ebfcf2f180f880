"""Tests for billing periods and nullifier derivation."""

import pytest

from zkpayroll.crypto.commitment import CommitmentEngine, blinding_to_field
from zkpayroll.crypto.field import CURVE_ORDER, decode_scalar, encode_scalar
from zkpayroll.crypto.nullifier import NullifierEngine, billing_period, validate_period
from zkpayroll.crypto.poseidon import poseidon
from zkpayroll.errors import EncodingError


class TestBillingPeriod:
    def test_format(self):
        assert billing_period(2026, 1) == 202601
        assert billing_period(2026, 12) == 202612

    @pytest.mark.parametrize("month", [0, 13])
    def test_bad_month(self, month):
        with pytest.raises(EncodingError, match="Month"):
            billing_period(2026, month)

    def test_bad_year(self):
        with pytest.raises(EncodingError, match="Year"):
            billing_period(1969, 5)

    def test_validate_accepts_canonical(self):
        assert validate_period(202603) == 202603

    @pytest.mark.parametrize("bad", [1767225600, 202600, 202613, 2026, -202601])
    def test_validate_rejects_non_periods(self, bad):
        with pytest.raises(EncodingError) as exc_info:
            validate_period(bad)
        assert exc_info.value.details == {"period": bad}

    def test_validate_rejects_non_int(self):
        with pytest.raises(EncodingError):
            validate_period("202601")


class TestDeriveNullifier:
    @pytest.fixture
    def commitment(self, blinding):
        return CommitmentEngine.commit(500_000, blinding)

    def test_matches_poseidon(self, commitment, blinding):
        nullifier = NullifierEngine.derive_nullifier(commitment, 202601, blinding)
        expected = poseidon([decode_scalar(commitment), 202601, blinding_to_field(blinding)])
        assert decode_scalar(nullifier) == expected

    def test_deterministic(self, commitment, blinding):
        first = NullifierEngine.derive_nullifier(commitment, 202601, blinding)
        second = NullifierEngine.derive_nullifier(commitment, 202601, blinding)
        assert first == second
        assert len(first) == 32

    def test_period_changes_nullifier(self, commitment, blinding):
        january = NullifierEngine.derive_nullifier(commitment, 202601, blinding)
        february = NullifierEngine.derive_nullifier(commitment, 202602, blinding)
        assert january != february

    def test_secret_changes_nullifier(self, commitment, blinding, other_blinding):
        a = NullifierEngine.derive_nullifier(commitment, 202601, blinding)
        b = NullifierEngine.derive_nullifier(commitment, 202601, other_blinding)
        assert a != b

    def test_commitment_changes_nullifier(self, blinding):
        a = NullifierEngine.derive_nullifier(CommitmentEngine.commit(1, blinding), 202601, blinding)
        b = NullifierEngine.derive_nullifier(CommitmentEngine.commit(2, blinding), 202601, blinding)
        assert a != b

    def test_distinct_from_commitment(self, commitment, blinding):
        assert NullifierEngine.derive_nullifier(commitment, 202601, blinding) != commitment

    def test_unreduced_commitment_rejected(self, blinding):
        with pytest.raises(EncodingError, match="reduced"):
            NullifierEngine.derive_nullifier(encode_scalar(CURVE_ORDER), 202601, blinding)

    def test_wrong_commitment_length_rejected(self, blinding):
        with pytest.raises(EncodingError):
            NullifierEngine.derive_nullifier(bytes(16), 202601, blinding)

    def test_timestamp_period_rejected(self, commitment, blinding):
        with pytest.raises(EncodingError):
            NullifierEngine.derive_nullifier(commitment, 1767225600, blinding)

    def test_short_secret_rejected(self, commitment):
        with pytest.raises(EncodingError):
            NullifierEngine.derive_nullifier(commitment, 202601, bytes(8))
