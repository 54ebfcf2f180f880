"""Salary commitments: ``C = Poseidon(salary, blinding)``.

The commitment is *hiding* (the blinding factor masks the salary) and
*binding* (Poseidon is collision resistant, so it opens to exactly one pair).
It is deterministic because the payment circuit recomputes it from the
private inputs and compares against the public value.

Example:
    >>> from zkpayroll.crypto.commitment import CommitmentEngine
    >>>
    >>> blinding = CommitmentEngine.generate_blinding_factor()
    >>> commitment = CommitmentEngine.commit(500_000, blinding)
    >>> assert CommitmentEngine.verify(commitment, 500_000, blinding)
"""

import hmac
import logging
import secrets

from zkpayroll.crypto.field import CURVE_ORDER, SCALAR_SIZE, encode_scalar, to_field
from zkpayroll.crypto.poseidon import poseidon
from zkpayroll.errors import EncodingError, PayrollError

logger = logging.getLogger(__name__)

BLINDING_FACTOR_SIZE = 32


def salary_to_field(salary: int) -> int:
    """Validate a salary (smallest currency unit) as a scalar-field element.

    Raises:
        EncodingError: If *salary* is not an int in ``[0, r)``.
    """
    if not isinstance(salary, int) or isinstance(salary, bool):
        raise EncodingError(f"Salary must be an int, got {type(salary).__name__}")
    if not 0 <= salary < CURVE_ORDER:
        raise EncodingError("Salary must be a non-negative scalar-field element")
    return salary


def blinding_to_field(blinding: bytes | bytearray) -> int:
    """Interpret a 32-byte blinding factor as a scalar-field element.

    Raises:
        EncodingError: If *blinding* is not exactly 32 bytes.
    """
    if not isinstance(blinding, bytes | bytearray) or len(blinding) != BLINDING_FACTOR_SIZE:
        raise EncodingError(f"Blinding factor must be {BLINDING_FACTOR_SIZE} bytes")
    return to_field(blinding)


class CommitmentEngine:
    """Create and open salary commitments."""

    @staticmethod
    def generate_blinding_factor() -> bytes:
        """Return 32 bytes from the operating system CSPRNG."""
        return secrets.token_bytes(BLINDING_FACTOR_SIZE)

    @staticmethod
    def commit(salary: int, blinding: bytes | bytearray) -> bytes:
        """Commit to *salary* under *blinding*.

        Returns:
            The 32-byte big-endian commitment.

        Raises:
            EncodingError: If either input is malformed.
        """
        digest = poseidon([salary_to_field(salary), blinding_to_field(blinding)])
        commitment = encode_scalar(digest)
        logger.debug("Created salary commitment %s", commitment.hex()[:16])
        return commitment

    @staticmethod
    def verify(commitment: bytes, salary: int, blinding: bytes | bytearray) -> bool:
        """Return True iff *commitment* opens to ``(salary, blinding)``.

        The comparison is constant time over the 32 output bytes. Malformed
        inputs yield False rather than an exception.
        """
        if not isinstance(commitment, bytes | bytearray) or len(commitment) != SCALAR_SIZE:
            return False
        try:
            recomputed = CommitmentEngine.commit(salary, blinding)
        except PayrollError:
            return False
        return hmac.compare_digest(recomputed, bytes(commitment))
