"""Payment nullifiers and billing periods.

A nullifier is ``Poseidon(commitment, period, blinding)``. The ledger executor
records every accepted nullifier and rejects a second payment carrying the same
value, so at most one payment per (commitment, period) is ever accepted.

Nullifiers are a pure function of their three inputs. Periods are canonical
``YYYYMM`` integers agreed with the ledger registry; wall-clock timestamps are
rejected so that the verifier can always recompute the same value.

Because the blinding factor is mixed in, the nullifiers of one commitment for
different periods cannot be linked to each other (or to nullifiers of another
employee) without knowing the secret.
"""

import logging

from zkpayroll.crypto.commitment import blinding_to_field
from zkpayroll.crypto.field import CURVE_ORDER, decode_scalar, encode_scalar
from zkpayroll.crypto.poseidon import poseidon
from zkpayroll.errors import EncodingError

logger = logging.getLogger(__name__)

MIN_YEAR = 1970
MAX_YEAR = 9999


def billing_period(year: int, month: int) -> int:
    """Build the canonical ``YYYYMM`` period for *year* and *month*.

    Raises:
        EncodingError: If the month is not 1-12 or the year is out of range.
    """
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise EncodingError(f"Year {year} outside [{MIN_YEAR}, {MAX_YEAR}]")
    if not 1 <= month <= 12:
        raise EncodingError(f"Month {month} outside [1, 12]")
    return year * 100 + month


def validate_period(period: int) -> int:
    """Return *period* unchanged if it is a valid ``YYYYMM`` value.

    Raises:
        EncodingError: For anything else, including Unix timestamps.
    """
    if not isinstance(period, int) or isinstance(period, bool):
        raise EncodingError(f"Period must be an int, got {type(period).__name__}")
    year, month = divmod(period, 100)
    try:
        return billing_period(year, month)
    except EncodingError:
        raise EncodingError(
            f"Period {period} is not a YYYYMM billing period", details={"period": period}
        ) from None


class NullifierEngine:
    """Derive double-payment nullifiers."""

    @staticmethod
    def derive_nullifier(commitment: bytes, period: int, secret: bytes | bytearray) -> bytes:
        """Derive the nullifier for paying *commitment* in *period*.

        Args:
            commitment: 32-byte salary commitment
            period: Canonical ``YYYYMM`` billing period
            secret: The commitment's 32-byte blinding factor

        Returns:
            The 32-byte nullifier.

        Raises:
            EncodingError: If any input is malformed.
        """
        commitment_value = decode_scalar(commitment)
        if commitment_value >= CURVE_ORDER:
            raise EncodingError("Commitment is not a reduced scalar-field element")
        period = validate_period(period)

        digest = poseidon([commitment_value, period, blinding_to_field(secret)])
        nullifier = encode_scalar(digest)
        logger.debug(
            "Derived nullifier %s for commitment %s period %d",
            nullifier.hex()[:16],
            bytes(commitment).hex()[:16],
            period,
        )
        return nullifier
