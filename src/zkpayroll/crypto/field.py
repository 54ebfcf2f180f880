"""Canonical byte encodings for BN254 scalars and curve points.

Every value that crosses the boundary between this core and the ledger (or any
other implementation of the protocol) uses these fixed-width, big-endian
encodings:

=================  ======  ==================================================
Value              Size    Layout
=================  ======  ==================================================
scalar             32      big-endian, zero-padded
G1 point           64      ``x || y``
G2 point           128     ``x0 || x1 || y0 || y1`` with ``x = x0 + x1*u``
=================  ======  ==================================================

The point at infinity is encoded as all-zero bytes in both groups.

Decoding never trusts the byte length alone: coordinates must be reduced field
elements, the point must satisfy the curve equation, and G2 points must lie in
the order-``r`` subgroup.

Example:
    >>> from py_ecc import optimized_bn128 as bn128
    >>> from zkpayroll.crypto.field import decode_g1, encode_g1
    >>>
    >>> p = bn128.multiply(bn128.G1, 5)
    >>> assert bn128.eq(decode_g1(encode_g1(p)), p)
"""

import logging
from typing import Annotated, Any

from py_ecc import optimized_bn128 as bn128
from py_ecc.fields import optimized_bn128_FQ as FQ
from py_ecc.fields import optimized_bn128_FQ2 as FQ2
from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import PlainValidator

from zkpayroll.errors import EncodingError, InvalidPointError

logger = logging.getLogger(__name__)

SCALAR_SIZE = 32
G1_SIZE = 2 * SCALAR_SIZE
G2_SIZE = 4 * SCALAR_SIZE

# Order of the BN254 scalar field (the proof system's field)
CURVE_ORDER: int = bn128.curve_order

# Prime of the BN254 base field (point coordinates)
FIELD_MODULUS: int = bn128.field_modulus

_MAX_UINT256 = (1 << 256) - 1

G1Point = tuple[FQ, FQ, FQ]
G2Point = tuple[FQ2, FQ2, FQ2]


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def encode_scalar(value: int) -> bytes:
    """Encode a non-negative integer below 2^256 as 32 big-endian bytes.

    Raises:
        EncodingError: If *value* is not an int, is negative or exceeds 2^256-1.
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodingError(f"Expected int scalar, got {type(value).__name__}")
    if value < 0 or value > _MAX_UINT256:
        raise EncodingError("Scalar out of range [0, 2^256-1]")
    return value.to_bytes(SCALAR_SIZE, "big")


def decode_scalar(data: bytes) -> int:
    """Decode exactly 32 big-endian bytes into an integer.

    Raises:
        EncodingError: If *data* is not a 32-byte buffer.
    """
    if not isinstance(data, bytes | bytearray | memoryview):
        raise EncodingError(f"Expected bytes, got {type(data).__name__}")
    if len(data) != SCALAR_SIZE:
        raise EncodingError(f"Scalar must be {SCALAR_SIZE} bytes, got {len(data)}")
    return int.from_bytes(data, "big")


def to_field(value: int | bytes) -> int:
    """Reduce an integer or big-endian byte string into the scalar field."""
    if isinstance(value, bytes | bytearray | memoryview):
        value = int.from_bytes(value, "big")
    return value % CURVE_ORDER


def _coeff(value: Any) -> int:
    # py_ecc stores extension-field coefficients either as ints or as FQ
    return int(getattr(value, "n", value))


def _split(data: bytes, size: int, label: str) -> list[int]:
    if not isinstance(data, bytes | bytearray | memoryview):
        raise EncodingError(f"Expected bytes for {label}, got {type(data).__name__}")
    if len(data) != size:
        raise EncodingError(f"{label} must be {size} bytes, got {len(data)}")
    coords = [
        int.from_bytes(data[i : i + SCALAR_SIZE], "big") for i in range(0, size, SCALAR_SIZE)
    ]
    if any(c >= FIELD_MODULUS for c in coords):
        raise InvalidPointError(f"{label} coordinate is not a reduced base-field element")
    return coords


# ---------------------------------------------------------------------------
# G1
# ---------------------------------------------------------------------------


def encode_g1(point: G1Point) -> bytes:
    """Encode a G1 point as ``x || y`` (64 bytes)."""
    if bn128.is_inf(point):
        return bytes(G1_SIZE)
    x, y = bn128.normalize(point)
    return encode_scalar(_coeff(x)) + encode_scalar(_coeff(y))


def decode_g1(data: bytes) -> G1Point:
    """Decode 64 bytes into a G1 point, validating curve membership.

    Raises:
        EncodingError: If *data* is not 64 bytes.
        InvalidPointError: If the coordinates are not a point on the curve.
    """
    x, y = _split(data, G1_SIZE, "G1 point")
    if x == 0 and y == 0:
        return bn128.Z1
    point = (FQ(x), FQ(y), FQ.one())
    # BN254 G1 has cofactor 1, so curve membership implies subgroup membership
    if not bn128.is_on_curve(point, bn128.b):
        raise InvalidPointError("Bytes do not describe a point on the G1 curve")
    return point


# ---------------------------------------------------------------------------
# G2
# ---------------------------------------------------------------------------


def encode_g2(point: G2Point) -> bytes:
    """Encode a G2 point as ``x0 || x1 || y0 || y1`` (128 bytes)."""
    if bn128.is_inf(point):
        return bytes(G2_SIZE)
    x, y = bn128.normalize(point)
    x0, x1 = (_coeff(c) for c in x.coeffs)
    y0, y1 = (_coeff(c) for c in y.coeffs)
    return b"".join(encode_scalar(c) for c in (x0, x1, y0, y1))


def decode_g2(data: bytes) -> G2Point:
    """Decode 128 bytes into a G2 point, validating curve and subgroup.

    Raises:
        EncodingError: If *data* is not 128 bytes.
        InvalidPointError: If the point is off the twist or outside the
            order-r subgroup.
    """
    x0, x1, y0, y1 = _split(data, G2_SIZE, "G2 point")
    if not any((x0, x1, y0, y1)):
        return bn128.Z2
    point = (FQ2([x0, x1]), FQ2([y0, y1]), FQ2.one())
    if not bn128.is_on_curve(point, bn128.b2):
        raise InvalidPointError("Bytes do not describe a point on the G2 twist")
    if not bn128.is_inf(bn128.multiply(point, CURVE_ORDER)):
        raise InvalidPointError("G2 point is not in the prime-order subgroup")
    return point


# ---------------------------------------------------------------------------
# Model helpers
# ---------------------------------------------------------------------------


def _validate_hex(value: Any) -> bytes:
    """Accept bytes or a hex string (optionally ``0x``-prefixed)."""
    if isinstance(value, bytes | bytearray):
        return bytes(value)
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            return bytes.fromhex(text)
        except ValueError as e:
            raise ValueError(f"Invalid hex string: {e}") from e
    raise ValueError(f"Expected bytes or hex str, got {type(value).__name__}")


def _serialize_hex(value: bytes) -> str:
    return "0x" + value.hex()


# Annotated type that round-trips bytes through 0x-hex in JSON
HexBytes = Annotated[
    bytes,
    PlainValidator(_validate_hex),
    PlainSerializer(_serialize_hex, return_type=str, when_used="json"),
]
