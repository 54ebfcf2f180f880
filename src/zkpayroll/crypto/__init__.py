"""Cryptographic primitives over the BN254 curve.

Provides:
- Fixed-width encodings of scalars and G1/G2 points
- Poseidon hashing over the scalar field
- Salary commitments and per-period nullifiers
- A Groth16 prover and verifier over rank-1 constraint systems
"""

from .commitment import BLINDING_FACTOR_SIZE, CommitmentEngine
from .field import (
    CURVE_ORDER,
    G1_SIZE,
    G2_SIZE,
    SCALAR_SIZE,
    HexBytes,
    decode_g1,
    decode_g2,
    decode_scalar,
    encode_g1,
    encode_g2,
    encode_scalar,
)
from .nullifier import NullifierEngine, billing_period
from .poseidon import hash_bytes, poseidon

__all__ = [
    "BLINDING_FACTOR_SIZE",
    "CURVE_ORDER",
    "CommitmentEngine",
    "G1_SIZE",
    "G2_SIZE",
    "HexBytes",
    "NullifierEngine",
    "SCALAR_SIZE",
    "billing_period",
    "decode_g1",
    "decode_g2",
    "decode_scalar",
    "encode_g1",
    "encode_g2",
    "encode_scalar",
    "hash_bytes",
    "poseidon",
]
