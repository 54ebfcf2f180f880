"""Wire models for payment proofs and verification keys.

Models hold the canonical byte encodings only (see
:mod:`zkpayroll.crypto.field`). Curve points are decoded when a proof is
verified, never earlier, so a malformed payload is always a clean
verification failure rather than a parsing error deep in the service.
"""

import hashlib
import logging

from pydantic import BaseModel, Field

from zkpayroll.crypto import groth16
from zkpayroll.crypto.field import (
    G1_SIZE,
    G2_SIZE,
    HexBytes,
    decode_g1,
    decode_g2,
    decode_scalar,
    encode_g1,
    encode_g2,
)
from zkpayroll.errors import EncodingError

logger = logging.getLogger(__name__)

PROOF_SIZE = 2 * G1_SIZE + G2_SIZE


class PaymentPublicInputs(BaseModel):
    """Public inputs of the payment circuit, in circuit order.

    Attributes:
        commitment: Salary commitment registered for the employee
        nullifier: Nullifier for (commitment, period)
        recipient_hash: Poseidon binding hash of the recipient identity
    """

    commitment: HexBytes
    nullifier: HexBytes
    recipient_hash: HexBytes

    def to_field_elements(self) -> list[int]:
        """Decode the three inputs as scalars.

        Raises:
            EncodingError: If any input is not exactly 32 bytes.
        """
        return [decode_scalar(v) for v in (self.commitment, self.nullifier, self.recipient_hash)]


class PaymentProof(BaseModel):
    """A Groth16 payment proof together with the public inputs it binds."""

    a: HexBytes = Field(description="G1 point, 64 bytes")
    b: HexBytes = Field(description="G2 point, 128 bytes")
    c: HexBytes = Field(description="G1 point, 64 bytes")
    public_inputs: PaymentPublicInputs

    @property
    def nullifier(self) -> bytes:
        return self.public_inputs.nullifier

    def to_bytes(self) -> bytes:
        """Encode as ``a || b || c`` (256 bytes)."""
        return self.a + self.b + self.c

    @classmethod
    def from_bytes(cls, data: bytes, public_inputs: PaymentPublicInputs) -> "PaymentProof":
        """Split a 256-byte proof encoding.

        Raises:
            EncodingError: If *data* is not exactly 256 bytes.
        """
        if len(data) != PROOF_SIZE:
            raise EncodingError(f"Proof must be {PROOF_SIZE} bytes, got {len(data)}")
        return cls(
            a=data[:G1_SIZE],
            b=data[G1_SIZE : G1_SIZE + G2_SIZE],
            c=data[G1_SIZE + G2_SIZE :],
            public_inputs=public_inputs,
        )

    @classmethod
    def from_groth16(
        cls, proof: groth16.Proof, public_inputs: PaymentPublicInputs
    ) -> "PaymentProof":
        return cls(
            a=encode_g1(proof.a),
            b=encode_g2(proof.b),
            c=encode_g1(proof.c),
            public_inputs=public_inputs,
        )

    def to_groth16(self) -> groth16.Proof:
        """Decode the curve points.

        Raises:
            EncodingError: On a wrong buffer length.
            InvalidPointError: If a point is not on its curve or subgroup.
        """
        return groth16.Proof(a=decode_g1(self.a), b=decode_g2(self.b), c=decode_g1(self.c))

    def digest(self) -> bytes:
        """SHA-256 over the proof bytes and nullifier, used as the record hash."""
        return hashlib.sha256(self.to_bytes() + self.nullifier).digest()


class VerificationKeyMaterial(BaseModel):
    """Encoded Groth16 verification key for initializing a ledger verifier.

    Attributes:
        alpha: alpha in G1 (64 bytes)
        beta: beta in G2 (128 bytes)
        gamma: gamma in G2 (128 bytes)
        delta: delta in G2 (128 bytes)
        ic: One G1 point per public input plus the constant term
    """

    alpha: HexBytes
    beta: HexBytes
    gamma: HexBytes
    delta: HexBytes
    ic: list[HexBytes]

    @classmethod
    def from_groth16(cls, vk: groth16.VerifyingKey) -> "VerificationKeyMaterial":
        return cls(
            alpha=encode_g1(vk.alpha_g1),
            beta=encode_g2(vk.beta_g2),
            gamma=encode_g2(vk.gamma_g2),
            delta=encode_g2(vk.delta_g2),
            ic=[encode_g1(p) for p in vk.ic],
        )

    def to_groth16(self) -> groth16.VerifyingKey:
        """Decode every point.

        Raises:
            EncodingError: On a wrong buffer length.
            InvalidPointError: If a point is not on its curve or subgroup.
        """
        return groth16.VerifyingKey(
            alpha_g1=decode_g1(self.alpha),
            beta_g2=decode_g2(self.beta),
            gamma_g2=decode_g2(self.gamma),
            delta_g2=decode_g2(self.delta),
            ic=[decode_g1(p) for p in self.ic],
        )

    @property
    def num_public_inputs(self) -> int:
        return len(self.ic) - 1

