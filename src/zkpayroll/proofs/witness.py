"""Payment witness: the private and public assignment of one proof.

The private half (salary and blinding factor) lives in ``bytearray`` buffers
owned by the witness so it can be zeroed in place once the proof is done or
abandoned. Public inputs are derived lazily from the private half.
"""

import functools
import logging
import threading
from dataclasses import dataclass, field

from zkpayroll.crypto.commitment import CommitmentEngine
from zkpayroll.crypto.field import CURVE_ORDER, encode_scalar
from zkpayroll.crypto.nullifier import NullifierEngine
from zkpayroll.crypto.poseidon import hash_bytes
from zkpayroll.errors import ProofGenerationError
from zkpayroll.proofs.models import PaymentPublicInputs

logger = logging.getLogger(__name__)

# Domain tag separating recipient hashes from every other Poseidon use
RECIPIENT_DOMAIN = int.from_bytes(b"zkpayroll.recipient", "big")


def recipient_binding_hash(recipient: str) -> bytes:
    """Hash a recipient identity (ledger address) into a 32-byte public input."""
    return encode_scalar(hash_bytes(recipient.encode("utf-8"), domain=RECIPIENT_DOMAIN))


@dataclass(eq=False)
class PaymentWitness:
    """Inputs for one payment proof.

    Attributes:
        salary: 32-byte big-endian salary buffer (private)
        blinding: 32-byte blinding factor buffer (private)
        recipient: Recipient identity bound into the proof
        commitment: Registered salary commitment
        period: ``YYYYMM`` billing period
        abandoned: Set once the requester stops waiting for the proof.
            Backends that can stop early should watch it.
    """

    salary: bytearray
    blinding: bytearray
    recipient: str
    commitment: bytes
    period: int
    abandoned: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def salary_value(self) -> int:
        return int.from_bytes(self.salary, "big")

    @property
    def blinding_value(self) -> int:
        return int.from_bytes(self.blinding, "big") % CURVE_ORDER

    @property
    def scrubbed(self) -> bool:
        return not any(self.salary) and not any(self.blinding)

    @functools.cached_property
    def public_inputs(self) -> PaymentPublicInputs:
        """Derive (commitment, nullifier, recipient hash).

        Raises:
            ProofGenerationError: If the private inputs do not open the
                commitment, e.g. a stale locally stored blinding factor.
        """
        if not CommitmentEngine.verify(self.commitment, self.salary_value, self.blinding):
            raise ProofGenerationError(
                "Private inputs do not open the registered commitment",
                details={"commitment": self.commitment.hex()[:16], "period": self.period},
            )
        return PaymentPublicInputs(
            commitment=self.commitment,
            nullifier=NullifierEngine.derive_nullifier(self.commitment, self.period, self.blinding),
            recipient_hash=recipient_binding_hash(self.recipient),
        )

    def abandon(self) -> None:
        self.abandoned.set()

    def scrub(self) -> None:
        """Zero the private buffers in place."""
        for buf in (self.salary, self.blinding):
            for i in range(len(buf)):
                buf[i] = 0
        logger.debug("Scrubbed witness for period %d", self.period)
