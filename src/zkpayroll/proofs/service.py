"""Payment proof orchestration.

:class:`ProofService` assembles the circuit inputs for a payment and runs the
injected :class:`~zkpayroll.proofs.circuit.CircuitBackend` off the event loop.

Private inputs: salary, blinding factor.
Public inputs: commitment, nullifier, recipient binding hash (in that order).

Proof generation is CPU bound and can take seconds, so it runs in a worker
thread, bounded by a semaphore and an optional timeout. A worker cannot be
interrupted. On timeout or cancellation the caller gets control back at once
and the witness is marked abandoned, while the worker keeps its concurrency
slot until it actually returns. The private working buffers are zeroed when the
worker is done with them.

Example:
    >>> from zkpayroll.proofs.circuit import DevelopmentCircuit
    >>> from zkpayroll.proofs.service import ProofService
    >>>
    >>> service = ProofService(DevelopmentCircuit())
    >>> proof = await service.generate_payment_proof(
    ...     salary, blinding, "0xrecipient", commitment, period=202601
    ... )
    >>> vk = service.export_verification_key()
    >>> assert service.verify_proof(proof, proof.public_inputs, vk)
"""

import asyncio
import functools
import logging
import time

from zkpayroll.crypto.commitment import BLINDING_FACTOR_SIZE, salary_to_field
from zkpayroll.crypto.field import SCALAR_SIZE, encode_scalar
from zkpayroll.crypto.nullifier import validate_period
from zkpayroll.errors import EncodingError, ProofGenerationError
from zkpayroll.proofs.circuit import CircuitBackend
from zkpayroll.proofs.models import PaymentProof, PaymentPublicInputs, VerificationKeyMaterial
from zkpayroll.proofs.witness import PaymentWitness

logger = logging.getLogger(__name__)


class ProofService:
    """Generate and verify payment proofs.

    Args:
        circuit: Circuit backend used for proving
        max_concurrent_proofs: Upper bound on proofs computed at the same time
        proof_timeout: Seconds before an in-flight proof is abandoned (None
            disables the timeout)
    """

    def __init__(
        self,
        circuit: CircuitBackend,
        max_concurrent_proofs: int = 4,
        proof_timeout: float | None = 120.0,
    ):
        if max_concurrent_proofs < 1:
            raise ValueError("max_concurrent_proofs must be at least 1")
        self.circuit = circuit
        self.max_concurrent_proofs = max_concurrent_proofs
        self.proof_timeout = proof_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent_proofs)

        self.stats = {"generated": 0, "failed": 0, "cancelled": 0, "timed_out": 0}

    def _build_witness(
        self,
        salary: int,
        blinding: bytes | bytearray,
        recipient: str,
        commitment: bytes,
        period: int,
    ) -> PaymentWitness:
        salary_to_field(salary)
        if not isinstance(blinding, bytes | bytearray) or len(blinding) != BLINDING_FACTOR_SIZE:
            raise EncodingError(f"Blinding factor must be {BLINDING_FACTOR_SIZE} bytes")
        if not isinstance(commitment, bytes | bytearray) or len(commitment) != SCALAR_SIZE:
            raise EncodingError(f"Commitment must be {SCALAR_SIZE} bytes")
        if not recipient:
            raise EncodingError("Recipient identity must not be empty")
        return PaymentWitness(
            salary=bytearray(encode_scalar(salary)),
            blinding=bytearray(blinding),
            recipient=recipient,
            commitment=bytes(commitment),
            period=validate_period(period),
        )

    def _job_finished(self, witness: PaymentWitness, job: asyncio.Future) -> None:
        """Release the slot and zero the witness once the worker returns."""
        if not job.cancelled() and job.exception() is not None and witness.abandoned.is_set():
            logger.debug(
                "Abandoned proof for period %d ended with: %s", witness.period, job.exception()
            )
        witness.scrub()
        self._semaphore.release()

    async def generate_payment_proof(
        self,
        salary: int,
        blinding: bytes | bytearray,
        recipient: str,
        commitment: bytes,
        period: int,
    ) -> PaymentProof:
        """Prove payment of *salary* to *recipient* for *period*.

        Args:
            salary: Salary in the smallest currency unit (private)
            blinding: 32-byte blinding factor of *commitment* (private)
            recipient: Recipient identity (ledger address)
            commitment: The employee's registered commitment
            period: ``YYYYMM`` billing period

        Returns:
            The encoded proof with its public inputs.

        Raises:
            EncodingError: If an input is malformed.
            ProofGenerationError: If the inputs do not satisfy the circuit,
                the artifacts are unusable, or the timeout elapsed.
            asyncio.CancelledError: If the caller cancelled. Buffers are
                scrubbed once the abandoned worker returns.
        """
        witness = self._build_witness(salary, blinding, recipient, commitment, period)
        try:
            await self._semaphore.acquire()
        except asyncio.CancelledError:
            witness.scrub()
            self.stats["cancelled"] += 1
            raise

        start = time.perf_counter()
        job = asyncio.ensure_future(asyncio.to_thread(self.circuit.prove, witness))
        job.add_done_callback(functools.partial(self._job_finished, witness))
        try:
            proof = await asyncio.wait_for(asyncio.shield(job), timeout=self.proof_timeout)
        except TimeoutError:
            witness.abandon()
            self.stats["timed_out"] += 1
            logger.warning(
                "Proof generation for period %d exceeded %.1fs", period, self.proof_timeout
            )
            raise ProofGenerationError(
                f"Proof generation timed out after {self.proof_timeout}s"
            ) from None
        except asyncio.CancelledError:
            witness.abandon()
            self.stats["cancelled"] += 1
            logger.info("Proof generation for period %d cancelled", period)
            raise
        except ProofGenerationError:
            self.stats["failed"] += 1
            raise
        elapsed = time.perf_counter() - start

        self.stats["generated"] += 1
        logger.info(
            "Generated %s proof for period %d in %.2fs (nullifier %s)",
            self.circuit.name,
            period,
            elapsed,
            proof.nullifier.hex()[:16],
        )
        return proof

    def verify_proof(
        self,
        proof: PaymentProof,
        public_inputs: PaymentPublicInputs,
        verification_key: VerificationKeyMaterial,
    ) -> bool:
        """Verify *proof* for *public_inputs* under *verification_key*.

        Total: malformed encodings and failed pairing checks return False.
        """
        valid = self.circuit.verify(proof, public_inputs, verification_key)
        if not valid:
            logger.warning(
                "Proof verification failed (nullifier %s)", public_inputs.nullifier.hex()[:16]
            )
        return valid

    def export_verification_key(self) -> VerificationKeyMaterial:
        """Encoded verification key for initializing the ledger verifier."""
        return self.circuit.verification_key()
