"""Circuit backends for payment proofs.

The payment circuit is an external artifact: a compiled constraint system and
the proving/verification keys produced by a trusted setup. This module wraps
it behind :class:`CircuitBackend` so :class:`~zkpayroll.proofs.service.ProofService`
never touches file paths or toolchains directly.

Backends:

- :class:`SnarkjsCircuit` drives an externally compiled circom circuit
  (``payment.wasm`` + ``payment_final.zkey``) through the ``snarkjs`` CLI.
- :class:`DevelopmentCircuit` runs an in-process Groth16 over a small
  constraint system that binds the three public inputs. Its trusted setup is
  derived from a seed, so anyone can forge proofs for it. Tests and local
  development only.

Every backend verifies with the same in-process Groth16 verifier, which is the
reference the ledger-side verifier must agree with.
"""

import json
import logging
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from zkpayroll.config.schema import CircuitConfig
from zkpayroll.crypto import groth16
from zkpayroll.crypto.field import G1_SIZE, G2_SIZE, decode_g1, decode_g2, encode_scalar
from zkpayroll.errors import PayrollError, ProofGenerationError
from zkpayroll.proofs.models import PaymentProof, PaymentPublicInputs, VerificationKeyMaterial
from zkpayroll.proofs.witness import PaymentWitness

logger = logging.getLogger(__name__)

DEFAULT_DEV_SEED = b"zkpayroll-development-circuit"

# Seconds between checks on a running snarkjs child
_POLL_INTERVAL = 0.1


class CircuitBackend(ABC):
    """Opaque proving capability for the payment circuit."""

    name: str = "circuit"

    @abstractmethod
    def prove(self, witness: PaymentWitness) -> PaymentProof:
        """Produce a proof for *witness*. Blocking and CPU heavy.

        Runs in a worker thread. Implementations that can stop part way
        should give up once ``witness.abandoned`` is set.

        Raises:
            ProofGenerationError: If the witness does not satisfy the circuit
                or the artifacts are unusable.
        """

    @abstractmethod
    def verification_key(self) -> VerificationKeyMaterial:
        """Return the encoded verification key of this circuit."""

    def verify(
        self,
        proof: PaymentProof,
        public_inputs: PaymentPublicInputs,
        verification_key: VerificationKeyMaterial,
    ) -> bool:
        """Groth16 pairing check. Never raises."""
        return verify_groth16(proof, public_inputs, verification_key)


def verify_groth16(
    proof: PaymentProof,
    public_inputs: PaymentPublicInputs,
    verification_key: VerificationKeyMaterial,
) -> bool:
    """Verify an encoded proof against encoded public inputs and key.

    Malformed encodings, off-curve points and wrong input counts are all
    reported as ``False``.
    """
    try:
        vk = verification_key.to_groth16()
        decoded = proof.to_groth16()
        inputs = public_inputs.to_field_elements()
    except PayrollError as e:
        logger.debug("Rejecting malformed proof or key: %s", e)
        return False
    return groth16.verify(vk, inputs, decoded)


# ---------------------------------------------------------------------------
# In-process development circuit
# ---------------------------------------------------------------------------

# Wire layout: constant one, three public inputs, then private wires
_ONE, _COMMITMENT, _NULLIFIER, _RECIPIENT = 0, 1, 2, 3
_SALARY, _BLINDING, _PRODUCT = 4, 5, 6
_COPIES = (7, 8, 9)
_NUM_WIRES = 10
_NUM_PUBLIC = 4


def payment_constraint_system() -> groth16.R1CS:
    """Constraint system of the development circuit.

    Each public input is tied to a private copy so that it carries a distinct
    verification-key term, and the private salary and blinding factor enter a
    product constraint.
    """
    system = groth16.R1CS(num_wires=_NUM_WIRES, num_public=_NUM_PUBLIC)
    system.add_constraint({_SALARY: 1}, {_BLINDING: 1}, {_PRODUCT: 1})
    for public, copy in zip((_COMMITMENT, _NULLIFIER, _RECIPIENT), _COPIES, strict=True):
        system.add_constraint({copy: 1}, {_ONE: 1}, {public: 1})
    return system


class DevelopmentCircuit(CircuitBackend):
    """In-process Groth16 with a seed-derived (insecure) trusted setup.

    The Poseidon relations (commitment opening, nullifier, recipient hash) are
    checked natively while the witness is built; the constraint system then
    binds the public inputs into the proof.

    Args:
        seed: Seed for the toxic waste. The same seed always yields the same keys.
    """

    name = "development"

    def __init__(self, seed: bytes = DEFAULT_DEV_SEED):
        self._system = payment_constraint_system()
        self._pk, self._vk = groth16.setup(self._system, seed=seed)
        self._vk_material = VerificationKeyMaterial.from_groth16(self._vk)
        logger.warning("Using development circuit; its setup is not secure")

    def _assignment(self, witness: PaymentWitness) -> list[int]:
        public = witness.public_inputs.to_field_elements()
        salary, blinding = witness.salary_value, witness.blinding_value
        values = [0] * _NUM_WIRES
        values[_ONE] = 1
        values[_COMMITMENT], values[_NULLIFIER], values[_RECIPIENT] = public
        values[_SALARY] = salary
        values[_BLINDING] = blinding
        values[_PRODUCT] = salary * blinding % groth16.R
        for copy, value in zip(_COPIES, public, strict=True):
            values[copy] = value
        return values

    def prove(self, witness: PaymentWitness) -> PaymentProof:
        if witness.abandoned.is_set():
            raise ProofGenerationError("Proof request was abandoned")
        public_inputs = witness.public_inputs
        assignment = self._assignment(witness)
        try:
            proof = groth16.prove(self._system, self._pk, assignment)
        except ValueError as e:
            raise ProofGenerationError(f"Witness does not satisfy the circuit: {e}") from e
        finally:
            assignment.clear()
        return PaymentProof.from_groth16(proof, public_inputs)

    def verification_key(self) -> VerificationKeyMaterial:
        return self._vk_material


# ---------------------------------------------------------------------------
# snarkjs-backed circuit
# ---------------------------------------------------------------------------


def _g1_from_json(coords: list[Any]) -> bytes:
    x, y, z = (int(v) for v in coords)
    if z == 0:
        return bytes(G1_SIZE)
    data = encode_scalar(x) + encode_scalar(y)
    decode_g1(data)
    return data


def _g2_from_json(coords: list[list[Any]]) -> bytes:
    (x0, x1), (y0, y1), (z0, z1) = ((int(a), int(b)) for a, b in coords)
    if z0 == 0 and z1 == 0:
        return bytes(G2_SIZE)
    data = b"".join(encode_scalar(v) for v in (x0, x1, y0, y1))
    decode_g2(data)
    return data


def verification_key_from_snarkjs(data: dict[str, Any]) -> VerificationKeyMaterial:
    """Convert a snarkjs ``verification_key.json`` document.

    Raises:
        ProofGenerationError: If the document is not a BN254 Groth16 key.
    """
    if data.get("protocol") != "groth16" or data.get("curve") not in ("bn128", "bn254"):
        raise ProofGenerationError("Verification key is not a BN254 Groth16 key")
    try:
        return VerificationKeyMaterial(
            alpha=_g1_from_json(data["vk_alpha_1"]),
            beta=_g2_from_json(data["vk_beta_2"]),
            gamma=_g2_from_json(data["vk_gamma_2"]),
            delta=_g2_from_json(data["vk_delta_2"]),
            ic=[_g1_from_json(p) for p in data["IC"]],
        )
    except (KeyError, TypeError, ValueError, PayrollError) as e:
        raise ProofGenerationError(f"Corrupt verification key: {e}") from e


class SnarkjsCircuit(CircuitBackend):
    """Payment circuit compiled with circom and proven with ``snarkjs``.

    Args:
        wasm_path: Witness generator (``payment.wasm``)
        zkey_path: Final proving key (``payment_final.zkey``)
        verification_key_path: ``verification_key.json`` exported from the zkey
        snarkjs_bin: snarkjs executable
        timeout: Upper bound in seconds for one ``fullprove`` run
    """

    name = "snarkjs"

    def __init__(
        self,
        wasm_path: Path,
        zkey_path: Path,
        verification_key_path: Path,
        snarkjs_bin: str = "snarkjs",
        timeout: float | None = None,
    ):
        self.wasm_path = Path(wasm_path)
        self.zkey_path = Path(zkey_path)
        self.verification_key_path = Path(verification_key_path)
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

        for path in (self.wasm_path, self.zkey_path, self.verification_key_path):
            if not path.is_file():
                raise ProofGenerationError(f"Circuit artifact not found: {path}")

        try:
            document = json.loads(self.verification_key_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ProofGenerationError(f"Cannot read verification key: {e}") from e
        self._vk_material = verification_key_from_snarkjs(document)
        if self._vk_material.num_public_inputs != 3:
            raise ProofGenerationError(
                f"Circuit exposes {self._vk_material.num_public_inputs} public inputs, expected 3"
            )
        logger.info("Loaded snarkjs circuit artifacts from %s", self.zkey_path.parent)

    def verification_key(self) -> VerificationKeyMaterial:
        return self._vk_material

    def _circuit_inputs(self, witness: PaymentWitness) -> dict[str, str]:
        commitment, nullifier, recipient_hash = witness.public_inputs.to_field_elements()
        return {
            "salary": str(witness.salary_value),
            "blindingFactor": str(witness.blinding_value),
            "commitment": str(commitment),
            "nullifier": str(nullifier),
            "recipientHash": str(recipient_hash),
        }

    def _wait(self, process: subprocess.Popen, witness: PaymentWitness) -> str:
        """Wait for *process* and return its stderr.

        The child is killed when the timeout elapses or the witness is
        abandoned.
        """
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while True:
            try:
                _, stderr = process.communicate(timeout=_POLL_INTERVAL)
                return stderr or ""
            except subprocess.TimeoutExpired:
                if witness.abandoned.is_set():
                    reason = "abandoned"
                elif deadline is not None and time.monotonic() >= deadline:
                    reason = "timed out"
                else:
                    continue
            process.kill()
            process.communicate()
            logger.warning("Killed snarkjs (pid %s): proof generation %s", process.pid, reason)
            raise ProofGenerationError(f"snarkjs proof generation {reason}")

    def prove(self, witness: PaymentWitness) -> PaymentProof:
        public_inputs = witness.public_inputs
        expected = [str(v) for v in public_inputs.to_field_elements()]

        with tempfile.TemporaryDirectory(prefix="zkpayroll-") as temp_dir:
            temp_path = Path(temp_dir)
            input_file = temp_path / "input.json"
            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"
            input_file.write_text(json.dumps(self._circuit_inputs(witness)))
            input_file.chmod(0o600)

            cmd = [
                self.snarkjs_bin,
                "groth16",
                "fullprove",
                str(input_file),
                str(self.wasm_path),
                str(self.zkey_path),
                str(proof_file),
                str(public_file),
            ]
            try:
                try:
                    process = subprocess.Popen(
                        cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
                    )
                except FileNotFoundError as e:
                    raise ProofGenerationError(f"snarkjs executable not found: {e}") from e
                stderr = self._wait(process, witness)
            finally:
                input_file.write_bytes(b"\x00" * input_file.stat().st_size)

            if process.returncode != 0:
                raise ProofGenerationError(
                    "snarkjs proof generation failed", details={"stderr": stderr[-2000:]}
                )

            try:
                proof = json.loads(proof_file.read_text())
                signals = json.loads(public_file.read_text())
            except (OSError, json.JSONDecodeError) as e:
                raise ProofGenerationError(f"Unreadable snarkjs output: {e}") from e

        if [str(s) for s in signals] != expected:
            raise ProofGenerationError("Circuit public signals do not match the payment inputs")

        try:
            return PaymentProof(
                a=_g1_from_json(proof["pi_a"]),
                b=_g2_from_json(proof["pi_b"]),
                c=_g1_from_json(proof["pi_c"]),
                public_inputs=public_inputs,
            )
        except (KeyError, TypeError, ValueError, PayrollError) as e:
            raise ProofGenerationError(f"Malformed snarkjs proof: {e}") from e


def create_circuit(config: CircuitConfig, timeout: float | None = None) -> CircuitBackend:
    """Build the circuit backend selected by *config*.

    Raises:
        ProofGenerationError: If the snarkjs artifacts are missing or corrupt.
    """
    if config.backend == "snarkjs":
        return SnarkjsCircuit(
            wasm_path=Path(config.wasm_path).expanduser(),
            zkey_path=Path(config.zkey_path).expanduser(),
            verification_key_path=Path(config.verification_key_path).expanduser(),
            snarkjs_bin=config.snarkjs_bin,
            timeout=timeout,
        )
    return DevelopmentCircuit(seed=config.dev_seed.encode())
