"""Payment proofs.

Provides:
- Encoded proofs, public inputs and verification keys
- The payment witness and its scrubbing
- Circuit backends (snarkjs and the in-process development circuit)
- An async proof service with bounded concurrency and timeouts
"""

from .circuit import (
    CircuitBackend,
    DevelopmentCircuit,
    SnarkjsCircuit,
    create_circuit,
    verify_groth16,
)
from .models import PROOF_SIZE, PaymentProof, PaymentPublicInputs, VerificationKeyMaterial
from .service import ProofService
from .witness import PaymentWitness, recipient_binding_hash

__all__ = [
    "PROOF_SIZE",
    "CircuitBackend",
    "DevelopmentCircuit",
    "PaymentProof",
    "PaymentPublicInputs",
    "PaymentWitness",
    "ProofService",
    "SnarkjsCircuit",
    "VerificationKeyMaterial",
    "create_circuit",
    "recipient_binding_hash",
    "verify_groth16",
]
