"""zkpayroll - Privacy-preserving payroll with zero-knowledge payment proofs.

Salaries are published only as Poseidon commitments; each payment carries a
Groth16 proof that the paid amount opens the employee's commitment and a
per-period nullifier that makes a second payment for the same period
detectable. Auditors read scope-restricted reports through expiring view keys.

Key modules:

- :mod:`zkpayroll.crypto` - BN254 field codec, Poseidon, commitments, nullifiers, Groth16
- :mod:`zkpayroll.proofs` - Payment witness, circuit backends, async proof service
- :mod:`zkpayroll.audit` - Auditor view keys and scope-restricted reports
- :mod:`zkpayroll.ledger` - Ledger collaborator interfaces and payment records
- :mod:`zkpayroll.keystore` - Blinding-factor stores (memory, encrypted file, Vault)
- :mod:`zkpayroll.payroll` - Employee lifecycle and payment orchestration
"""

__version__ = "0.1.0"
