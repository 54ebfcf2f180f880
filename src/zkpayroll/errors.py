"""Error taxonomy for zkpayroll.

Every error raised by the payment core derives from :class:`PayrollError` and
carries an :class:`ErrorCode` so SDK callers can branch on a stable value
instead of on exception text.

Local, caller-fixable errors:

- :class:`EncodingError` - malformed byte length or out-of-range value
- :class:`InvalidPointError` - bytes do not decode to a point on the curve
- :class:`InvalidScopeError` / :class:`ExpiredViewKeyError` - bad audit input

Prover-side errors:

- :class:`ProofGenerationError` - witness does not satisfy the circuit, or the
  circuit artifact is missing/corrupt
- :class:`SecretNotFoundError` - no blinding factor stored for an employee

Ledger-side rejections surfaced to the core:

- :class:`NullifierReplayError` - the period is already paid; never retried
- :class:`ProofRejectedError` - the ledger verifier rejected the proof

Proof *verification* is a boolean outcome and has no exception type.
"""

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Stable error codes shared with SDK callers."""

    ENCODING = "ENCODING"
    INVALID_POINT = "INVALID_POINT"
    PROOF_GENERATION = "PROOF_GENERATION"
    INVALID_PROOF = "INVALID_PROOF"
    ALREADY_PAID = "ALREADY_PAID"
    SECRET_NOT_FOUND = "SECRET_NOT_FOUND"
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    COMPANY_NOT_FOUND = "COMPANY_NOT_FOUND"
    VIEW_KEY_EXPIRED = "VIEW_KEY_EXPIRED"
    INVALID_SCOPE = "INVALID_SCOPE"
    SECRET_STORE = "SECRET_STORE"


class PayrollError(Exception):
    """Base class for all zkpayroll errors.

    Attributes:
        code: Stable machine-readable error code.
        details: Optional structured context (never secret material).
    """

    code: ErrorCode = ErrorCode.ENCODING

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class EncodingError(PayrollError):
    """A value or buffer cannot be encoded/decoded at the byte boundary."""

    code = ErrorCode.ENCODING


class InvalidPointError(PayrollError):
    """Bytes do not describe a valid point of the expected curve group."""

    code = ErrorCode.INVALID_POINT


class ProofGenerationError(PayrollError):
    """Proof construction failed and cannot succeed by retrying."""

    code = ErrorCode.PROOF_GENERATION


class ProofRejectedError(PayrollError):
    """The ledger executor rejected a submitted proof."""

    code = ErrorCode.INVALID_PROOF


class NullifierReplayError(PayrollError):
    """The ledger already recorded this nullifier (period already paid)."""

    code = ErrorCode.ALREADY_PAID


class SecretNotFoundError(PayrollError):
    """No blinding factor is stored for the requested employee."""

    code = ErrorCode.SECRET_NOT_FOUND


class SecretStoreError(PayrollError):
    """The secret store backend failed (transport, decryption, lifecycle)."""

    code = ErrorCode.SECRET_STORE


class EmployeeNotFoundError(PayrollError):
    """The ledger registry has no record of the employee."""

    code = ErrorCode.EMPLOYEE_NOT_FOUND


class CompanyNotFoundError(PayrollError):
    """The ledger registry has no record of the company."""

    code = ErrorCode.COMPANY_NOT_FOUND


class ExpiredViewKeyError(PayrollError):
    """The view key is revoked or past its expiry time."""

    code = ErrorCode.VIEW_KEY_EXPIRED


class InvalidScopeError(PayrollError):
    """A view key request has an invalid duration or scope."""

    code = ErrorCode.INVALID_SCOPE
