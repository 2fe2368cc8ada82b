"""
Status manager exceptions.

Every failure raised by the status list core derives from
StatusManagerError and carries a short machine-readable ``code``.
"""

from __future__ import annotations


class StatusManagerError(Exception):
    """Base exception for status list operations."""

    code = "STATUS_MANAGER_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class RangeError(StatusManagerError, IndexError):
    """Bit position outside the list capacity."""

    code = "OUT_OF_RANGE"

    def __init__(self, position: int, capacity: int) -> None:
        self.position = position
        self.capacity = capacity
        super().__init__(f"Position {position} out of range [0, {capacity})")


class DecodeError(StatusManagerError, ValueError):
    """Malformed base64 or compressed payload."""

    code = "DECODE_FAILED"


class ValidationError(StatusManagerError, ValueError):
    """A credential or its credentialStatus violates a validation rule."""

    code = "VALIDATION_FAILED"

    def __init__(self, rule: str, message: str) -> None:
        self.rule = rule
        super().__init__(message)

    @classmethod
    def invalid_field(cls, field: str, reason: str) -> ValidationError:
        return cls(rule=field, message=f"Invalid credentialStatus {field}: {reason}")

    @classmethod
    def purpose_mismatch(cls, expected: str, actual: str | None) -> ValidationError:
        return cls(
            rule="purpose",
            message=f"Purpose mismatch: expected '{expected}', got '{actual}'",
        )

    @classmethod
    def unauthorized_scheme(cls, expected: str, actual: str) -> ValidationError:
        return cls(
            rule="scheme",
            message=f"Unauthorized scheme: URI scheme should be '{expected}', got '{actual}'",
        )

    @classmethod
    def empty_batch(cls) -> ValidationError:
        return cls(rule="credentials", message="At least one credential is required")


class ConsistencyError(StatusManagerError):
    """Credentials of one batch disagree on status list or purpose."""

    code = "INCONSISTENT_BATCH"

    def __init__(self, message: str = "Status lists must be the same") -> None:
        super().__init__(message)


class LedgerError(StatusManagerError):
    """Opaque failure reported by the ledger accessor."""

    code = "LEDGER_ERROR"

    @classmethod
    def not_found(cls, address: str) -> LedgerError:
        return cls(f"Contract not found: {address}", code="CONTRACT_NOT_FOUND")

    @classmethod
    def operation_failed(cls, op_hash: str, reason: str | None = None) -> LedgerError:
        detail = f": {reason}" if reason else ""
        return cls(f"Operation {op_hash} failed{detail}", code="OPERATION_FAILED")

    @classmethod
    def confirmation_timeout(cls, op_hash: str, timeout: float) -> LedgerError:
        return cls(
            f"Operation {op_hash} not confirmed after {timeout:.0f}s",
            code="CONFIRMATION_TIMEOUT",
        )
