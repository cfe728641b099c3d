from __future__ import annotations


class LedgerError(Exception):
    pass


class ValidationError(LedgerError, ValueError):
    """Input rejected at the boundary; the record must not be stored."""


class SplitMismatch(ValidationError):
    def __init__(self, expected: int | str, actual: int | str, unit: str = "cents") -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Split {unit} sum to {actual}, expected {expected}")


class InvariantViolation(LedgerError):
    """Ledger data is internally inconsistent. Callers should alert, not retry."""


class PreconditionError(LedgerError):
    pass


class NotFoundError(LedgerError, LookupError):
    pass


class AuthorizationError(LedgerError, PermissionError):
    pass
