"""Circulation error taxonomy.

Every error carries the HTTP status the API answers with and an optional
payload (limit values, current status) so callers can explain the refusal.
"""


class CirculationError(Exception):
    """Base exception."""

    status_code = 400

    def __init__(self, message: str, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, **self.payload}


class ValidationError(CirculationError):
    """Raised for malformed or missing input."""

    status_code = 400


class NotFoundError(CirculationError):
    """Raised when a member, copy, loan, reservation or fine does not exist."""

    status_code = 404


class ForbiddenError(CirculationError):
    """Raised for inactive accounts, ownership mismatches and role restrictions."""

    status_code = 403


# *** conflicts: the current state does not allow the transition ***


class ConflictError(CirculationError):
    status_code = 409


class CopyUnavailableError(ConflictError):
    """Raised when the target copy is not in a state that allows checkout."""


class AlreadyReturnedError(ConflictError):
    status_code = 400


class AlreadyTerminalError(ConflictError):
    """Raised when a reservation is already fulfilled, cancelled or expired."""

    status_code = 400


class FineAlreadyResolvedError(ConflictError):
    status_code = 400


class AlreadyHasLoanError(ConflictError):
    pass


class AlreadyHasHoldError(ConflictError):
    pass


class AlreadyAvailableError(ConflictError):
    """Raised when a hold is requested for a book that can be checked out now.

    The payload always carries ``available=True`` so a client can offer a
    checkout instead of showing an error.
    """

    def __init__(self, message: str, **payload):
        payload.setdefault("available", True)
        super().__init__(message, **payload)


# *** policy violations: the request is well formed but library rules refuse it ***


class PolicyViolationError(CirculationError):
    status_code = 403


class LoanLimitExceededError(PolicyViolationError):
    pass


class FineThresholdError(PolicyViolationError):
    pass


class MaxRenewalsReachedError(PolicyViolationError):
    status_code = 400


class HasWaitingHoldsError(PolicyViolationError):
    status_code = 409
