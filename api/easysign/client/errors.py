"""Client-side error taxonomy for the EasySign API.

Every failure coming back from the persistence service is raised as one of
these, so the optimistic layer can decide between rollback, logging and
surfacing to the user without looking at raw HTTP responses.
"""
from typing import Optional


class EasySignError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationFailedError(EasySignError):
    """The request was malformed or incomplete (missing geometry, bad email)."""


class StateConflictError(EasySignError):
    """The document or signer is no longer in draft."""


class AuthorizationError(EasySignError):
    pass


class NotFoundError(EasySignError):
    pass


class TransientError(EasySignError):
    """Network failure or server-side error; the same call may succeed later."""


class SignerUnavailableError(EasySignError):
    """No persisted signer could be resolved for a recipient."""


_FINALIZED_MARKERS = ("finalized", "not available for signing", "already completed")


def error_for_response(status_code: int, detail: str) -> EasySignError:
    if status_code in (400, 422):
        if any(marker in detail.lower() for marker in _FINALIZED_MARKERS):
            return StateConflictError(detail, status_code)
        return ValidationFailedError(detail, status_code)
    if status_code in (401, 403):
        return AuthorizationError(detail, status_code)
    if status_code == 404:
        return NotFoundError(detail, status_code)
    if status_code >= 500:
        return TransientError(detail, status_code)
    return EasySignError(detail, status_code)
