"""
core/exceptions.py -- Error taxonomy shared by the services and the API layer.

Services raise these; api/main.py turns every AccountError into a JSON body
{"message": ..., "code": ...} with the subclass's status_code. The message is
always safe to show to the client -- never put internal state in it.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for all errors surfaced to API clients."""

    status_code: int = 400
    default_code: str = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(AccountError):
    """Bad or inconsistent input (400)."""

    status_code = 400
    default_code = "invalid"


class ForbiddenError(AccountError):
    """No session, or a business rule forbids the change (403)."""

    status_code = 403
    default_code = "forbidden"

    def __init__(self, message: str = "Forbidden.", code: str | None = None) -> None:
        super().__init__(message, code)


class NotFoundError(AccountError):
    """The referenced account does not exist (404)."""

    status_code = 404
    default_code = "not_found"


class PayloadTooLargeError(AccountError):
    """Upload exceeds the configured size limit (413)."""

    status_code = 413
    default_code = "too_large"
