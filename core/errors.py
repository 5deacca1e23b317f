"""
core/errors.py -- Error taxonomy shared by the auth and reports layers.

Every expected rejection is a CarValueError subclass carrying a stable
machine-readable code and the HTTP status the API layer maps it to. Stores
and services raise these; api/main.py turns them into the JSON error envelope.
Nothing below api/ knows about HTTP beyond the status number.

StoreUnavailable is the one infrastructure error: it is logged and surfaced
as a server error, never retried here.
"""

from __future__ import annotations


class CarValueError(Exception):
    """Base class for errors that map to an HTTP error response."""

    status_code: int = 400
    code: str = "bad_request"
    message: str = "Request rejected."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class DuplicateIdentity(CarValueError):
    """Signup (or email change) with an email that is already registered."""

    status_code = 409
    code = "email_in_use"
    message = "Email already in use."


class IdentityNotFound(CarValueError):
    status_code = 404
    code = "user_not_found"
    message = "User not found."


class InvalidCredential(CarValueError):
    status_code = 400
    code = "bad_password"
    message = "Bad password."


class Unauthorized(CarValueError):
    """An access predicate evaluated false for a request with no signed-in user."""

    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class Forbidden(Unauthorized):
    """Signed in (or not), but the administrator predicate evaluated false."""

    status_code = 403
    code = "forbidden"
    message = "Admin access required."


class ReportNotFound(CarValueError):
    status_code = 404
    code = "report_not_found"
    message = "Report not found."


class StoreUnavailable(CarValueError):
    status_code = 503
    code = "store_unavailable"
    message = "Storage backend unavailable."
