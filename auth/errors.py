"""
auth/errors.py -- Error taxonomy for the auth use cases.

Every failure a use case can report is one of the classes below. Callers
branch on the class (or on .code), never on message text. Messages are
user-safe: storage and provider failures carry a fixed message and chain the
original exception (raise ... from exc) so the cause is only visible in
server-side logs.

status_code is the HTTP status the api/ layer answers with. It lives here so
the mapping stays next to the taxonomy instead of being repeated per route.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error a use case returns to its caller."""

    code: str = "auth_error"
    message: str = "Authentication failed."
    status_code: int = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationFailed(AuthError):
    """Request shape rejected before any storage access.

    errors maps a field name to a human-readable reason, e.g.
    {"email": "Invalid email format"}.
    """

    code = "validation_error"
    message = "Validation failed."
    status_code = 422

    def __init__(self, errors: dict[str, str] | None = None, message: str | None = None) -> None:
        super().__init__(message)
        self.errors: dict[str, str] = errors or {}


class DuplicateEmail(AuthError):
    code = "email_exists"
    message = "Email already registered."
    status_code = 409


class DuplicateUsername(AuthError):
    code = "username_exists"
    message = "Username already taken."
    status_code = 409


class InvalidCredentials(AuthError):
    """Wrong email or wrong password -- deliberately indistinguishable."""

    code = "invalid_credentials"
    message = "Invalid email or password."
    status_code = 401


class TokenInvalid(AuthError):
    code = "invalid_token"
    message = "Invalid or expired token."
    status_code = 401


class TokenExpired(AuthError):
    # Same outward message as TokenInvalid; only the class differs.
    code = "token_expired"
    message = "Invalid or expired token."
    status_code = 401


class AccountNotFound(AuthError):
    code = "user_not_found"
    message = "User not found."
    status_code = 404


class ProviderExchangeFailed(AuthError):
    code = "oauth_failed"
    message = "OAuth authentication failed."
    status_code = 502


class StateInvalidOrExpired(AuthError):
    code = "invalid_state"
    message = "Invalid or expired state parameter."
    status_code = 400


class StorageFailure(AuthError):
    code = "storage_error"
    message = "A storage error occurred."
    status_code = 500
