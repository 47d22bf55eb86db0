"""
core/errors.py -- Typed error taxonomy for authcore.

Every failure the core can report is one of these classes. Callers (the HTTP
adapter, the CLI) branch on the class or on the stable ``code`` string; they
never parse messages. ``message`` is always safe to show an external caller:
driver and crypto library text is kept on ``__cause__`` for logs only.

Hierarchy:
  AuthCoreError
    ValidationError                      caller sent malformed input
    AuthError                            expected business outcomes
      InvalidCredentials, RateLimited, InvalidRefreshToken, Conflict, Unauthorized
    TokenError                           access-token verification failures
      TokenExpired, TokenInvalidSignature, TokenMalformedClaims
    RepositoryError                      storage layer (infrastructure-facing)
      NotFound, RepositoryConflict, PoolExhausted, Unavailable
    ServiceUnavailable                   what the service surfaces for retryable storage failures
    HashingError                         catastrophic bcrypt failure
    ConfigurationError, PoolInitError    fatal at startup

Layer rule: no project imports.
"""

from __future__ import annotations


class AuthCoreError(Exception):
    """Root of every error raised by the auth core."""

    code = "internal_error"
    default_message = "An internal error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Caller input
# ---------------------------------------------------------------------------


class ValidationError(AuthCoreError):
    """Malformed input. ``field`` names the offending input when known."""

    code = "validation_error"
    default_message = "Invalid input."

    def __init__(self, message: str | None = None, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


# ---------------------------------------------------------------------------
# Business outcomes
# ---------------------------------------------------------------------------


class AuthError(AuthCoreError):
    code = "auth_error"
    default_message = "Authentication failed."


class InvalidCredentials(AuthError):
    # Deliberately one message for unknown email, wrong password, inactive
    # account and password-less account.
    code = "invalid_credentials"
    default_message = "Invalid email or password."


class RateLimited(AuthError):
    code = "rate_limited"
    default_message = "Too many failed login attempts. Try again later."


class InvalidRefreshToken(AuthError):
    code = "invalid_refresh_token"
    default_message = "Invalid refresh token."


class Conflict(AuthError):
    code = "conflict"
    default_message = "An account with this email or username already exists."


class Unauthorized(AuthError):
    code = "unauthorized"
    default_message = "Authentication required."


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


class TokenError(AuthCoreError):
    code = "token_error"
    default_message = "Invalid access token."


class TokenExpired(TokenError):
    """The token was genuine but is past ``exp``. Retry via refresh."""

    code = "token_expired"
    default_message = "Access token has expired."


class TokenInvalidSignature(TokenError):
    """Signature or algorithm does not match. Reject outright."""

    code = "token_invalid_signature"
    default_message = "Access token signature is invalid."


class TokenMalformedClaims(TokenError):
    """Not a JWT, or the claims are missing / wrong issuer / wrong audience."""

    code = "token_malformed"
    default_message = "Access token is malformed."


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class RepositoryError(AuthCoreError):
    code = "repository_error"
    default_message = "Storage operation failed."
    retryable = False


class NotFound(RepositoryError):
    code = "not_found"
    default_message = "Record not found."


class RepositoryConflict(RepositoryError):
    """A unique or foreign-key constraint rejected the write."""

    code = "repository_conflict"
    default_message = "Constraint violation."


class PoolExhausted(RepositoryError):
    code = "pool_exhausted"
    default_message = "No database connection available."
    retryable = True


class Unavailable(RepositoryError):
    code = "unavailable"
    default_message = "Database unavailable."
    retryable = True


class ServiceUnavailable(AuthCoreError):
    """Generic server-side failure surfaced by the service.

    Never carries storage detail in ``message``; the original error is
    chained as ``__cause__``.
    """

    code = "service_unavailable"
    default_message = "The service is temporarily unavailable."
    retryable = True


# ---------------------------------------------------------------------------
# Internal / fatal
# ---------------------------------------------------------------------------


class HashingError(AuthCoreError):
    code = "hashing_error"


class ConfigurationError(AuthCoreError):
    code = "configuration_error"
    default_message = "Invalid configuration."


class PoolInitError(AuthCoreError):
    code = "pool_init_error"
    default_message = "Could not obtain a working database connection."
