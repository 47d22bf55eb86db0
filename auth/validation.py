"""
auth/validation.py -- Input models and password policy for the auth service.

These Pydantic v2 models define what the service accepts. The service builds
them from plain arguments through parse(), which converts pydantic's
ValidationError into core.errors.ValidationError (first failing field only)
so callers see a single error type whatever did the checking.

Normalisation happens here and nowhere else: emails and usernames are
stripped and lower-cased before they reach a store. Passwords are never
stripped or altered.

Password policy:
  - 8 to 72 bytes (UTF-8). bcrypt silently ignores bytes past 72, so longer
    passwords would give a false sense of strength and bcrypt 4.x+ rejects them.
  - at least one uppercase letter, one lowercase letter and one digit.
"""

from __future__ import annotations

import re
from typing import TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")
USERNAME_PATTERN = re.compile(r"^[a-z0-9_.-]{3,50}$")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_BYTES = 72

_M = TypeVar("_M", bound=BaseModel)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_username(value: str) -> str:
    return value.strip().lower()


def password_policy_violation(password: str) -> str | None:
    """Return a human-readable reason the password fails policy, or None."""
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters."
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return f"Password must be at most {PASSWORD_MAX_BYTES} bytes."
    if not any(c.isupper() for c in password):
        return "Password must contain an uppercase letter."
    if not any(c.islower() for c in password):
        return "Password must contain a lowercase letter."
    if not any(c.isdigit() for c in password):
        return "Password must contain a digit."
    return None


def _check_email(value: str) -> str:
    value = normalize_email(value)
    if len(value) > 255 or not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address.")
    return value


def _check_password(value: str) -> str:
    reason = password_policy_violation(value)
    if reason:
        raise ValueError(reason)
    return value


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class RegistrationInput(BaseModel):
    email: str
    username: str
    password: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("username")
    @classmethod
    def _username(cls, v: str) -> str:
        v = normalize_username(v)
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username must be 3-50 characters of letters, digits, '_', '.' or '-'.")
        return v

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password(v)


class LoginInput(BaseModel):
    """Login only checks shape. Policy is not applied: an old password that
    predates a policy change must still be able to log in."""

    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    user_agent: str | None = Field(default=None, max_length=512)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("user_agent", mode="before")
    @classmethod
    def _truncate_user_agent(cls, v):
        if isinstance(v, str):
            return v[:512]
        return v


class PasswordChangeInput(BaseModel):
    old_password: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _new_password(cls, v: str) -> str:
        return _check_password(v)


def parse(model: type[_M], **values) -> _M:
    """Validate ``values`` against ``model``; raise core ValidationError on failure."""
    try:
        return model(**values)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        message = first.get("msg", "Invalid input.")
        # pydantic prefixes custom ValueError messages with "Value error, ".
        message = message.removeprefix("Value error, ")
        raise ValidationError(message, field=field) from None
