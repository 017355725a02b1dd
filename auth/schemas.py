"""
auth/schemas.py -- Pydantic v2 request shapes for the auth use cases.

The services validate every inbound request against one of these models
before touching storage. parse_request() turns a pydantic ValidationError
into the domain ValidationFailed error with a flat {field: reason} map, so
callers never see pydantic types.

USERNAME_PATTERN is the single username rule. Registration enforces it here;
the OAuth resolver uses USERNAME_DISALLOWED to strip characters when it
derives a username from a provider display name.
"""

from __future__ import annotations

import re
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from auth.errors import ValidationFailed

USERNAME_MIN = 3
USERNAME_MAX = 50
USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
# Anything outside the username alphabet (applied after lower-casing).
USERNAME_DISALLOWED = re.compile(r"[^a-z0-9_]")

DISPLAY_NAME_MAX = 100
PASSWORD_MIN = 6
# bcrypt only reads the first 72 bytes. Longer inputs are rejected, not truncated.
PASSWORD_MAX_BYTES = 72

_Model = TypeVar("_Model", bound=BaseModel)


def _strip(value: Any) -> Any:
    """Trim identifiers. Passwords never go through this: whitespace is part of the secret."""
    return value.strip() if isinstance(value, str) else value


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str = Field(min_length=USERNAME_MIN, max_length=USERNAME_MAX, pattern=USERNAME_PATTERN)
    display_name: str = Field(min_length=1, max_length=DISPLAY_NAME_MAX)
    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN)

    @field_validator("username", "display_name", "email", mode="before")
    @classmethod
    def strip_identifiers(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"password must not exceed {PASSWORD_MAX_BYTES} bytes")
        return value


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: EmailStr
    # No length rules beyond non-empty: a login attempt must never reveal
    # the password policy of the stored account.
    password: str = Field(min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: Any) -> Any:
        return _strip(value)


class UpdateProfileRequest(BaseModel):
    """Partial update. A field left as None keeps its stored value."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    display_name: str | None = Field(default=None, min_length=1, max_length=DISPLAY_NAME_MAX)
    bio: str | None = Field(default=None, max_length=500)
    profile_image_url: str | None = Field(default=None, max_length=2048)


def parse_request(schema: type[_Model], data: Any) -> _Model:
    """Validate data (a dict or an existing model) against schema.

    Raises ValidationFailed with one message per offending field.
    """
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        errors: dict[str, str] = {}
        for err in exc.errors():
            loc = err.get("loc") or ("body",)
            name = str(loc[0])
            errors.setdefault(name, _describe(name, err))
        raise ValidationFailed(errors) from exc


def _describe(name: str, err: dict) -> str:
    kind = err.get("type", "")
    ctx = err.get("ctx") or {}
    if kind == "missing":
        return f"{name} is required"
    if kind == "string_too_short":
        return f"{name} must be at least {ctx.get('min_length')} characters"
    if kind == "string_too_long":
        return f"{name} must not exceed {ctx.get('max_length')} characters"
    if kind == "string_pattern_mismatch":
        return f"{name} may only contain letters, digits and underscores"
    if name == "email":
        return "Invalid email format"
    return err.get("msg", f"{name} is invalid")
