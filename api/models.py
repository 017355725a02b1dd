"""
API response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request bodies are not modelled here: the services validate raw JSON against
auth/schemas.py so the same rules apply no matter who calls them.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from auth.models import Account, AuthResult

# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class LinkedProviderResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str


class UserResponse(BaseModel):
    """Public view of an account. There is no password field by construction."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    display_name: str
    email: str
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    oauth_providers: dict[str, LinkedProviderResponse] = {}
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "UserResponse":
        """Factory Method -- the mapping lives next to the output model."""
        return cls(
            id=account.id,
            username=account.username,
            display_name=account.display_name,
            email=account.email,
            bio=account.bio,
            profile_image_url=account.profile_image_url,
            oauth_providers={
                provider.value: LinkedProviderResponse(id=link.external_id, email=link.external_email)
                for provider, link in account.providers.items()
            },
            created_at=account.created_at or "",
        )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthResponse(BaseModel):
    """Returned by register, login and both OAuth callbacks."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    access_token: str
    token_type: str
    expires_in: int

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            user=UserResponse.from_account(result.account),
            access_token=result.access_token,
            token_type=result.token_type,
            expires_in=result.expires_in,
        )


class ValidateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool = True
    user: UserResponse


class OAuthStartResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    auth_url: str
    state: str


class OAuthProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    service: str = "auth-service"
    version: str
