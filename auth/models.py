"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). The store owns
persistence, the services own behaviour; these classes only own shape.

Request shapes (what a client may send) live in auth/schemas.py as pydantic
models. These dataclasses are what the core passes around internally.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Provider(str, Enum):
    """Closed set of supported external identity providers.

    Adding a provider means a new member here plus a ProviderExchange
    subclass in auth/providers.py -- nothing else branches on the name.
    """

    google = "google"
    facebook = "facebook"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class LinkedProvider:
    """An external identity attached to a local account."""

    external_id: str
    external_email: str


@dataclass
class Account:
    """A local user account.

    password_hash is "" for OAuth-only accounts. Such accounts can never pass
    password login; they authenticate only through a linked provider.

    providers maps each linked Provider to its external identity. At most one
    account may hold a given (provider, external_id) pair -- the store
    enforces that with a UNIQUE constraint.
    """

    username: str
    display_name: str
    email: str
    id: str | None = None
    password_hash: str = ""
    bio: str | None = None
    profile_image_url: str | None = None
    providers: dict[Provider, LinkedProvider] = field(default_factory=dict)
    created_at: str | None = None

    def public(self) -> Account:
        """Return a copy with the password hash stripped.

        Every account that leaves a service goes through this. The provider
        map is copied so callers cannot mutate the original.
        """
        return dataclasses.replace(self, password_hash="", providers=dict(self.providers))


@dataclass(frozen=True)
class ExternalIdentity:
    """A verified identity assertion returned by a provider code exchange.

    Every provider is normalized to this shape before the resolver sees it.
    """

    provider: Provider
    external_id: str
    email: str
    display_name: str = ""
    picture_url: str = ""


@dataclass(frozen=True)
class TokenClaims:
    account_id: str
    username: str
    email: str
    issued_at: datetime
    expires_at: datetime


@dataclass
class AuthResult:
    """What a successful register/login/OAuth callback hands back."""

    account: Account
    access_token: str
    expires_in: int
    token_type: str = "Bearer"  # noqa: S105 -- OAuth token type, not a password
