"""
tests/conftest.py -- Shared test fixtures for the auth service tests.

This module provides:
  - FrozenClock: a settable clock for TokenManager / OAuthStateStore
  - store / hasher / tokens / states: isolated core components
  - FakeExchange: ProviderExchange stand-in returning a preset identity
  - service / profiles: services wired to the fixtures above
  - api_client: TestClient over the real app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit-level fixtures run on one thread and use :memory:.

DEBUG must be set before any core/auth import so get_settings() can
auto-generate SECRET_KEY instead of raising ValueError. BCRYPT_ROUNDS=4 keeps
the suite fast.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import ExternalIdentity, Provider
from auth.passwords import PasswordHasher
from auth.profiles import ProfileService
from auth.providers import ProviderExchange
from auth.service import AuthService
from auth.state import OAuthStateStore
from auth.store import CredentialStore
from auth.tokens import TokenManager

TEST_SECRET = "test-secret-key-0123456789abcdef-0123456789"


class FrozenClock:
    """Callable clock that only moves when told to.

    Returns a timezone-aware datetime for TokenManager; .monotonic gives a
    float view of the same instant for OAuthStateStore.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeExchange(ProviderExchange):
    """A provider exchange that never touches the network.

    exchange_code() returns whatever identity the test queued; a code that
    was never queued raises the error the test queued instead (or KeyError).
    """

    authorize_url = "https://provider.test/authorize"
    token_url = "https://provider.test/token"  # noqa: S105 -- URL, not a password
    userinfo_url = "https://provider.test/me"
    scope = "email"

    def __init__(self, provider: Provider) -> None:
        super().__init__("client-id", "client-secret", "http://localhost/callback")
        self.provider = provider
        self.identities: dict[str, ExternalIdentity] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    def build_authorization_url(self, state: str) -> str:
        return f"{self.authorize_url}?state={state}"

    def exchange_code(self, code: str) -> ExternalIdentity:
        self.calls.append(code)
        if code in self.errors:
            raise self.errors[code]
        return self.identities[code]

    def parse_profile(self, profile: dict) -> ExternalIdentity:
        return make_identity(self.provider, external_id=str(profile["id"]), email=profile["email"])


def make_identity(
    provider: Provider = Provider.google,
    external_id: str = "ext-1",
    email: str = "john@example.com",
    display_name: str = "John Doe",
    picture_url: str = "",
) -> ExternalIdentity:
    return ExternalIdentity(
        provider=provider,
        external_id=external_id,
        email=email,
        display_name=display_name,
        picture_url=picture_url,
    )


# ---------------------------------------------------------------------------
# Core component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens(clock: FrozenClock) -> TokenManager:
    return TokenManager(TEST_SECRET, ttl_seconds=3600, clock=clock)


@pytest.fixture
def states(clock: FrozenClock) -> OAuthStateStore:
    return OAuthStateStore(ttl=300, clock=clock.monotonic)


@pytest.fixture
def google() -> FakeExchange:
    return FakeExchange(Provider.google)


@pytest.fixture
def facebook() -> FakeExchange:
    return FakeExchange(Provider.facebook)


@pytest.fixture
def service(store, hasher, tokens, states, google, facebook) -> AuthService:
    return AuthService(
        store=store,
        hasher=hasher,
        tokens=tokens,
        states=states,
        exchanges={Provider.google: google, Provider.facebook: facebook},
    )


@pytest.fixture
def profiles(store) -> ProfileService:
    return ProfileService(store)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_service: AuthService, profile_service: ProfileService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so TestClient routes see an
    isolated database and fake provider exchanges.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = auth_service.store
        app.state.auth_service = auth_service
        app.state.profile_service = profile_service
        yield

    return test_lifespan


@pytest.fixture
def api_client(hasher, google, facebook) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, auth_service) over an isolated shared-memory database.

    The clock is the real one here: tokens issued through the API must be
    valid when the same API validates them a moment later.
    """
    db_url = f"sqlite:///file:test_api_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    api_store = CredentialStore(db_url=db_url)
    auth_service = AuthService(
        store=api_store,
        hasher=hasher,
        tokens=TokenManager(TEST_SECRET, ttl_seconds=3600),
        states=OAuthStateStore(),
        exchanges={Provider.google: google, Provider.facebook: facebook},
    )

    app.router.lifespan_context = _patch_lifespan(auth_service, ProfileService(api_store))

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, auth_service

    api_store.close()
