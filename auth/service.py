"""
auth/service.py -- Authentication use cases.

AuthService is the only entry point the HTTP layer calls for auth. Each use
case validates the request shape first (auth/schemas.py), then talks to the
store. Every account it returns has gone through Account.public(), so a
password hash never leaves this module.

Use cases:
  register        -- new password account, then a token
  login           -- email + password, then a token
  begin_oauth     -- state nonce + provider authorization URL
  oauth_callback  -- state check, code exchange, account resolution, token
  validate_token  -- signature/expiry check, then re-fetch the account

Security:
  [C1] login() runs bcrypt even when there is no digest to check (unknown
       email, OAuth-only account) so response time does not reveal which
       emails are registered. All three failure paths raise the same
       InvalidCredentials.

  validate_token() re-reads the account on every call: a deleted account
       cannot keep using a token whose signature is still valid.

Concurrency: the service holds no mutable state of its own. The state store
is the only shared structure and it locks internally.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.errors import (
    AccountNotFound,
    DuplicateEmail,
    DuplicateUsername,
    InvalidCredentials,
    ProviderExchangeFailed,
    StateInvalidOrExpired,
    ValidationFailed,
)
from auth.models import Account, AuthResult, Provider
from auth.passwords import PasswordHasher
from auth.providers import ProviderExchange, build_exchanges
from auth.resolver import OAuthResolver
from auth.schemas import LoginRequest, RegisterRequest, parse_request
from auth.state import OAuthStateStore
from auth.store import CredentialStore
from auth.tokens import TokenManager
from core.config import Settings

logger = logging.getLogger("threadsauth.auth")


class AuthService:
    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        tokens: TokenManager,
        states: OAuthStateStore,
        exchanges: dict[Provider, ProviderExchange] | None = None,
        resolver: OAuthResolver | None = None,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.states = states
        self.exchanges: dict[Provider, ProviderExchange] = exchanges or {}
        self.resolver = resolver or OAuthResolver(store)

    @classmethod
    def from_settings(cls, settings: Settings, store: CredentialStore) -> AuthService:
        """Wire a service from configuration. Used by the API lifespan."""
        return cls(
            store=store,
            hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            tokens=TokenManager(settings.secret_key, ttl_seconds=settings.token_expire_seconds),
            states=OAuthStateStore(ttl=settings.oauth_state_ttl_seconds),
            exchanges=build_exchanges(settings),
        )

    # ------------------------------------------------------------------
    # Password accounts
    # ------------------------------------------------------------------

    def register(self, data: Any) -> AuthResult:
        """Create a password account.

        Raises ValidationFailed, DuplicateEmail or DuplicateUsername before
        anything is written. The store raises the same duplicate errors if a
        concurrent registration wins the race after the pre-checks.
        """
        req = parse_request(RegisterRequest, data)
        if self.store.email_exists(req.email):
            raise DuplicateEmail()
        if self.store.username_exists(req.username):
            raise DuplicateUsername()

        account = self.store.create_account(
            Account(
                username=req.username,
                display_name=req.display_name,
                email=req.email,
                password_hash=self.hasher.hash(req.password),
            )
        )
        logger.info("Registered account %s", account.id)
        return self._authenticated(account)

    def login(self, data: Any) -> AuthResult:
        """Authenticate with email and password.

        Unknown email, OAuth-only account and wrong password are
        indistinguishable to the caller: all raise InvalidCredentials [C1].
        """
        req = parse_request(LoginRequest, data)
        account = self.store.get_by_email(req.email)
        if account is None or not account.password_hash:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            self.hasher.verify_dummy(req.password)
            logger.info("Password login rejected")
            raise InvalidCredentials()
        if not self.hasher.verify(account.password_hash, req.password):
            logger.info("Password login rejected")
            raise InvalidCredentials()
        return self._authenticated(account)

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def enabled_providers(self) -> list[Provider]:
        return list(self.exchanges)

    def begin_oauth(self, provider: Provider | str) -> tuple[str, str]:
        """Start an OAuth flow. Returns (authorization_url, state)."""
        exchange = self._exchange(provider)
        state = self.states.issue()
        return exchange.build_authorization_url(state), state

    def oauth_callback(self, provider: Provider | str, code: str, state: str) -> AuthResult:
        """Finish an OAuth flow started by begin_oauth().

        The state nonce is consumed before the code is exchanged, so a
        replayed callback fails with StateInvalidOrExpired without contacting
        the provider.
        """
        errors = {}
        if not code:
            errors["code"] = "code is required"
        if not state:
            errors["state"] = "state is required"
        if errors:
            raise ValidationFailed(errors, "Missing code or state parameter.")

        provider = _coerce_provider(provider)
        if not self.states.consume(state):
            raise StateInvalidOrExpired()
        exchange = self._exchange(provider)

        identity = exchange.exchange_code(code)
        resolution = self.resolver.resolve(identity)
        logger.info(
            "%s login resolved to account %s (created=%s)",
            identity.provider.label,
            resolution.account.id,
            resolution.created,
        )
        return self._authenticated(resolution.account)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def validate_token(self, token: str) -> Account:
        """Return the account a valid token belongs to.

        Raises TokenInvalid / TokenExpired from the token check, then
        AccountNotFound if the account no longer exists.
        """
        claims = self.tokens.validate(token)
        account = self.store.get_by_id(claims.account_id)
        if account is None:
            raise AccountNotFound()
        return account.public()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _authenticated(self, account: Account) -> AuthResult:
        token = self.tokens.issue(account.id, account.username, account.email)
        return AuthResult(account=account.public(), access_token=token, expires_in=self.tokens.expires_in)

    def _exchange(self, provider: Provider | str) -> ProviderExchange:
        exchange = self.exchanges.get(_coerce_provider(provider))
        if exchange is None:
            raise ProviderExchangeFailed("OAuth provider is not configured.")
        return exchange


def _coerce_provider(provider: Provider | str) -> Provider:
    try:
        return Provider(provider)
    except ValueError as exc:
        raise ValidationFailed({"provider": "Unsupported OAuth provider"}) from exc
