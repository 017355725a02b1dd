"""
auth/tokens.py -- Bearer token issuance and validation.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (account id), username, email, iat and exp.

  Validation order: the signature is checked first (jose raises JWTError on
       any tamper or structural problem -> TokenInvalid). Only a token with a
       good signature gets an expiry check, and an expired one raises
       TokenExpired even though the signature is fine. jose's own exp check is
       disabled so expiry is judged against the injected clock; that keeps
       validate() a pure function of (token, secret, now).

  Outward messages for TokenInvalid and TokenExpired are identical -- the
       class is for the caller's logic, not for the client.

  SECRET_KEY: sourced from core.config.get_settings() by the service factory.
       Short keys (<32 chars) are rejected there [M6].
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import TokenExpired, TokenInvalid
from auth.models import TokenClaims

logger = logging.getLogger("threadsauth.auth.tokens")

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

_REQUIRED_CLAIMS = ("sub", "username", "email", "iat", "exp")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Signs and validates bearer tokens carrying identity claims.

    Stateless after construction -- safe for any number of concurrent callers.
    """

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenManager requires a signing secret")
        self._secret_key = secret_key
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def expires_in(self) -> int:
        """Configured token lifetime in seconds, reported to clients."""
        return self._ttl

    def issue(self, account_id: str, username: str, email: str) -> str:
        # Claims carry whole seconds; iat and exp share one truncated instant.
        now = self._clock().replace(microsecond=0)
        payload = {
            "sub": str(account_id),
            "username": username,
            "email": email,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._ttl)).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def validate(self, token: str) -> TokenClaims:
        """Return the claims of a valid token.

        Raises:
            TokenInvalid: bad signature, malformed token or missing claims.
            TokenExpired: signature is valid but exp has passed.
        """
        if not token or not isinstance(token, str):
            raise TokenInvalid()
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            raise TokenInvalid() from exc

        if any(name not in payload for name in _REQUIRED_CLAIMS):
            raise TokenInvalid()
        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise TokenInvalid() from exc

        if self._clock().replace(microsecond=0) > expires_at:
            raise TokenExpired()

        return TokenClaims(
            account_id=str(payload["sub"]),
            username=str(payload["username"]),
            email=str(payload["email"]),
            issued_at=issued_at,
            expires_at=expires_at,
        )


def extract_bearer(authorization: str | None) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' header value.

    The scheme is matched case-insensitively; anything else yields None.
    """
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]
