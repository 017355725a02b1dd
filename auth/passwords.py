"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct usage has no compatibility shim.

72-byte limit: bcrypt ignores everything past the 72nd byte. hash() raises
ValidationFailed for longer inputs instead of truncating, and verify() simply
returns False for them.

Timing equalization [C1]: verify_dummy() runs a full bcrypt check against a
digest computed once at construction. The login use case calls it whenever
there is no real digest to check (unknown email, OAuth-only account) so the
response time does not reveal which case occurred.
"""

from __future__ import annotations

import bcrypt

from auth.errors import ValidationFailed
from auth.schemas import PASSWORD_MAX_BYTES

DEFAULT_ROUNDS = 12


class PasswordHasher:
    """One-way salted password hashing with a configurable cost factor."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash("threadsauth_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a self-contained bcrypt digest ($2b$<cost>$<salt><hash>)."""
        encoded = plain.encode("utf-8")
        if not encoded:
            raise ValidationFailed({"password": "password is required"})
        if len(encoded) > PASSWORD_MAX_BYTES:
            raise ValidationFailed({"password": f"password must not exceed {PASSWORD_MAX_BYTES} bytes"})
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, digest: str, plain: str) -> bool:
        """Return True if plain matches digest. Never raises.

        bcrypt.checkpw compares in constant time. A malformed or empty digest
        and an over-long password all come back as a plain False.
        """
        if not digest:
            return False
        encoded = plain.encode("utf-8")
        if len(encoded) > PASSWORD_MAX_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, digest.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, plain: str) -> None:
        """Spend one bcrypt verification without a real account [C1]."""
        clipped = plain.encode("utf-8")[:PASSWORD_MAX_BYTES].decode("utf-8", "ignore")
        self.verify(self._dummy_hash, clipped)
