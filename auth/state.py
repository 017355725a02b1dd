"""
auth/state.py -- Single-use OAuth state nonces with a TTL.

Guards the OAuth redirect handshake against CSRF and replay. issue() hands
out a random nonce that travels through the provider redirect; the callback
must present it to consume() exactly once within the TTL.

Expiry is lazy: every issue()/consume() sweeps entries whose expiry has
passed. There is no background timer.

Scaling caveat: entries live in this process only. A deployment with more
than one instance must pin the OAuth flow to one instance (sticky sessions)
or move this store to a shared cache.

Usage:
    states = OAuthStateStore()
    nonce = states.issue()          # embed in the provider redirect URL
    states.consume(nonce)           # True once, False on every later call
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable

logger = logging.getLogger("threadsauth.auth.state")

_DEFAULT_TTL = 5 * 60  # 5 minutes in seconds
_NONCE_BYTES = 16


class OAuthStateStore:
    def __init__(self, ttl: float = _DEFAULT_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, float] = {}

    def issue(self) -> str:
        """Create, record and return a fresh nonce (16 random bytes, hex)."""
        with self._lock:
            now = self._clock()
            self._sweep(now)
            nonce = secrets.token_hex(_NONCE_BYTES)
            while nonce in self._entries:
                nonce = secrets.token_hex(_NONCE_BYTES)
            self._entries[nonce] = now + self.ttl
        return nonce

    def consume(self, nonce: str) -> bool:
        """Return True if nonce was issued, unused and unexpired; then forget it.

        The check and the delete happen under one lock, so of several
        concurrent consume() calls for the same nonce exactly one wins.
        """
        if not nonce:
            return False
        with self._lock:
            now = self._clock()
            self._sweep(now)
            expiry = self._entries.pop(nonce, None)
        if expiry is None:
            logger.info("OAuth state rejected (unknown, reused or expired)")
            return False
        return True

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of entries removed."""
        with self._lock:
            return self._sweep(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _sweep(self, now: float) -> int:
        # Caller holds self._lock.
        expired = [nonce for nonce, expiry in self._entries.items() if now >= expiry]
        for nonce in expired:
            del self._entries[nonce]
        return len(expired)
