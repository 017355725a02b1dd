"""
auth/resolver.py -- Map an external identity onto exactly one local account.

Resolution order (first hit wins):
  1. Exact match  -- an account already linked to (provider, external_id) is
                     returned as stored. Provider profile data is not re-synced.
  2. Email merge  -- an account with the same email gets this provider added to
                     its provider map. Other links and the password hash stay.
  3. Create new   -- an OAuth-only account with a generated unique username.

Username generation:
  base = lower-cased display name without whitespace, or the email local part
  when the name is empty, stripped to the registration alphabet [a-z0-9_].
  Candidates are base, base1 .. base1000, then base + 8 random hex chars.
  Every candidate -- the random ones included -- is checked before use.

Known race: the candidate check and the insert are separate calls. Two
concurrent signups deriving the same base can both see a name as free; the
storage UNIQUE constraint makes the loser fail with DuplicateUsername, which
propagates to the caller. Nothing here retries.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass

from auth.errors import DuplicateUsername, StorageFailure
from auth.models import Account, ExternalIdentity, LinkedProvider
from auth.schemas import DISPLAY_NAME_MAX, USERNAME_DISALLOWED, USERNAME_MAX, USERNAME_MIN
from auth.store import CredentialStore

logger = logging.getLogger("threadsauth.auth.resolver")

MAX_NUMBERED_SUFFIX = 1000
MAX_RANDOM_ATTEMPTS = 10
_RANDOM_SUFFIX_LEN = 8
# Room kept at the end of the base for the longest suffix we may append.
_BASE_MAX = USERNAME_MAX - max(len(str(MAX_NUMBERED_SUFFIX)), _RANDOM_SUFFIX_LEN)

_WHITESPACE = re.compile(r"\s+")


@dataclass
class Resolution:
    account: Account
    created: bool


class OAuthResolver:
    """Find-or-create the local account for a verified ExternalIdentity."""

    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def resolve(self, identity: ExternalIdentity) -> Resolution:
        account = self.store.get_by_provider(identity.provider, identity.external_id)
        if account is not None:
            return Resolution(account, created=False)

        account = self.store.get_by_email(identity.email)
        if account is not None:
            return Resolution(self._link(account, identity), created=False)

        return Resolution(self._create(identity), created=True)

    def _link(self, account: Account, identity: ExternalIdentity) -> Account:
        providers = dict(account.providers)
        providers[identity.provider] = LinkedProvider(external_id=identity.external_id, external_email=identity.email)
        updated = self.store.update_providers(account.id, providers)
        if updated is None:
            # Deleted between the lookup and the update.
            raise StorageFailure()
        logger.info("Linked %s identity to existing account %s", identity.provider.label, account.id)
        return updated

    def _create(self, identity: ExternalIdentity) -> Account:
        username = self.unique_username(identity.display_name, identity.email)
        display_name = identity.display_name.strip()[:DISPLAY_NAME_MAX] or username
        account = Account(
            username=username,
            display_name=display_name,
            email=identity.email,
            password_hash="",
            profile_image_url=identity.picture_url or None,
            providers={
                identity.provider: LinkedProvider(external_id=identity.external_id, external_email=identity.email)
            },
        )
        return self.store.create_account(account)

    def unique_username(self, display_name: str, email: str) -> str:
        base = username_base(display_name, email)
        if not self.store.username_exists(base):
            return base
        for counter in range(1, MAX_NUMBERED_SUFFIX + 1):
            candidate = f"{base}{counter}"
            if not self.store.username_exists(candidate):
                return candidate

        logger.warning("Numbered usernames exhausted for base %r; trying random suffixes", base)
        for _ in range(MAX_RANDOM_ATTEMPTS):
            candidate = f"{base}{uuid.uuid4().hex[:_RANDOM_SUFFIX_LEN]}"
            if not self.store.username_exists(candidate):
                return candidate
        raise DuplicateUsername("Could not generate a unique username.")


def username_base(display_name: str, email: str) -> str:
    """Derive the un-suffixed username candidate for a new OAuth account.

    "John Doe" -> "johndoe"; an empty name with "mary.j-smith@x.com" -> "maryjsmith".
    """
    local_part = email.split("@", 1)[0]
    base = _WHITESPACE.sub("", display_name.lower())
    if not base:
        base = local_part.lower()
    base = USERNAME_DISALLOWED.sub("", base)
    if not base:
        # e.g. a display name written entirely in a non-Latin script
        base = USERNAME_DISALLOWED.sub("", local_part.lower())
    if not base:
        base = "user"
    if len(base) < USERNAME_MIN:
        base = f"user{base}"
    return base[:_BASE_MAX]
