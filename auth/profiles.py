"""
auth/profiles.py -- Profile reads and updates for existing accounts.

Thin layer over CredentialStore: validate, call the store, turn a missing
account into AccountNotFound, strip the password hash.
"""

from __future__ import annotations

from typing import Any

from auth.errors import AccountNotFound
from auth.models import Account
from auth.schemas import UpdateProfileRequest, parse_request
from auth.store import CredentialStore


class ProfileService:
    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def get_profile(self, account_id: str) -> Account:
        return _found(self.store.get_by_id(account_id))

    def get_by_username(self, username: str) -> Account:
        return _found(self.store.get_by_username(username))

    def update_profile(self, account_id: str, data: Any) -> Account:
        """Apply a partial profile update. Fields left out keep their value."""
        req = parse_request(UpdateProfileRequest, data)
        updated = self.store.update_profile(
            account_id,
            display_name=req.display_name,
            bio=req.bio,
            profile_image_url=req.profile_image_url,
        )
        return _found(updated)


def _found(account: Account | None) -> Account:
    if account is None:
        raise AccountNotFound()
    return account.public()
