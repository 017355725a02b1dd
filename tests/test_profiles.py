"""Unit tests for auth/profiles.py -- profile reads and partial updates."""

import pytest

from auth.errors import AccountNotFound, ValidationFailed
from auth.models import Account
from auth.profiles import ProfileService
from auth.store import CredentialStore


@pytest.fixture
def jane(store: CredentialStore) -> Account:
    return store.create_account(
        Account(
            username="janedoe",
            display_name="Jane Doe",
            email="jane@example.com",
            password_hash="$2b$04$somehash",
            bio="original bio",
        )
    )


def test_get_profile_strips_hash(profiles: ProfileService, jane: Account) -> None:
    account = profiles.get_profile(jane.id)
    assert account.username == "janedoe"
    assert account.password_hash == ""


def test_get_by_username(profiles: ProfileService, jane: Account) -> None:
    assert profiles.get_by_username("janedoe").id == jane.id


def test_unknown_account(profiles: ProfileService) -> None:
    with pytest.raises(AccountNotFound):
        profiles.get_profile("missing")
    with pytest.raises(AccountNotFound):
        profiles.get_by_username("nobody")


def test_update_only_touches_given_fields(profiles: ProfileService, jane: Account) -> None:
    updated = profiles.update_profile(jane.id, {"display_name": "Jane D."})
    assert updated.display_name == "Jane D."
    assert updated.bio == "original bio"
    assert updated.password_hash == ""


def test_update_ignores_unknown_fields(profiles: ProfileService, store: CredentialStore, jane: Account) -> None:
    profiles.update_profile(jane.id, {"bio": "new", "username": "hijack", "email": "x@example.com"})
    stored = store.get_by_id(jane.id)
    assert stored.bio == "new"
    assert stored.username == "janedoe"
    assert stored.email == "jane@example.com"


@pytest.mark.parametrize(
    "data, field",
    [
        ({"display_name": ""}, "display_name"),
        ({"bio": "b" * 501}, "bio"),
        ({"profile_image_url": "h" * 2049}, "profile_image_url"),
    ],
)
def test_update_validation(profiles: ProfileService, jane: Account, data, field) -> None:
    with pytest.raises(ValidationFailed) as excinfo:
        profiles.update_profile(jane.id, data)
    assert field in excinfo.value.errors


def test_update_unknown_account(profiles: ProfileService) -> None:
    with pytest.raises(AccountNotFound):
        profiles.update_profile("missing", {"bio": "x"})
    with pytest.raises(AccountNotFound):
        profiles.update_profile("missing", {})
