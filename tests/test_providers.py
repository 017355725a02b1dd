"""Unit tests for auth/providers.py -- provider code exchange and profile parsing.

No network: parse_profile() is pure, and exchange_code() runs against a
mocked OAuth2Client returned from a patched _new_client().

Covers:
- Google / Facebook profiles normalize to ExternalIdentity
- [H1] Google email without verified_email=true is refused
- missing id or email fails the exchange
- network / OAuth / JSON errors all surface as ProviderExchangeFailed
- build_authorization_url() carries client id, redirect URI and state
- build_exchanges() only registers configured providers
"""

from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from authlib.common.errors import AuthlibBaseError

from auth.errors import ProviderExchangeFailed
from auth.models import ExternalIdentity, Provider
from auth.providers import FacebookExchange, GoogleExchange, ProviderExchange, build_exchanges
from core.config import Settings

SECRET = "s" * 40


@pytest.fixture
def google_exchange() -> GoogleExchange:
    return GoogleExchange("g-client", "g-secret", "http://localhost:3001/api/v1/auth/google/callback")


@pytest.fixture
def facebook_exchange() -> FacebookExchange:
    return FacebookExchange("fb-client", "fb-secret", "http://localhost:3001/api/v1/auth/facebook/callback")


def _mock_client(profile=None, *, fetch_error=None, get_error=None, json_error=None) -> MagicMock:
    client = MagicMock()
    client.__enter__.return_value = client
    client.__exit__.return_value = False
    if fetch_error is not None:
        client.fetch_token.side_effect = fetch_error
    resp = MagicMock()
    resp.raise_for_status.side_effect = get_error
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = profile
    client.get.return_value = resp
    return client


def test_base_exchange_requires_parse_profile() -> None:
    with pytest.raises(TypeError):
        ProviderExchange("id", "secret", "http://localhost/cb")


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------


def test_google_profile_parsed(google_exchange: GoogleExchange) -> None:
    identity = google_exchange.parse_profile(
        {
            "id": "1098",
            "email": "john@gmail.com",
            "verified_email": True,
            "name": "John Doe",
            "picture": "https://lh3.example.com/photo.jpg",
        }
    )
    assert identity == ExternalIdentity(
        provider=Provider.google,
        external_id="1098",
        email="john@gmail.com",
        display_name="John Doe",
        picture_url="https://lh3.example.com/photo.jpg",
    )


@pytest.mark.parametrize("verified", [False, None])
def test_google_unverified_email_refused(google_exchange: GoogleExchange, verified) -> None:
    profile = {"id": "1", "email": "victim@example.com", "name": "Mallory"}
    if verified is not None:
        profile["verified_email"] = verified
    with pytest.raises(ProviderExchangeFailed):
        google_exchange.parse_profile(profile)


@pytest.mark.parametrize(
    "profile",
    [
        {"email": "a@example.com", "verified_email": True},
        {"id": "1", "verified_email": True},
        {"id": "", "email": "a@example.com", "verified_email": True},
    ],
)
def test_google_missing_id_or_email(google_exchange: GoogleExchange, profile) -> None:
    with pytest.raises(ProviderExchangeFailed):
        google_exchange.parse_profile(profile)


def test_google_authorization_url(google_exchange: GoogleExchange) -> None:
    url = google_exchange.build_authorization_url("abc123")
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert parsed.netloc == "accounts.google.com"
    assert query["client_id"] == ["g-client"]
    assert query["state"] == ["abc123"]
    assert query["response_type"] == ["code"]
    assert query["redirect_uri"] == ["http://localhost:3001/api/v1/auth/google/callback"]
    assert query["access_type"] == ["offline"]
    assert "email" in query["scope"][0]


# ---------------------------------------------------------------------------
# Facebook
# ---------------------------------------------------------------------------


def test_facebook_profile_parsed(facebook_exchange: FacebookExchange) -> None:
    identity = facebook_exchange.parse_profile(
        {
            "id": 5551234,
            "email": "sam@example.com",
            "name": "Sam Smith",
            "picture": {"data": {"url": "https://graph.example.com/pic.jpg", "is_silhouette": False}},
        }
    )
    assert identity.provider is Provider.facebook
    assert identity.external_id == "5551234"
    assert identity.picture_url == "https://graph.example.com/pic.jpg"
    assert identity.display_name == "Sam Smith"


def test_facebook_without_picture(facebook_exchange: FacebookExchange) -> None:
    identity = facebook_exchange.parse_profile({"id": "1", "email": "a@example.com"})
    assert identity.picture_url == ""
    assert identity.display_name == ""


def test_facebook_without_email_fails(facebook_exchange: FacebookExchange) -> None:
    with pytest.raises(ProviderExchangeFailed):
        facebook_exchange.parse_profile({"id": "1", "name": "No Email"})


def test_facebook_authorization_url(facebook_exchange: FacebookExchange) -> None:
    query = parse_qs(urlparse(facebook_exchange.build_authorization_url("xyz")).query)
    assert query["client_id"] == ["fb-client"]
    assert query["state"] == ["xyz"]
    assert "access_type" not in query


# ---------------------------------------------------------------------------
# exchange_code
# ---------------------------------------------------------------------------


def test_exchange_code_success(google_exchange: GoogleExchange) -> None:
    client = _mock_client({"id": "7", "email": "g@example.com", "verified_email": True, "name": "G"})
    with patch.object(GoogleExchange, "_new_client", return_value=client):
        identity = google_exchange.exchange_code("the-code")
    client.fetch_token.assert_called_once_with(google_exchange.token_url, code="the-code")
    client.get.assert_called_once_with(google_exchange.userinfo_url)
    assert identity.external_id == "7"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fetch_error": AuthlibBaseError(error="invalid_grant")},
        {"fetch_error": httpx.ConnectError("connection refused")},
        {"get_error": httpx.ReadTimeout("timed out")},
        {"json_error": ValueError("not json")},
    ],
    ids=["oauth-error", "connect-error", "timeout", "bad-json"],
)
def test_exchange_code_wraps_failures(google_exchange: GoogleExchange, kwargs) -> None:
    client = _mock_client({"id": "7", "email": "g@example.com", "verified_email": True}, **kwargs)
    with patch.object(GoogleExchange, "_new_client", return_value=client):
        with pytest.raises(ProviderExchangeFailed) as excinfo:
            google_exchange.exchange_code("bad")
    assert excinfo.value.__cause__ is not None
    assert excinfo.value.message == ProviderExchangeFailed.message


def test_exchange_code_non_dict_profile(facebook_exchange: FacebookExchange) -> None:
    client = _mock_client(["not", "a", "dict"])
    with patch.object(FacebookExchange, "_new_client", return_value=client):
        with pytest.raises(ProviderExchangeFailed):
            facebook_exchange.exchange_code("code")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_build_exchanges_only_configured() -> None:
    settings = Settings(secret_key=SECRET, google_client_id="gid", google_client_secret="gsecret")
    exchanges = build_exchanges(settings)
    assert list(exchanges) == [Provider.google]
    assert isinstance(exchanges[Provider.google], GoogleExchange)
    assert exchanges[Provider.google].timeout == settings.provider_timeout_seconds


def test_build_exchanges_needs_id_and_secret() -> None:
    settings = Settings(secret_key=SECRET, facebook_client_id="fbid")
    assert build_exchanges(settings) == {}


def test_build_exchanges_both() -> None:
    settings = Settings(
        secret_key=SECRET,
        google_client_id="gid",
        google_client_secret="gsecret",
        facebook_client_id="fbid",
        facebook_client_secret="fbsecret",
        facebook_redirect_url="https://threads.example.com/cb",
    )
    exchanges = build_exchanges(settings)
    assert set(exchanges) == {Provider.google, Provider.facebook}
    assert exchanges[Provider.facebook].redirect_url == "https://threads.example.com/cb"
