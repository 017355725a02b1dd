"""
auth/providers.py -- Authorization-code exchange for external identity providers.

Each supported Provider has one ProviderExchange subclass. An exchange does
two things:
  build_authorization_url(state) -- the URL the browser is sent to; no I/O.
  exchange_code(code)            -- trade the callback code for a token, fetch
                                    the user's profile and normalize it into
                                    an ExternalIdentity.

Both calls are blocking. The HTTP client uses the configured timeout
(PROVIDER_TIMEOUT_SECONDS); there are no retries.

Uses Authlib's httpx OAuth2Client. A client is created per exchange so no
token state is shared between concurrent callbacks.

Security notes:
  [H1] An email the provider has not verified is refused. The resolver merges
       accounts by email, so an unverified address would let an attacker
       attach their provider identity to a victim's account. Google reports
       verified_email; Facebook only returns confirmed addresses.

  Every failure (HTTP, OAuth error response, unparsable profile, missing
  id or email) becomes ProviderExchangeFailed. The cause is logged here and
  chained, never shown to the client.

Supported providers:
  google   -- authorization code flow, v2 userinfo endpoint.
  facebook -- authorization code flow, Graph API /me.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import OAuth2Client

from auth.errors import ProviderExchangeFailed
from auth.models import ExternalIdentity, Provider
from core.config import Settings

logger = logging.getLogger("threadsauth.auth.oauth")


class ProviderExchange(ABC):
    """Base class for one provider's authorization-code flow."""

    provider: Provider
    authorize_url: str
    token_url: str
    userinfo_url: str
    scope: str
    authorize_params: dict[str, str] = {}

    def __init__(self, client_id: str, client_secret: str, redirect_url: str, timeout: float = 10.0) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.timeout = timeout

    def _new_client(self) -> OAuth2Client:
        return OAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=self.scope,
            redirect_uri=self.redirect_url,
            timeout=self.timeout,
        )

    def build_authorization_url(self, state: str) -> str:
        with self._new_client() as client:
            url, _state = client.create_authorization_url(self.authorize_url, state=state, **self.authorize_params)
        return url

    def exchange_code(self, code: str) -> ExternalIdentity:
        """Exchange an authorization code for a normalized ExternalIdentity.

        Raises:
            ProviderExchangeFailed: on any network, protocol or profile error.
        """
        try:
            with self._new_client() as client:
                client.fetch_token(self.token_url, code=code)
                resp = client.get(self.userinfo_url)
                resp.raise_for_status()
                profile = resp.json()
            return self.parse_profile(profile)
        except ProviderExchangeFailed:
            raise
        except (AuthlibBaseError, httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("%s code exchange failed: %s", self.provider.label, type(exc).__name__)
            raise ProviderExchangeFailed() from exc

    @abstractmethod
    def parse_profile(self, profile: dict) -> ExternalIdentity:
        """Normalize the provider's userinfo response into an ExternalIdentity."""


class GoogleExchange(ProviderExchange):
    provider = Provider.google
    authorize_url = "https://accounts.google.com/o/oauth2/auth"
    token_url = "https://oauth2.googleapis.com/token"  # noqa: S105 -- URL, not a password
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    scope = "openid profile email"
    authorize_params = {"access_type": "offline"}

    def parse_profile(self, profile: dict) -> ExternalIdentity:
        """Normalize a Google v2 userinfo response.

        [H1] verified_email must be true; a missing flag counts as unverified.
        """
        external_id = str(profile.get("id") or "")
        email = profile.get("email") or ""
        if not external_id or not email:
            logger.warning("Google profile is missing id or email")
            raise ProviderExchangeFailed()
        if not profile.get("verified_email", False):
            logger.warning("Google email is not verified; refusing login")
            raise ProviderExchangeFailed("The provider has not verified this email address.")
        return ExternalIdentity(
            provider=self.provider,
            external_id=external_id,
            email=email,
            display_name=profile.get("name") or "",
            picture_url=profile.get("picture") or "",
        )


class FacebookExchange(ProviderExchange):
    provider = Provider.facebook
    authorize_url = "https://www.facebook.com/v19.0/dialog/oauth"
    token_url = "https://graph.facebook.com/v19.0/oauth/access_token"  # noqa: S105 -- URL, not a password
    userinfo_url = "https://graph.facebook.com/me?fields=id,name,email,picture"
    scope = "email public_profile"

    def parse_profile(self, profile: dict) -> ExternalIdentity:
        """Normalize a Graph API /me response.

        The picture URL is nested as picture.data.url. Facebook omits email
        entirely when the user has none or declined the scope; without an
        email there is nothing to resolve against, so the login fails.
        """
        external_id = str(profile.get("id") or "")
        email = profile.get("email") or ""
        if not external_id or not email:
            logger.warning("Facebook profile is missing id or email")
            raise ProviderExchangeFailed()
        picture = ((profile.get("picture") or {}).get("data") or {}).get("url") or ""
        return ExternalIdentity(
            provider=self.provider,
            external_id=external_id,
            email=email,
            display_name=profile.get("name") or "",
            picture_url=picture,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_exchanges(settings: Settings) -> dict[Provider, ProviderExchange]:
    """Return an exchange for every provider with client id and secret configured.

    Unconfigured providers are simply absent; the login page only renders
    buttons for what this returns.
    """
    exchanges: dict[Provider, ProviderExchange] = {}
    if settings.google_client_id and settings.google_client_secret:
        exchanges[Provider.google] = GoogleExchange(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_redirect_url,
            timeout=settings.provider_timeout_seconds,
        )
        logger.info("Google OAuth provider registered")
    if settings.facebook_client_id and settings.facebook_client_secret:
        exchanges[Provider.facebook] = FacebookExchange(
            settings.facebook_client_id,
            settings.facebook_client_secret,
            settings.facebook_redirect_url,
            timeout=settings.provider_timeout_seconds,
        )
        logger.info("Facebook OAuth provider registered")
    return exchanges
