"""OAuth provider adapters (authorization-code flow).

Identity comes from each provider's userinfo endpoint using the access token
from the code exchange; id_tokens are not parsed.
"""

import secrets
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.models.oauth import OAuthProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class OAuthUserInfo:
    """Normalized identity returned by a provider."""

    subject: str
    email: str | None
    email_verified: bool
    first_name: str = ""
    last_name: str = ""


class OAuthProviderAdapter:
    """Base class for OAuth provider adapters."""

    authorize_endpoint: str = ""
    token_endpoint: str = ""
    userinfo_endpoint: str = ""
    scope: str = ""

    def __init__(self, provider: OAuthProvider, client_id: str | None, client_secret: str | None):
        self.provider = provider
        self.client_id = client_id
        self.client_secret = client_secret

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def extra_authorize_params(self) -> dict[str, str]:
        return {}

    def get_authorize_url(self, state: str, redirect_uri: str | None = None) -> str:
        """Generate authorization URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri or settings.OAUTH_REDIRECT_URI,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
            **self.extra_authorize_params(),
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str | None = None) -> dict[str, Any]:
        """Exchange authorization code for tokens.

        Raises:
            httpx.HTTPError: transport failure or non-2xx response
        """
        async with httpx.AsyncClient(timeout=settings.OAUTH_HTTP_TIMEOUT_SECONDS) as client:
            response = await client.post(
                self.token_endpoint,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": redirect_uri or settings.OAUTH_REDIRECT_URI,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            return response.json()

    async def fetch_userinfo(self, access_token: str) -> OAuthUserInfo:
        """Fetch and normalize the user's identity.

        Raises:
            httpx.HTTPError: transport failure or non-2xx response
            ValueError: response is missing the subject
        """
        async with httpx.AsyncClient(timeout=settings.OAUTH_HTTP_TIMEOUT_SECONDS) as client:
            response = await client.get(
                self.userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
            response.raise_for_status()
            return self.parse_userinfo(response.json())

    def parse_userinfo(self, data: dict[str, Any]) -> OAuthUserInfo:
        raise NotImplementedError


class GoogleOAuthAdapter(OAuthProviderAdapter):
    """Google OAuth adapter."""

    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    userinfo_endpoint = "https://openidconnect.googleapis.com/v1/userinfo"
    scope = "openid email profile"

    def __init__(self):
        super().__init__(
            OAuthProvider.GOOGLE,
            settings.OAUTH_GOOGLE_CLIENT_ID,
            settings.OAUTH_GOOGLE_CLIENT_SECRET,
        )

    def extra_authorize_params(self) -> dict[str, str]:
        return {"prompt": "select_account"}

    def parse_userinfo(self, data: dict[str, Any]) -> OAuthUserInfo:
        if not data.get("sub"):
            raise ValueError("userinfo missing sub")
        return OAuthUserInfo(
            subject=str(data["sub"]),
            email=data.get("email"),
            email_verified=bool(data.get("email_verified")),
            first_name=data.get("given_name") or "",
            last_name=data.get("family_name") or "",
        )


class MicrosoftOAuthAdapter(OAuthProviderAdapter):
    """Microsoft identity platform adapter."""

    userinfo_endpoint = "https://graph.microsoft.com/oidc/userinfo"
    scope = "openid email profile"

    def __init__(self):
        super().__init__(
            OAuthProvider.MICROSOFT,
            settings.OAUTH_MICROSOFT_CLIENT_ID,
            settings.OAUTH_MICROSOFT_CLIENT_SECRET,
        )
        tenant = settings.OAUTH_MICROSOFT_TENANT
        self.authorize_endpoint = f"https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize"
        self.token_endpoint = f"https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"

    def extra_authorize_params(self) -> dict[str, str]:
        return {"response_mode": "query"}

    def parse_userinfo(self, data: dict[str, Any]) -> OAuthUserInfo:
        if not data.get("sub"):
            raise ValueError("userinfo missing sub")
        # Work accounts verify ownership through the directory
        return OAuthUserInfo(
            subject=str(data["sub"]),
            email=data.get("email"),
            email_verified=bool(data.get("email")),
            first_name=data.get("given_name") or "",
            last_name=data.get("family_name") or "",
        )


class GitHubOAuthAdapter(OAuthProviderAdapter):
    """GitHub OAuth app adapter. Emails come from ``/user/emails``."""

    authorize_endpoint = "https://github.com/login/oauth/authorize"
    token_endpoint = "https://github.com/login/oauth/access_token"
    userinfo_endpoint = "https://api.github.com/user"
    emails_endpoint = "https://api.github.com/user/emails"
    scope = "read:user user:email"

    def __init__(self):
        super().__init__(
            OAuthProvider.GITHUB,
            settings.OAUTH_GITHUB_CLIENT_ID,
            settings.OAUTH_GITHUB_CLIENT_SECRET,
        )

    async def fetch_userinfo(self, access_token: str) -> OAuthUserInfo:
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/vnd.github+json"}
        async with httpx.AsyncClient(timeout=settings.OAUTH_HTTP_TIMEOUT_SECONDS) as client:
            user_response = await client.get(self.userinfo_endpoint, headers=headers)
            user_response.raise_for_status()
            emails_response = await client.get(self.emails_endpoint, headers=headers)
            emails_response.raise_for_status()
        data = user_response.json()
        data["emails"] = emails_response.json()
        return self.parse_userinfo(data)

    def parse_userinfo(self, data: dict[str, Any]) -> OAuthUserInfo:
        if not data.get("id"):
            raise ValueError("userinfo missing id")
        primary = next(
            (e for e in data.get("emails", []) if e.get("primary") and e.get("verified")),
            None,
        )
        first_name, _, last_name = (data.get("name") or "").partition(" ")
        return OAuthUserInfo(
            subject=str(data["id"]),
            email=primary["email"] if primary else None,
            email_verified=primary is not None,
            first_name=first_name,
            last_name=last_name,
        )


_ADAPTERS: dict[OAuthProvider, type[OAuthProviderAdapter]] = {
    OAuthProvider.GOOGLE: GoogleOAuthAdapter,
    OAuthProvider.MICROSOFT: MicrosoftOAuthAdapter,
    OAuthProvider.GITHUB: GitHubOAuthAdapter,
}


def get_provider_adapter(provider: str) -> OAuthProviderAdapter:
    """Get OAuth provider adapter.

    Accepts ``oauth_google`` as well as the short form ``google``.
    """
    name = provider.lower()
    if not name.startswith("oauth_"):
        name = f"oauth_{name}"
    try:
        provider_enum = OAuthProvider(name)
    except ValueError:
        raise ValueError(f"Unsupported provider: {provider}") from None
    return _ADAPTERS[provider_enum]()


def generate_oauth_state() -> str:
    """Generate secure OAuth state."""
    return secrets.token_urlsafe(32)
