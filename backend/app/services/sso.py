"""OAuth SSO: authorization start and callback handling.

A successful callback ends in a single-use magic link that the web app
redeems for a session; every failure maps to one fixed reason code.
"""

from datetime import timedelta
from enum import Enum
from urllib.parse import urlencode
from uuid import UUID

import httpx
from fastapi import Request, status
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.clock import as_utc, utcnow
from app.core.app_exceptions import AuthServiceError, OtpStorageError, raise_app_error
from app.core.audit import write_auth_audit
from app.core.config import settings
from app.core.logging import get_logger
from app.core.oauth import OAuthProviderAdapter, OAuthUserInfo, generate_oauth_state, get_provider_adapter
from app.models.oauth import OAuthIdentity, OAuthState, SSOConnection
from app.models.otp import OtpPurpose
from app.models.session import AuthMethod
from app.models.user import User, UserProfile
from app.services.identity import IdentityProvider, normalize_email
from app.services.otp_store import OtpStore
from app.services.signup import get_active_tenant

logger = get_logger(__name__)


class SSOFailureReason(str, Enum):
    """Reason codes sent to ``/auth?error=``."""

    INVALID_CALLBACK = "invalid_callback"
    INVALID_STATE = "invalid_state"
    STATE_EXPIRED = "state_expired"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    NO_ACCESS_TOKEN = "no_access_token"
    USERINFO_FAILED = "userinfo_failed"
    DOMAIN_NOT_ALLOWED = "domain_not_allowed"
    USER_CREATION_FAILED = "user_creation_failed"
    SESSION_CREATION_FAILED = "session_creation_failed"
    OAUTH_CALLBACK_FAILED = "oauth_callback_failed"


class OAuthCallbackError(Exception):
    """The callback cannot complete; ``reason`` goes back to the client."""

    def __init__(self, reason: SSOFailureReason, detail: str | None = None):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


def auth_error_url(reason: SSOFailureReason) -> str:
    return f"{settings.SITE_URL}{settings.AUTH_ERROR_PATH}?{urlencode({'error': reason.value})}"


def magic_link_url(token: str, email: str, redirect_path: str | None = None) -> str:
    params = {"token": token, "email": email}
    if redirect_path:
        params["redirect"] = redirect_path
    return f"{settings.SITE_URL}{settings.MAGIC_LINK_PATH}?{urlencode(params)}"


def _safe_redirect_path(path: str | None) -> str | None:
    # Only same-site relative paths
    if path and path.startswith("/") and not path.startswith("//"):
        return path[:512]
    return None


def email_domain_allowed(email: str, allowed_domains: list[str] | None) -> bool:
    """An empty allow-list admits every domain."""
    if not allowed_domains:
        return True
    domain = email.rpartition("@")[2].lower()
    return domain in {d.strip().lower().lstrip("@") for d in allowed_domains}


class SSOService:
    def __init__(self, db: Session, request: Request | None = None):
        self.db = db
        self.request = request

    def start(self, site_id: UUID, provider: str, redirect_path: str | None = None) -> str:
        """Store a state row and return the provider authorization URL."""
        tenant = get_active_tenant(self.db, site_id)
        try:
            adapter = get_provider_adapter(provider)
        except ValueError:
            raise_app_error(status.HTTP_404_NOT_FOUND, "SSO_PROVIDER_UNKNOWN", "Unknown SSO provider")

        connection = (
            self.db.query(SSOConnection)
            .filter(
                SSOConnection.tenant_id == tenant.id,
                SSOConnection.provider == adapter.provider.value,
                SSOConnection.is_active.is_(True),
            )
            .first()
        )
        if connection is None:
            raise_app_error(
                status.HTTP_404_NOT_FOUND,
                "SSO_NOT_CONFIGURED",
                "Single sign-on is not configured for this site",
            )
        if not adapter.is_configured:
            raise_app_error(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "SSO_PROVIDER_UNAVAILABLE",
                "Single sign-on is temporarily unavailable",
            )

        state = generate_oauth_state()
        self.db.add(
            OAuthState(
                state=state,
                tenant_id=tenant.id,
                connection_id=connection.id,
                provider=adapter.provider.value,
                redirect_path=_safe_redirect_path(redirect_path),
                expires_at=utcnow() + timedelta(seconds=settings.OAUTH_STATE_TTL),
            )
        )
        self.db.commit()
        return adapter.get_authorize_url(state)

    async def handle_callback(
        self,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> str:
        """
        Complete the authorization-code flow.

        Returns:
            The magic-link URL the browser is redirected to

        Raises:
            OAuthCallbackError: with the reason code for ``/auth?error=``
        """
        if error:
            logger.warning(
                "Provider returned an error",
                extra={"provider_error": error, "provider_error_description": error_description},
            )
            raise OAuthCallbackError(SSOFailureReason.OAUTH_CALLBACK_FAILED, error)
        if not code or not state:
            raise OAuthCallbackError(SSOFailureReason.INVALID_CALLBACK)

        oauth_state = self._consume_state(state)
        connection = self.db.get(SSOConnection, oauth_state.connection_id)
        if connection is None or not connection.is_active:
            raise OAuthCallbackError(SSOFailureReason.INVALID_STATE, "connection inactive")

        adapter = get_provider_adapter(oauth_state.provider)
        info = await self._fetch_identity(adapter, code)
        email = normalize_email(info.email)

        if not email_domain_allowed(email, connection.allowed_domains):
            write_auth_audit(
                self.db,
                "sso_domain_denied",
                "deny",
                self.request,
                SSOFailureReason.DOMAIN_NOT_ALLOWED.value,
                tenant_id=oauth_state.tenant_id,
                email=email,
                meta={"provider": oauth_state.provider},
            )
            raise OAuthCallbackError(SSOFailureReason.DOMAIN_NOT_ALLOWED)

        try:
            user = self._resolve_user(connection, adapter, info, email)
        except (AuthServiceError, SQLAlchemyError) as e:
            self.db.rollback()
            logger.error("SSO user provisioning failed", extra={"error_type": type(e).__name__})
            raise OAuthCallbackError(SSOFailureReason.USER_CREATION_FAILED) from e

        try:
            _token, link_token = OtpStore(self.db).issue(
                oauth_state.tenant_id,
                email,
                OtpPurpose.MAGIC_LINK,
                ttl_minutes=settings.MAGIC_LINK_EXPIRE_MINUTES,
                meta={
                    "user_id": str(user.id),
                    "auth_method": AuthMethod.SSO.value,
                    "provider": oauth_state.provider,
                },
            )
        except OtpStorageError as e:
            raise OAuthCallbackError(SSOFailureReason.SESSION_CREATION_FAILED) from e

        write_auth_audit(
            self.db,
            "sso_login",
            "allow",
            self.request,
            user_id=user.id,
            tenant_id=oauth_state.tenant_id,
            meta={"provider": oauth_state.provider},
        )
        return magic_link_url(link_token, email, oauth_state.redirect_path)

    def _consume_state(self, state: str) -> OAuthState:
        oauth_state = self.db.get(OAuthState, state)
        if oauth_state is None or oauth_state.used_at is not None:
            raise OAuthCallbackError(SSOFailureReason.INVALID_STATE)
        if as_utc(oauth_state.expires_at) <= utcnow():
            raise OAuthCallbackError(SSOFailureReason.STATE_EXPIRED)

        consumed = self.db.execute(
            update(OAuthState)
            .where(OAuthState.state == state, OAuthState.used_at.is_(None))
            .values(used_at=utcnow())
            .returning(OAuthState.state)
            .execution_options(synchronize_session="fetch")
        ).scalar_one_or_none()
        self.db.commit()
        if consumed is None:
            raise OAuthCallbackError(SSOFailureReason.INVALID_STATE)
        return oauth_state

    async def _fetch_identity(self, adapter: OAuthProviderAdapter, code: str) -> OAuthUserInfo:
        try:
            tokens = await adapter.exchange_code_for_tokens(code)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Token exchange failed",
                extra={"provider": adapter.provider.value, "error_type": type(e).__name__},
            )
            raise OAuthCallbackError(SSOFailureReason.TOKEN_EXCHANGE_FAILED) from e

        access_token = tokens.get("access_token") if isinstance(tokens, dict) else None
        if not access_token:
            raise OAuthCallbackError(SSOFailureReason.NO_ACCESS_TOKEN)

        try:
            info = await adapter.fetch_userinfo(access_token)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Userinfo request failed",
                extra={"provider": adapter.provider.value, "error_type": type(e).__name__},
            )
            raise OAuthCallbackError(SSOFailureReason.USERINFO_FAILED) from e

        if not info.email or not info.email_verified:
            raise OAuthCallbackError(SSOFailureReason.USERINFO_FAILED, "no verified email")
        return info

    def _resolve_user(
        self,
        connection: SSOConnection,
        adapter: OAuthProviderAdapter,
        info: OAuthUserInfo,
        email: str,
    ) -> User:
        """Find the linked user, link by verified email, or provision a new account."""
        provider = adapter.provider.value
        identity = (
            self.db.query(OAuthIdentity)
            .filter(
                OAuthIdentity.provider == provider,
                OAuthIdentity.provider_subject == info.subject,
            )
            .first()
        )
        if identity is not None:
            user = identity.user
        else:
            accounts = IdentityProvider(self.db)
            user = accounts.find_user_by_email(email)
            if user is None:
                user = accounts.create_user_if_absent(
                    email,
                    None,
                    metadata={
                        "first_name": info.first_name,
                        "last_name": info.last_name,
                        "site_id": str(connection.tenant_id),
                        "provider": provider,
                    },
                    confirmed=True,
                )
            self.db.add(
                OAuthIdentity(
                    user_id=user.id,
                    provider=provider,
                    provider_subject=info.subject,
                    email_at_link_time=email,
                )
            )

        profile = user.profile
        if profile is not None and profile.tenant_id != connection.tenant_id:
            raise AuthServiceError("Account belongs to another site")
        if profile is None:
            profile = UserProfile(
                id=user.id,
                tenant_id=connection.tenant_id,
                first_name=info.first_name,
                last_name=info.last_name,
                email=email,
                role=connection.default_role,
            )
            self.db.add(profile)

        # The provider verified the address
        IdentityProvider(self.db).confirm_user(user)
        profile.is_active = True
        self.db.commit()
        return user
