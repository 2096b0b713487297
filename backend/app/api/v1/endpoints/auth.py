"""Authentication endpoints: login, token refresh, logout, password reset, magic links."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.app_exceptions import InvalidCodeError, raise_app_error
from app.core.audit import write_auth_audit
from app.core.dependencies import CurrentSession, CurrentUser
from app.core.device_identity import RequestDeviceIdentity
from app.core.rate_limit_deps import (
    require_rate_limit_login_ip,
    require_rate_limit_otp_send,
    require_rate_limit_otp_verify,
)
from app.core.security import DUMMY_PASSWORD_HASH, create_mfa_token, verify_password
from app.core.security_logging import get_client_ip, get_user_agent, log_security_event
from app.db.session import get_db
from app.models.session import AuthMethod, UserSession
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MagicLinkVerifyRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    RefreshResponse,
    TokensResponse,
    UserResponse,
)
from app.schemas.common import StatusResponse
from app.services.device_trust import DeviceTrustRegistry
from app.services.identity import IdentityProvider
from app.services.mfa_verifier import is_mfa_enabled
from app.services.otp_store import OtpStore
from app.services.password_reset import confirm_password_reset, request_password_reset
from app.services.session_registry import DeviceContext, SessionRegistry

router = APIRouter(tags=["Auth"])


def issue_session_tokens(
    db: Session,
    request: Request,
    user: User,
    auth_method: AuthMethod,
    mfa_verified: bool = False,
    device: DeviceContext | None = None,
) -> tuple[UserSession, TokensResponse]:
    """Create a session for the caller's device and the tokens bound to it."""
    registry = SessionRegistry(db)
    if device is None:
        device = DeviceContext.from_request(request, RequestDeviceIdentity(request))
    session, refresh_token = registry.create_session(user, device, auth_method, mfa_verified)
    tokens = TokensResponse(
        access_token=registry.access_token_for(session),
        refresh_token=refresh_token,
    )
    return session, tokens


def sign_in_or_challenge(
    db: Session, request: Request, user: User, auth_method: AuthMethod
) -> LoginResponse:
    """
    Finish a first-factor sign in.

    Users with MFA get an MFA pending token unless the calling device is
    trusted; everyone else gets a session.
    """
    if is_mfa_enabled(db, user.id):
        device_id = RequestDeviceIdentity(request).get_or_create_device_id()
        devices = DeviceTrustRegistry(db)
        if not devices.is_trusted(user.id, device_id):
            log_security_event(
                request, event_type="mfa_challenge", outcome="allow", user_id=str(user.id)
            )
            return LoginResponse(
                user_id=user.id,
                mfa_required=True,
                mfa_token=create_mfa_token(str(user.id)),
                method="totp",
            )
        devices.touch(user.id, device_id, get_client_ip(request))

    session, tokens = issue_session_tokens(db, request, user, auth_method)
    log_security_event(
        request,
        event_type="auth_login",
        outcome="allow",
        user_id=str(user.id),
        auth_method=auth_method.value,
    )
    return LoginResponse(user_id=user.id, tokens=tokens, session_id=session.id)


def _user_response(db: Session, user: User) -> UserResponse:
    profile = user.profile
    return UserResponse(
        id=user.id,
        email=user.email,
        first_name=profile.first_name if profile else None,
        last_name=profile.last_name if profile else None,
        role=profile.role if profile else None,
        site_id=profile.tenant_id if profile else None,
        email_confirmed=user.is_confirmed,
        mfa_enabled=is_mfa_enabled(db, user.id),
        created_at=user.created_at,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Log in",
    description=(
        "Authenticate with email and password. Returns tokens, or an MFA "
        "challenge when the account has two-factor authentication enabled."
    ),
)
def login(
    request_data: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(require_rate_limit_login_ip),
) -> LoginResponse:
    user = IdentityProvider(db).find_user_by_email(request_data.email)

    # Verify against a dummy hash for unknown and password-less accounts so
    # the response time does not reveal which emails exist
    password_hash = user.password_hash if (user and user.password_hash) else DUMMY_PASSWORD_HASH
    password_valid = verify_password(request_data.password, password_hash)

    if user is None or not user.password_hash or not password_valid:
        write_auth_audit(
            db,
            "auth_login_failed",
            "deny",
            request,
            "INVALID_CREDENTIALS",
            user_id=user.id if user else None,
            email=request_data.email,
        )
        raise_app_error(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="INVALID_CREDENTIALS",
            message="Invalid email or password",
        )

    if not user.is_confirmed:
        log_security_event(
            request,
            event_type="auth_login_failed",
            outcome="deny",
            reason_code="EMAIL_NOT_CONFIRMED",
            user_id=str(user.id),
        )
        raise_app_error(
            status_code=status.HTTP_403_FORBIDDEN,
            code="EMAIL_NOT_CONFIRMED",
            message="Please confirm your email address before signing in.",
        )

    if user.profile is not None and not user.profile.is_active:
        raise_app_error(
            status_code=status.HTTP_403_FORBIDDEN,
            code="ACCOUNT_INACTIVE",
            message="This account has been deactivated.",
        )

    return sign_in_or_challenge(db, request, user, AuthMethod.PASSWORD)


@router.post(
    "/magic-link/verify",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Redeem magic link",
    description="Exchange a single-use magic-link token (issued by SSO) for a session.",
)
def verify_magic_link(
    request_data: MagicLinkVerifyRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> LoginResponse:
    require_rate_limit_otp_verify(request_data.email, request)

    token = OtpStore(db).claim_link(request_data.email, request_data.token)
    user = None
    if token is not None:
        user_id = token.meta.get("user_id")
        user = db.get(User, UUID(user_id)) if user_id else None

    if user is None:
        write_auth_audit(
            db,
            "magic_link_failed",
            "deny",
            request,
            InvalidCodeError.code,
            email=request_data.email,
        )
        raise InvalidCodeError("Invalid or expired sign-in link.")

    try:
        auth_method = AuthMethod(token.meta.get("auth_method", AuthMethod.MAGIC_LINK.value))
    except ValueError:
        auth_method = AuthMethod.MAGIC_LINK
    return sign_in_or_challenge(db, request, user, auth_method)


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    status_code=status.HTTP_200_OK,
    summary="Refresh tokens",
    description="Rotate the session's refresh token and issue a new access token.",
)
def refresh(
    request_data: RefreshRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> RefreshResponse:
    registry = SessionRegistry(db)
    rotated = registry.rotate(request_data.refresh_token)
    if rotated is None:
        log_security_event(
            request, event_type="auth_refresh", outcome="deny", reason_code="REFRESH_INVALID"
        )
        raise_app_error(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="REFRESH_INVALID",
            message="Session expired. Please sign in again.",
        )

    session, refresh_token = rotated
    return RefreshResponse(
        tokens=TokensResponse(
            access_token=registry.access_token_for(session),
            refresh_token=refresh_token,
        )
    )


@router.post(
    "/logout",
    response_model=StatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Log out",
    description="Revoke the current session.",
)
def logout(
    session: CurrentSession,
    request: Request,
    db: Session = Depends(get_db),
) -> StatusResponse:
    SessionRegistry(db).revoke_session(session.user_id, session.id)
    log_security_event(
        request, event_type="auth_logout", outcome="allow", user_id=str(session.user_id)
    )
    return StatusResponse()


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current user",
    description="Account and profile of the signed-in user.",
)
def me(current_user: CurrentUser, db: Session = Depends(get_db)) -> UserResponse:
    return _user_response(db, current_user)


@router.post(
    "/password-reset/request",
    response_model=StatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Request password reset",
    description=(
        "Email a password reset code. The response is the same whether or not "
        "the account exists."
    ),
)
def password_reset_request(
    request_data: PasswordResetRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> StatusResponse:
    require_rate_limit_otp_send(request_data.email, request)
    request_password_reset(
        db,
        request_data.site_id,
        request_data.email,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return StatusResponse()


@router.post(
    "/password-reset/confirm",
    response_model=StatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm password reset",
    description="Set a new password with the emailed code. Signs out every session.",
)
def password_reset_confirm(
    request_data: PasswordResetConfirm,
    request: Request,
    db: Session = Depends(get_db),
) -> StatusResponse:
    require_rate_limit_otp_verify(request_data.email, request)
    try:
        user = confirm_password_reset(
            db,
            request_data.site_id,
            request_data.email,
            request_data.code,
            request_data.new_password,
        )
    except InvalidCodeError:
        write_auth_audit(
            db,
            "password_reset_failed",
            "deny",
            request,
            InvalidCodeError.code,
            tenant_id=request_data.site_id,
            email=request_data.email,
        )
        raise

    log_security_event(
        request, event_type="password_reset", outcome="allow", user_id=str(user.id)
    )
    return StatusResponse()
