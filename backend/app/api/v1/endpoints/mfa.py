"""MFA endpoints: second-factor login and TOTP enrollment."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.v1.endpoints.auth import issue_session_tokens
from app.core.app_exceptions import MFAVerificationError, raise_app_error
from app.core.dependencies import CurrentUser, get_mfa_pending_user_id
from app.core.device_identity import RequestDeviceIdentity, StaticDeviceIdentity
from app.core.rate_limit_deps import require_rate_limit_mfa_verify
from app.core.security_logging import get_client_ip, log_security_event
from app.db.session import get_db
from app.models.session import AuthMethod
from app.models.user import User
from app.schemas.common import StatusResponse
from app.schemas.mfa import (
    BackupCodesResponse,
    MFACodeRequest,
    MFASetupResponse,
    MFAStatusResponse,
    VerifyMfaLoginRequest,
    VerifyMfaLoginResponse,
)
from app.services.device_trust import DeviceDescriptor, DeviceTrustRegistry
from app.services.mfa_verifier import (
    MFAEnrollment,
    MFAVerifier,
    is_mfa_enabled,
    remaining_backup_codes,
)
from app.services.session_registry import DeviceContext

router = APIRouter(tags=["MFA"])
enrollment_router = APIRouter(tags=["MFA"])


def _rejected(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=VerifyMfaLoginResponse(success=False, error=message).model_dump(
            by_alias=True, exclude_none=True
        ),
    )


@router.post(
    "/verify-mfa-login",
    response_model=VerifyMfaLoginResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Verify second factor",
    description=(
        "Complete a login with a TOTP code (action=verify) or a backup code "
        "(action=verify_backup). Optionally trusts the device so later logins "
        "from it skip this step."
    ),
    responses={400: {"model": VerifyMfaLoginResponse}},
)
def verify_mfa_login(
    request_data: VerifyMfaLoginRequest,
    request: Request,
    pending_user_id: UUID = Depends(get_mfa_pending_user_id),
    db: Session = Depends(get_db),
):
    if pending_user_id != request_data.user_id:
        raise_app_error(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="MFA_TOKEN_INVALID",
            message="MFA session expired. Please sign in again.",
        )
    input_error = request_data.input_error()
    if input_error:
        return _rejected(input_error)
    require_rate_limit_mfa_verify(str(pending_user_id), request)

    verifier = MFAVerifier(db, request)
    try:
        if request_data.action == "verify":
            result = verifier.verify_totp(pending_user_id, request_data.code)
        else:
            result = verifier.verify_backup_code(pending_user_id, request_data.code)
    except MFAVerificationError as e:
        return _rejected(e.message)

    user = db.get(User, pending_user_id)
    if user is None:
        raise_app_error(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="MFA_TOKEN_INVALID",
            message="MFA session expired. Please sign in again.",
        )

    identity = RequestDeviceIdentity(request)
    device_info = request_data.device_info
    if device_info is not None:
        identity = StaticDeviceIdentity(
            device_info.device_id, device_info.fingerprint or identity.current_fingerprint()
        )

    if request_data.trust_device and device_info is not None:
        DeviceTrustRegistry(db).trust(
            user.id,
            DeviceDescriptor(
                device_id=device_info.device_id,
                device_name=device_info.device_name,
                device_type=device_info.device_type,
                user_agent=device_info.user_agent or request.headers.get("User-Agent"),
                fingerprint=identity.current_fingerprint(),
            ),
            ip_address=get_client_ip(request),
        )

    device = DeviceContext.from_request(
        request, identity, device_info.device_type if device_info else None
    )
    session, tokens = issue_session_tokens(
        db, request, user, AuthMethod.PASSWORD, mfa_verified=True, device=device
    )
    log_security_event(
        request,
        event_type="mfa_verified",
        outcome="allow",
        user_id=str(user.id),
        method=result.method,
        trusted_device=request_data.trust_device,
    )
    return VerifyMfaLoginResponse(
        success=True,
        remaining_codes=result.remaining_codes,
        tokens=tokens,
        session_id=session.id,
    )


@enrollment_router.get(
    "/status",
    response_model=MFAStatusResponse,
    summary="MFA status",
)
def mfa_status(current_user: CurrentUser, db: Session = Depends(get_db)) -> MFAStatusResponse:
    enabled = is_mfa_enabled(db, current_user.id)
    return MFAStatusResponse(
        enabled=enabled,
        remaining_backup_codes=remaining_backup_codes(db, current_user.id) if enabled else 0,
    )


@enrollment_router.post(
    "/setup",
    response_model=MFASetupResponse,
    status_code=status.HTTP_200_OK,
    summary="Start TOTP setup",
    description="Generate a TOTP secret. MFA is not enabled until /enable succeeds.",
)
def mfa_setup(current_user: CurrentUser, db: Session = Depends(get_db)) -> MFASetupResponse:
    secret, uri = MFAEnrollment(db).setup(current_user)
    return MFASetupResponse(provisioning_uri=uri, secret=secret)


@enrollment_router.post(
    "/enable",
    response_model=BackupCodesResponse,
    status_code=status.HTTP_200_OK,
    summary="Enable TOTP",
    description="Confirm the authenticator with a code. Returns backup codes once.",
)
def mfa_enable(
    request_data: MFACodeRequest,
    current_user: CurrentUser,
    request: Request,
    db: Session = Depends(get_db),
) -> BackupCodesResponse:
    codes = MFAEnrollment(db).enable(current_user, request_data.code)
    log_security_event(
        request, event_type="mfa_enabled", outcome="allow", user_id=str(current_user.id)
    )
    return BackupCodesResponse(backup_codes=codes)


@enrollment_router.post(
    "/backup-codes/regenerate",
    response_model=BackupCodesResponse,
    status_code=status.HTTP_200_OK,
    summary="Regenerate backup codes",
    description="Replace all backup codes. Requires a current TOTP code.",
)
def mfa_regenerate_backup_codes(
    request_data: MFACodeRequest,
    current_user: CurrentUser,
    request: Request,
    db: Session = Depends(get_db),
) -> BackupCodesResponse:
    codes = MFAEnrollment(db).regenerate_backup_codes(current_user, request_data.code)
    log_security_event(
        request,
        event_type="mfa_backup_codes_regenerated",
        outcome="allow",
        user_id=str(current_user.id),
    )
    return BackupCodesResponse(backup_codes=codes)


@enrollment_router.post(
    "/disable",
    response_model=StatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Disable MFA",
    description="Turn two-factor authentication off with a TOTP or backup code.",
)
def mfa_disable(
    request_data: MFACodeRequest,
    current_user: CurrentUser,
    request: Request,
    db: Session = Depends(get_db),
) -> StatusResponse:
    MFAEnrollment(db).disable(current_user, request_data.code)
    log_security_event(
        request, event_type="mfa_disabled", outcome="allow", user_id=str(current_user.id)
    )
    return StatusResponse(message="Two-factor authentication disabled")
