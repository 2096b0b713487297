"""OTP signup endpoints."""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.api.v1.endpoints.auth import issue_session_tokens
from app.core.app_exceptions import AuthServiceError, InvalidCodeError
from app.core.audit import write_auth_audit
from app.core.config import settings
from app.core.rate_limit_deps import (
    require_rate_limit_otp_send,
    require_rate_limit_otp_verify,
    require_rate_limit_signup_ip,
)
from app.core.security_logging import get_client_ip, get_user_agent, log_security_event
from app.db.session import get_db
from app.models.session import AuthMethod
from app.schemas.auth import (
    ResendSignupOtpRequest,
    ResendSignupOtpResponse,
    SignupWithOtpRequest,
    SignupWithOtpResponse,
    VerifySignupOtpRequest,
    VerifySignupOtpResponse,
)
from app.services.signup import SignupCommand, SignupOrchestrator

router = APIRouter(tags=["Signup"])


@router.options("/signup-with-otp", include_in_schema=False)
async def signup_with_otp_options() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/signup-with-otp",
    response_model=SignupWithOtpResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign up with email code",
    description=(
        "Create an unconfirmed account on a site and email it a confirmation code. "
        "Any failure after the account is created undoes the completed steps."
    ),
)
def signup_with_otp(
    request_data: SignupWithOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(require_rate_limit_signup_ip),
) -> SignupWithOtpResponse:
    command = SignupCommand(
        email=request_data.email,
        password=request_data.password,
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        site_id=request_data.site_id,
        role=request_data.role,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    try:
        result = SignupOrchestrator(db).signup(command)
    except AuthServiceError as e:
        log_security_event(
            request,
            event_type="signup_otp",
            outcome="deny",
            reason_code=e.code,
            site_id=str(request_data.site_id),
        )
        raise

    log_security_event(
        request,
        event_type="signup_otp",
        outcome="allow",
        user_id=str(result.user_id),
        site_id=str(request_data.site_id),
    )
    return SignupWithOtpResponse(
        message="Verification code sent to your email",
        user_id=result.user_id,
        expires_in_minutes=result.expires_in_minutes,
    )


@router.post(
    "/verify-signup-otp",
    response_model=VerifySignupOtpResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm signup",
    description="Confirm the account with the emailed code and sign in.",
)
def verify_signup_otp(
    request_data: VerifySignupOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> VerifySignupOtpResponse:
    require_rate_limit_otp_verify(request_data.email, request)
    try:
        user = SignupOrchestrator(db).verify_signup_otp(
            request_data.site_id, request_data.email, request_data.code
        )
    except InvalidCodeError:
        write_auth_audit(
            db,
            "signup_otp_failed",
            "deny",
            request,
            InvalidCodeError.code,
            tenant_id=request_data.site_id,
            email=request_data.email,
        )
        raise

    session, tokens = issue_session_tokens(db, request, user, AuthMethod.PASSWORD)
    log_security_event(
        request, event_type="signup_confirmed", outcome="allow", user_id=str(user.id)
    )
    return VerifySignupOtpResponse(
        message="Email confirmed",
        user_id=user.id,
        tokens=tokens,
        session_id=session.id,
    )


@router.post(
    "/resend-signup-otp",
    response_model=ResendSignupOtpResponse,
    status_code=status.HTTP_200_OK,
    summary="Resend signup code",
    description=(
        "Send a new confirmation code. The response does not reveal whether a "
        "pending account exists for the email."
    ),
)
def resend_signup_otp(
    request_data: ResendSignupOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ResendSignupOtpResponse:
    require_rate_limit_otp_send(request_data.email, request)
    SignupOrchestrator(db).resend_signup_otp(
        request_data.site_id,
        request_data.email,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return ResendSignupOtpResponse(
        message="If a pending account exists for this email, a new code has been sent.",
        expires_in_minutes=settings.OTP_EXPIRE_MINUTES,
    )
