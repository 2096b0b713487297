"""Rate limit checks used by the auth endpoints."""

from fastapi import Request

from app.core.config import settings
from app.core.rate_limit import check_rate_limit_and_raise, normalize_email_for_key
from app.core.security_logging import get_client_ip


def require_rate_limit_signup_ip(request: Request) -> None:
    """Rate limit dependency for signup by IP."""
    ip = get_client_ip(request)
    check_rate_limit_and_raise(
        f"rl:signup:ip:{ip}",
        settings.RL_SIGNUP_IP_LIMIT,
        settings.RL_SIGNUP_IP_WINDOW,
        request,
        event_type="rate_limited_signup_ip",
    )


def require_rate_limit_login_ip(request: Request) -> None:
    """Rate limit dependency for login by IP."""
    ip = get_client_ip(request)
    check_rate_limit_and_raise(
        f"rl:login:ip:{ip}",
        settings.RL_LOGIN_IP_LIMIT,
        settings.RL_LOGIN_IP_WINDOW,
        request,
        event_type="rate_limited_login_ip",
    )


def require_rate_limit_otp_send(email: str, request: Request) -> None:
    """Limit how often a code can be (re)sent to one address."""
    check_rate_limit_and_raise(
        f"rl:otp_send:email:{normalize_email_for_key(email)}",
        settings.RL_OTP_SEND_EMAIL_LIMIT,
        settings.RL_OTP_SEND_EMAIL_WINDOW,
        request,
        event_type="rate_limited_otp_send",
    )


def require_rate_limit_otp_verify(email: str, request: Request) -> None:
    """Limit OTP guesses per address."""
    check_rate_limit_and_raise(
        f"rl:otp_verify:email:{normalize_email_for_key(email)}",
        settings.RL_OTP_VERIFY_EMAIL_LIMIT,
        settings.RL_OTP_VERIFY_EMAIL_WINDOW,
        request,
        event_type="rate_limited_otp_verify",
    )


def require_rate_limit_mfa_verify(user_id: str, request: Request) -> None:
    """Limit MFA verification attempts per user."""
    check_rate_limit_and_raise(
        f"rl:mfa_verify:user:{user_id}",
        settings.RL_MFA_VERIFY_USER_LIMIT,
        settings.RL_MFA_VERIFY_USER_WINDOW,
        request,
        event_type="rate_limited_mfa_verify",
    )
