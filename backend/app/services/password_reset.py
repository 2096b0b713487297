"""Password reset with emailed one-time codes."""

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.app_exceptions import EmailDeliveryError, InvalidCodeError
from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import hash_password
from app.models.otp import OtpPurpose
from app.models.user import User
from app.services.code_mailer import send_code_email
from app.services.identity import IdentityProvider, normalize_email
from app.services.otp_store import OtpStore
from app.services.session_registry import SessionRegistry
from app.services.signup import get_active_tenant

logger = get_logger(__name__)


def request_password_reset(
    db: Session,
    site_id: UUID,
    email: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Email a reset code if a confirmed account exists; silent otherwise."""
    email = normalize_email(email)
    get_active_tenant(db, site_id)
    user = IdentityProvider(db).find_user_by_email(email)
    if user is None or not user.is_confirmed:
        logger.info("Password reset requested for unknown or pending account")
        return

    store = OtpStore(db)
    token, code = store.issue(
        site_id,
        email,
        OtpPurpose.PASSWORD_RESET,
        meta={"user_id": str(user.id)},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    try:
        send_code_email(
            db, site_id, email, OtpPurpose.PASSWORD_RESET, code, settings.OTP_EXPIRE_MINUTES
        )
    except EmailDeliveryError:
        store.invalidate(token.id)
        raise


def confirm_password_reset(
    db: Session, site_id: UUID, email: str, code: str, new_password: str
) -> User:
    """
    Set a new password with a reset code and sign out every session.

    Raises:
        InvalidCodeError: wrong, used or expired code
    """
    email = normalize_email(email)
    token = OtpStore(db).claim(site_id, email, OtpPurpose.PASSWORD_RESET, code)
    if token is None:
        raise InvalidCodeError()

    user = IdentityProvider(db).find_user_by_email(email)
    if user is None or str(user.id) != token.meta.get("user_id"):
        raise InvalidCodeError()

    user.password_hash = hash_password(new_password)
    db.commit()
    revoked = SessionRegistry(db).revoke_all(user.id)
    logger.info("Password reset", extra={"user_id": str(user.id), "sessions_revoked": revoked})
    return user
