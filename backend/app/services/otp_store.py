"""Persisted one-time codes with single-use claim semantics."""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.app_exceptions import OtpStorageError
from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import generate_link_token, generate_numeric_code, hash_token
from app.models.otp import OtpPurpose, OtpToken
from app.services.identity import normalize_email

logger = get_logger(__name__)


class OtpStore:
    """
    One-time codes keyed by (tenant, email, purpose).

    Only code hashes are stored. Issuing a code retires the previous active
    one, so at most one is valid per key. Claiming is a single conditional
    UPDATE so two concurrent claims cannot both succeed. Rows are never
    deleted here.
    """

    def __init__(self, db: Session):
        self.db = db

    def _active(self, tenant_id: UUID, email: str, purpose: OtpPurpose):
        return self.db.query(OtpToken).filter(
            OtpToken.tenant_id == tenant_id,
            OtpToken.email == normalize_email(email),
            OtpToken.purpose == purpose.value,
            OtpToken.is_used.is_(False),
            OtpToken.expires_at > utcnow(),
        )

    def find_active(self, tenant_id: UUID, email: str, purpose: OtpPurpose) -> OtpToken | None:
        return self._active(tenant_id, email, purpose).order_by(OtpToken.created_at.desc()).first()

    def _new_code(self, purpose: OtpPurpose, length: int, taken: set[str]) -> str:
        for _ in range(settings.OTP_MAX_GENERATION_ATTEMPTS):
            if purpose is OtpPurpose.MAGIC_LINK:
                code = generate_link_token()
            else:
                code = generate_numeric_code(length)
            if hash_token(code) not in taken:
                return code
        raise OtpStorageError("Could not generate a unique verification code")

    def issue(
        self,
        tenant_id: UUID,
        email: str,
        purpose: OtpPurpose,
        *,
        ttl_minutes: int | None = None,
        meta: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        length: int | None = None,
    ) -> tuple[OtpToken, str]:
        """
        Create a new code and retire any active one for the same key.

        Returns:
            The stored token and the plaintext code (never persisted)

        Raises:
            OtpStorageError: the code could not be generated or stored
        """
        email = normalize_email(email)
        now = utcnow()
        ttl = ttl_minutes if ttl_minutes is not None else settings.OTP_EXPIRE_MINUTES

        try:
            active = self._active(tenant_id, email, purpose).all()
            code = self._new_code(
                purpose, length or settings.OTP_CODE_LENGTH, {t.code_hash for t in active}
            )
            for previous in active:
                previous.is_used = True
                previous.used_at = now

            token = OtpToken(
                tenant_id=tenant_id,
                email=email,
                code_hash=hash_token(code),
                purpose=purpose.value,
                expires_at=now + timedelta(minutes=ttl),
                meta=meta or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.db.add(token)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise OtpStorageError(cause=e) from e

        logger.info(
            "OTP issued",
            extra={
                "otp_id": str(token.id),
                "purpose": purpose.value,
                "tenant_id": str(tenant_id),
                "retired": len(active),
            },
        )
        return token, code

    def claim(self, tenant_id: UUID, email: str, purpose: OtpPurpose, code: str) -> OtpToken | None:
        """
        Atomically mark a matching, unused, unexpired code as used.

        Returns:
            The claimed token, or None if anything did not match
        """
        now = utcnow()
        stmt = (
            update(OtpToken)
            .where(
                OtpToken.tenant_id == tenant_id,
                OtpToken.email == normalize_email(email),
                OtpToken.purpose == purpose.value,
                OtpToken.code_hash == hash_token(code.strip()),
                OtpToken.is_used.is_(False),
                OtpToken.expires_at > now,
            )
            .values(is_used=True, used_at=now)
            .returning(OtpToken.id)
            .execution_options(synchronize_session="fetch")
        )
        token_id = self.db.execute(stmt).scalar_one_or_none()
        self.db.commit()
        if token_id is None:
            return None
        return self.db.get(OtpToken, token_id, populate_existing=True)

    def claim_link(self, email: str, code: str) -> OtpToken | None:
        """Claim a magic-link token. Links carry the email but not the tenant."""
        now = utcnow()
        stmt = (
            update(OtpToken)
            .where(
                OtpToken.email == normalize_email(email),
                OtpToken.purpose == OtpPurpose.MAGIC_LINK.value,
                OtpToken.code_hash == hash_token(code.strip()),
                OtpToken.is_used.is_(False),
                OtpToken.expires_at > now,
            )
            .values(is_used=True, used_at=now)
            .returning(OtpToken.id)
            .execution_options(synchronize_session="fetch")
        )
        token_id = self.db.execute(stmt).scalar_one_or_none()
        self.db.commit()
        if token_id is None:
            return None
        return self.db.get(OtpToken, token_id, populate_existing=True)

    def invalidate(self, token_id: UUID) -> bool:
        """Mark a token used. Idempotent; returns False if it was already used."""
        stmt = (
            update(OtpToken)
            .where(OtpToken.id == token_id, OtpToken.is_used.is_(False))
            .values(is_used=True, used_at=utcnow())
            .returning(OtpToken.id)
            .execution_options(synchronize_session="fetch")
        )
        invalidated = self.db.execute(stmt).scalar_one_or_none()
        self.db.commit()
        return invalidated is not None
