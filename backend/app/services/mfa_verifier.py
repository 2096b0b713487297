"""MFA verification (TOTP and backup codes) and enrollment."""

from dataclasses import dataclass
from uuid import UUID

from fastapi import Request
from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.abuse_protection import clear_mfa_failures, mfa_lock_remaining, record_mfa_failure
from app.core.app_exceptions import MFALockedError, MFAVerificationError
from app.core.audit import write_auth_audit
from app.core.logging import get_logger
from app.core.mfa import (
    decrypt_totp_secret,
    encrypt_totp_secret,
    generate_backup_codes,
    generate_totp_provisioning_uri,
    generate_totp_secret,
    hash_backup_code,
    is_well_formed_totp,
    match_totp_counter,
    normalize_backup_code,
)
from app.models.mfa import MFABackupCode, MFATOTP
from app.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class MFAVerification:
    user_id: UUID
    method: str  # "totp" or "backup_code"
    remaining_codes: int | None = None


class MFAVerifier:
    """
    Checks second-factor codes for users with MFA enabled.

    A TOTP code is accepted within one time step of drift, and each time
    step at most once. Backup codes are consumed with a conditional UPDATE so
    a code validates once. Every rejection is audited and counted toward a
    temporary lock.
    """

    def __init__(self, db: Session, request: Request | None = None):
        self.db = db
        self.request = request

    def _enabled_totp(self, user_id: UUID) -> MFATOTP | None:
        return (
            self.db.query(MFATOTP)
            .filter(MFATOTP.user_id == user_id, MFATOTP.enabled.is_(True))
            .first()
        )

    def _ensure_not_locked(self, user_id: UUID) -> None:
        remaining = mfa_lock_remaining(str(user_id))
        if remaining:
            write_auth_audit(
                self.db, "mfa_verify_locked", "deny", self.request, "MFA_LOCKED", user_id=user_id
            )
            raise MFALockedError()

    def _reject(self, user_id: UUID, method: str, reason_code: str) -> MFAVerificationError:
        failures = record_mfa_failure(str(user_id))
        write_auth_audit(
            self.db,
            "mfa_verify_failed",
            "deny",
            self.request,
            reason_code,
            user_id=user_id,
            meta={"method": method, "failure_count": failures},
        )
        return MFAVerificationError()

    def verify_totp(self, user_id: UUID, code: str) -> MFAVerification:
        """
        Raises:
            MFAVerificationError: malformed, wrong or replayed code, or MFA not enabled
            MFALockedError: too many recent failures
        """
        code = code.strip()
        if not is_well_formed_totp(code):
            raise MFAVerificationError("Please enter the complete 6-digit code.")
        self._ensure_not_locked(user_id)

        totp = self._enabled_totp(user_id)
        if totp is None:
            raise self._reject(user_id, "totp", "MFA_NOT_ENABLED")

        counter = match_totp_counter(
            decrypt_totp_secret(totp.secret_encrypted), code, totp.last_used_counter
        )
        if counter is None:
            raise self._reject(user_id, "totp", "INVALID_TOTP")

        # Advance the replay guard only if no concurrent request used this step
        claimed = self.db.execute(
            update(MFATOTP)
            .where(
                MFATOTP.user_id == user_id,
                or_(MFATOTP.last_used_counter.is_(None), MFATOTP.last_used_counter < counter),
            )
            .values(last_used_counter=counter)
            .returning(MFATOTP.user_id)
            .execution_options(synchronize_session="fetch")
        ).scalar_one_or_none()
        self.db.commit()
        if claimed is None:
            raise self._reject(user_id, "totp", "TOTP_REPLAYED")

        clear_mfa_failures(str(user_id))
        return MFAVerification(user_id=user_id, method="totp")

    def verify_backup_code(self, user_id: UUID, code: str) -> MFAVerification:
        """
        Consume a backup code. Case and separators are ignored.

        Raises:
            MFAVerificationError: empty, unknown or already used code
            MFALockedError: too many recent failures
        """
        if not normalize_backup_code(code):
            raise MFAVerificationError("Please enter a backup code.")
        self._ensure_not_locked(user_id)

        if self._enabled_totp(user_id) is None:
            raise self._reject(user_id, "backup_code", "MFA_NOT_ENABLED")

        consumed = self.db.execute(
            update(MFABackupCode)
            .where(
                MFABackupCode.user_id == user_id,
                MFABackupCode.code_hash == hash_backup_code(code),
                MFABackupCode.used_at.is_(None),
            )
            .values(used_at=utcnow())
            .returning(MFABackupCode.id)
            .execution_options(synchronize_session="fetch")
        ).scalar_one_or_none()
        self.db.commit()
        if consumed is None:
            raise self._reject(user_id, "backup_code", "INVALID_BACKUP_CODE")

        clear_mfa_failures(str(user_id))
        remaining = remaining_backup_codes(self.db, user_id)
        logger.info(
            "Backup code consumed", extra={"user_id": str(user_id), "remaining_codes": remaining}
        )
        return MFAVerification(user_id=user_id, method="backup_code", remaining_codes=remaining)


def remaining_backup_codes(db: Session, user_id: UUID) -> int:
    return (
        db.query(func.count(MFABackupCode.id))
        .filter(MFABackupCode.user_id == user_id, MFABackupCode.used_at.is_(None))
        .scalar()
    )


def _replace_backup_codes(db: Session, user_id: UUID) -> list[str]:
    db.query(MFABackupCode).filter(MFABackupCode.user_id == user_id).delete()
    codes = generate_backup_codes()
    for code in codes:
        db.add(MFABackupCode(user_id=user_id, code_hash=hash_backup_code(code)))
    return codes


class MFAEnrollment:
    """TOTP setup, activation, backup code regeneration and removal."""

    def __init__(self, db: Session):
        self.db = db

    def setup(self, user: User) -> tuple[str, str]:
        """Start (or restart) enrollment. Returns the secret and provisioning URI."""
        existing = self.db.get(MFATOTP, user.id)
        if existing is not None and existing.enabled:
            raise MFAVerificationError("Two-factor authentication is already enabled.")

        secret = generate_totp_secret()
        if existing is None:
            existing = MFATOTP(user_id=user.id, secret_encrypted=encrypt_totp_secret(secret))
            self.db.add(existing)
        else:
            existing.secret_encrypted = encrypt_totp_secret(secret)
            existing.last_used_counter = None
        self.db.commit()
        return secret, generate_totp_provisioning_uri(secret, user.email)

    def enable(self, user: User, code: str) -> list[str]:
        """Confirm the authenticator with a first code. Returns backup codes (shown once)."""
        totp = self.db.get(MFATOTP, user.id)
        if totp is None:
            raise MFAVerificationError("Start two-factor setup first.")
        if totp.enabled:
            raise MFAVerificationError("Two-factor authentication is already enabled.")

        counter = match_totp_counter(decrypt_totp_secret(totp.secret_encrypted), code.strip())
        if counter is None:
            raise MFAVerificationError()

        totp.enabled = True
        totp.verified_at = utcnow()
        totp.last_used_counter = counter
        codes = _replace_backup_codes(self.db, user.id)
        self.db.commit()
        logger.info("MFA enabled", extra={"user_id": str(user.id)})
        return codes

    def regenerate_backup_codes(self, user: User, code: str) -> list[str]:
        """Replace all backup codes after a fresh TOTP check."""
        MFAVerifier(self.db).verify_totp(user.id, code)
        codes = _replace_backup_codes(self.db, user.id)
        self.db.commit()
        return codes

    def disable(self, user: User, code: str) -> None:
        """Turn MFA off. Accepts a TOTP code or a backup code."""
        verifier = MFAVerifier(self.db)
        if is_well_formed_totp(code.strip()):
            verifier.verify_totp(user.id, code)
        else:
            verifier.verify_backup_code(user.id, code)

        self.db.query(MFABackupCode).filter(MFABackupCode.user_id == user.id).delete()
        self.db.query(MFATOTP).filter(MFATOTP.user_id == user.id).delete()
        self.db.commit()
        logger.info("MFA disabled", extra={"user_id": str(user.id)})


def is_mfa_enabled(db: Session, user_id: UUID) -> bool:
    return MFAVerifier(db)._enabled_totp(user_id) is not None
