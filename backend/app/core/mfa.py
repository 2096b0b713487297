"""MFA utilities: TOTP secrets, TOTP matching and backup codes."""

import hmac
import secrets
from datetime import datetime, timezone

import pyotp
from cryptography.fernet import Fernet

from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import hash_token

logger = get_logger(__name__)

# Crockford-style alphabet without 0/O/1/I/L
BACKUP_CODE_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
BACKUP_CODE_GROUP = 4

# Fernet cipher for encrypting TOTP secrets
_fernet: Fernet | None = None


def get_fernet() -> Fernet:
    """Get Fernet cipher instance."""
    global _fernet
    if _fernet is None:
        if not settings.MFA_ENCRYPTION_KEY:
            raise ValueError("MFA_ENCRYPTION_KEY must be set")
        _fernet = Fernet(settings.MFA_ENCRYPTION_KEY.encode())
    return _fernet


def encrypt_totp_secret(secret: str) -> str:
    """Encrypt TOTP secret."""
    return get_fernet().encrypt(secret.encode()).decode()


def decrypt_totp_secret(encrypted_secret: str) -> str:
    """Decrypt TOTP secret."""
    return get_fernet().decrypt(encrypted_secret.encode()).decode()


def generate_totp_secret() -> str:
    """Generate a new TOTP secret."""
    return pyotp.random_base32()


def generate_totp_provisioning_uri(secret: str, email: str) -> str:
    """Generate TOTP provisioning URI for QR code."""
    totp = pyotp.TOTP(secret, digits=settings.MFA_TOTP_DIGITS)
    return totp.provisioning_uri(name=email, issuer_name=settings.MFA_TOTP_ISSUER)


def is_well_formed_totp(code: str) -> bool:
    return len(code) == settings.MFA_TOTP_DIGITS and code.isdigit()


def match_totp_counter(
    secret: str,
    code: str,
    last_used_counter: int | None = None,
    window: int = 1,
    for_time: datetime | None = None,
) -> int | None:
    """
    Find the time step a TOTP code belongs to.

    Accepts +/-``window`` steps of clock drift. Steps at or before
    ``last_used_counter`` are skipped so a code cannot be replayed.

    Returns:
        The matched time-step counter, or None if the code does not match.
    """
    if not is_well_formed_totp(code):
        return None

    totp = pyotp.TOTP(secret, digits=settings.MFA_TOTP_DIGITS)
    current = totp.timecode(for_time or datetime.now(timezone.utc))
    for counter in range(current - window, current + window + 1):
        if last_used_counter is not None and counter <= last_used_counter:
            continue
        if hmac.compare_digest(totp.generate_otp(counter), code):
            return counter
    return None


def generate_backup_codes(count: int | None = None) -> list[str]:
    """Generate display-form backup codes (``XXXX-XXXX``, uppercase)."""
    if count is None:
        count = settings.MFA_BACKUP_CODES_COUNT
    codes = []
    for _ in range(count):
        raw = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_GROUP * 2))
        codes.append(f"{raw[:BACKUP_CODE_GROUP]}-{raw[BACKUP_CODE_GROUP:]}")
    return codes


def normalize_backup_code(code: str) -> str:
    """Uppercase and drop separators, so ``abcd-efgh`` and ``ABCDEFGH`` match."""
    return "".join(ch for ch in code.upper() if ch.isalnum())


def hash_backup_code(code: str) -> str:
    """Hash a backup code for storage."""
    return hash_token(normalize_backup_code(code))
