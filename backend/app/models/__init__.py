"""Database models."""

# Import all models here so Alembic can detect them
from app.models.audit import AuthAuditEvent
from app.models.device import TrustedDevice
from app.models.mfa import MFABackupCode, MFATOTP
from app.models.oauth import OAuthIdentity, OAuthProvider, OAuthState, SSOConnection
from app.models.otp import OtpPurpose, OtpToken
from app.models.session import AuthMethod, UserSession
from app.models.tenant import Tenant, TenantEmailSettings
from app.models.user import User, UserProfile, UserRole

__all__ = [
    "AuthAuditEvent",
    "AuthMethod",
    "MFABackupCode",
    "MFATOTP",
    "OAuthIdentity",
    "OAuthProvider",
    "OAuthState",
    "OtpPurpose",
    "OtpToken",
    "SSOConnection",
    "Tenant",
    "TenantEmailSettings",
    "TrustedDevice",
    "User",
    "UserProfile",
    "UserRole",
    "UserSession",
]
