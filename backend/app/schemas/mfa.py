"""MFA schemas."""

from typing import Literal
from uuid import UUID

from pydantic import Field, field_validator

from app.core.mfa import is_well_formed_totp
from app.schemas.auth import TokensResponse
from app.schemas.common import CamelModel


class DeviceInfo(CamelModel):
    """Device descriptor sent by the MFA dialog."""

    device_id: str = Field(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9._:-]+$")
    device_name: str | None = Field(default=None, max_length=255)
    device_type: str | None = Field(default=None, max_length=32)
    user_agent: str | None = None
    fingerprint: str | None = Field(default=None, max_length=64)


class VerifyMfaLoginRequest(CamelModel):
    """Second factor for a pending login.

    ``verify`` takes a 6-digit TOTP code; ``verify_backup`` takes a backup
    code. One attempt uses exactly one of them.
    """

    action: Literal["verify", "verify_backup"]
    user_id: UUID
    code: str = Field(..., max_length=64)
    trust_device: bool = False
    device_info: DeviceInfo | None = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()

    def input_error(self) -> str | None:
        """Message for a code or device payload that cannot be checked at all."""
        if not self.code:
            return "Please enter a code."
        if self.action == "verify" and not is_well_formed_totp(self.code):
            return "Please enter the complete 6-digit code."
        if self.trust_device and self.device_info is None:
            return "Device details are required to trust this device."
        return None


class VerifyMfaLoginResponse(CamelModel):
    success: bool
    error: str | None = None
    remaining_codes: int | None = None
    tokens: TokensResponse | None = None
    session_id: UUID | None = None


class MFASetupResponse(CamelModel):
    """MFA TOTP setup response."""

    provisioning_uri: str
    secret: str  # Return once for QR code generation


class MFACodeRequest(CamelModel):
    """A TOTP code (or, for disable, a backup code) confirming an MFA change."""

    code: str = Field(..., min_length=1, max_length=64)


class BackupCodesResponse(CamelModel):
    """Backup codes, shown once."""

    status: Literal["ok"] = "ok"
    backup_codes: list[str]


class MFAStatusResponse(CamelModel):
    enabled: bool
    remaining_backup_codes: int
