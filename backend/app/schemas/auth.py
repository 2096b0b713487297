"""Authentication schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from app.core.config import settings
from app.models.user import UserRole
from app.schemas.common import CamelModel

# Roles that can be requested at self-service signup
SIGNUP_ROLES = {UserRole.ADMIN.value, UserRole.MANAGER.value, UserRole.MEMBER.value}


class _EmailModel(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


def _check_code(v: str) -> str:
    v = v.strip()
    if len(v) != settings.OTP_CODE_LENGTH or not v.isdigit():
        raise ValueError(f"Code must be {settings.OTP_CODE_LENGTH} digits")
    return v


# Request schemas
class SignupWithOtpRequest(_EmailModel):
    """OTP signup request schema."""

    password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    site_id: UUID
    role: str | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank")
        return v

    @field_validator("role")
    @classmethod
    def check_role(cls, v: str | None) -> str | None:
        if v is not None and v not in SIGNUP_ROLES:
            raise ValueError(f"Role must be one of {sorted(SIGNUP_ROLES)}")
        return v


class VerifySignupOtpRequest(_EmailModel):
    """Signup code confirmation."""

    site_id: UUID
    code: str

    @field_validator("code")
    @classmethod
    def check_code(cls, v: str) -> str:
        return _check_code(v)


class ResendSignupOtpRequest(_EmailModel):
    site_id: UUID


class LoginRequest(_EmailModel):
    """Login request schema."""

    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(CamelModel):
    """Refresh token request schema."""

    refresh_token: str = Field(..., min_length=1)


class PasswordResetRequest(_EmailModel):
    """Password reset request schema."""

    site_id: UUID


class PasswordResetConfirm(_EmailModel):
    """Password reset confirmation schema."""

    site_id: UUID
    code: str
    new_password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, max_length=128)

    @field_validator("code")
    @classmethod
    def check_code(cls, v: str) -> str:
        return _check_code(v)


class MagicLinkVerifyRequest(_EmailModel):
    """Magic link redemption (SSO landing page)."""

    token: str = Field(..., min_length=1, max_length=256)


# Response schemas
class SignupWithOtpResponse(CamelModel):
    success: Literal[True] = True
    message: str
    user_id: UUID
    expires_in_minutes: int


class ResendSignupOtpResponse(CamelModel):
    success: Literal[True] = True
    message: str
    expires_in_minutes: int | None = None


class TokensResponse(CamelModel):
    """Tokens response schema."""

    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int = Field(default_factory=lambda: settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)


class UserResponse(CamelModel):
    """Current user, merged from account and profile."""

    id: UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None
    site_id: UUID | None = None
    email_confirmed: bool
    mfa_enabled: bool = False
    created_at: datetime


class LoginResponse(CamelModel):
    """Login response schema.

    Either ``tokens`` is set, or ``mfa_required`` with an ``mfa_token`` for
    ``/verify-mfa-login``.
    """

    success: bool = True
    user_id: UUID
    tokens: TokensResponse | None = None
    session_id: UUID | None = None
    mfa_required: bool = False
    mfa_token: str | None = None
    method: Literal["totp"] | None = None


class VerifySignupOtpResponse(CamelModel):
    success: Literal[True] = True
    message: str
    user_id: UUID
    tokens: TokensResponse
    session_id: UUID


class RefreshResponse(CamelModel):
    """Refresh response schema."""

    tokens: TokensResponse
