"""Application-specific exceptions for consistent error handling."""

from typing import Any

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Application error with standardized error code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | list[Any] | None = None,
    ):
        """Initialize application error."""
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "details": details,
            },
        )
        self.code = code
        self.message = message
        self.details = details


def raise_app_error(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | list[Any] | None = None,
) -> None:
    """Raise an application error with standardized format."""
    raise AppError(status_code=status_code, code=code, message=message, details=details)


class AuthServiceError(Exception):
    """Base class for errors raised by the auth services.

    Each subclass carries the HTTP status, stable code and user-facing message
    used when the error reaches the handler boundary.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    message: str = "An internal server error occurred"

    def __init__(self, message: str | None = None, *, cause: BaseException | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.cause = cause


class TenantNotFoundError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_SITE"
    message = "Invalid site. Please check your signup link and try again."


class AccountExistsError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "ACCOUNT_EXISTS"
    message = "An account with this email already exists. Please sign in instead."


class AccountCreationError(AuthServiceError):
    code = "ACCOUNT_CREATION_FAILED"
    message = "Failed to create account. Please try again."


class OtpStorageError(AuthServiceError):
    code = "OTP_STORAGE_FAILED"
    message = "Failed to generate verification code. Please try again."


class EmailDeliveryError(AuthServiceError):
    code = "EMAIL_DELIVERY_FAILED"
    message = "Failed to send verification email. Please try again."


class InvalidCodeError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_CODE"
    message = "Invalid or expired verification code."


class MFAVerificationError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "MFA_INVALID"
    message = "Invalid verification code. Please try again."


class MFALockedError(AuthServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "MFA_LOCKED"
    message = "Too many failed attempts. Please wait before trying again."
