"""OTP signup: account creation, code dispatch and confirmation.

``SignupOrchestrator.signup`` runs as a saga with this failure policy:

    step            on failure
    create_account  abort (nothing to undo)
    create_profile  tolerate, log (profile can be backfilled on confirmation)
    issue_otp       abort, delete account
    branding        never fails (default brand)
    render          abort, invalidate code, delete account
    dispatch        abort, invalidate code, delete account
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.app_exceptions import (
    AccountCreationError,
    AccountExistsError,
    AuthServiceError,
    EmailDeliveryError,
    InvalidCodeError,
    OtpStorageError,
    TenantNotFoundError,
)
from app.core.config import settings
from app.core.logging import get_logger
from app.models.otp import OtpPurpose
from app.models.tenant import Tenant
from app.models.user import User, UserProfile, UserRole
from app.services.branding import resolve_branding
from app.services.code_mailer import build_code_email, send_code_email
from app.services.email import service as email_service
from app.services.identity import IdentityProvider, normalize_email
from app.services.otp_store import OtpStore
from app.services.saga import Saga, SagaFailed, SagaStep, StepPolicy

logger = get_logger(__name__)

_STEP_ERRORS: dict[str, type[AuthServiceError]] = {
    "create_account": AccountCreationError,
    "issue_otp": OtpStorageError,
    "render": EmailDeliveryError,
    "dispatch": EmailDeliveryError,
}


@dataclass(frozen=True)
class SignupCommand:
    email: str
    password: str
    first_name: str
    last_name: str
    site_id: UUID
    role: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class SignupResult:
    user_id: UUID
    expires_in_minutes: int


def get_active_tenant(db: Session, site_id: UUID) -> Tenant:
    tenant = db.get(Tenant, site_id)
    if tenant is None or not tenant.is_active:
        raise TenantNotFoundError()
    return tenant


class SignupOrchestrator:
    """Creates unconfirmed accounts and confirms them with emailed codes."""

    def __init__(self, db: Session):
        self.db = db
        self.identity = IdentityProvider(db)
        self.otp_store = OtpStore(db)

    def signup(self, command: SignupCommand) -> SignupResult:
        """
        Create a pending account and email it a confirmation code.

        Raises:
            TenantNotFoundError: unknown or inactive site
            AccountExistsError: the email already has an account
            AccountCreationError / OtpStorageError / EmailDeliveryError:
                a downstream step failed; completed steps were compensated
        """
        email = normalize_email(command.email)
        tenant = get_active_tenant(self.db, command.site_id)
        if self.identity.find_user_by_email(email) is not None:
            raise AccountExistsError()

        saga = Saga(
            "signup",
            [
                SagaStep("create_account", self._create_account, compensation=self._delete_account),
                SagaStep("create_profile", self._create_profile, policy=StepPolicy.TOLERATE),
                SagaStep("issue_otp", self._issue_otp, compensation=self._invalidate_otp),
                SagaStep("branding", lambda ctx: resolve_branding(self.db, tenant.id)),
                SagaStep("render", self._render),
                SagaStep("dispatch", lambda ctx: email_service.send_email(ctx["render"])),
            ],
        )
        context: dict[str, Any] = {"command": command, "email": email, "tenant": tenant}

        try:
            saga.run(context)
        except SagaFailed as failure:
            if not failure.fully_compensated:
                logger.error(
                    "Signup left partial state",
                    extra={
                        "email_domain": email.rpartition("@")[2],
                        "failed_step": failure.step,
                        "uncompensated": [f.step for f in failure.compensation_failures],
                    },
                )
            raise self._classify(failure) from failure.cause

        user: User = context["create_account"]
        logger.info(
            "Signup code sent",
            extra={
                "user_id": str(user.id),
                "tenant_id": str(tenant.id),
                "profile_created": "create_profile" not in context["tolerated_failures"],
            },
        )
        return SignupResult(user_id=user.id, expires_in_minutes=settings.OTP_EXPIRE_MINUTES)

    @staticmethod
    def _classify(failure: SagaFailed) -> AuthServiceError:
        if isinstance(failure.cause, AuthServiceError):
            return failure.cause
        error_cls = _STEP_ERRORS.get(failure.step, AuthServiceError)
        return error_cls(cause=failure.cause)

    def _create_account(self, ctx: dict[str, Any]) -> User:
        command: SignupCommand = ctx["command"]
        return self.identity.create_user_if_absent(
            ctx["email"],
            command.password,
            metadata={
                "first_name": command.first_name,
                "last_name": command.last_name,
                "site_id": str(command.site_id),
                "role": command.role or UserRole.MEMBER.value,
            },
            confirmed=False,
        )

    def _delete_account(self, ctx: dict[str, Any]) -> None:
        self.identity.delete_user(ctx["create_account"].id)

    def _create_profile(self, ctx: dict[str, Any]) -> UserProfile:
        command: SignupCommand = ctx["command"]
        profile = UserProfile(
            id=ctx["create_account"].id,
            tenant_id=command.site_id,
            first_name=command.first_name,
            last_name=command.last_name,
            email=ctx["email"],
            role=command.role or UserRole.MEMBER.value,
            is_active=False,
        )
        self.db.add(profile)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return profile

    def _issue_otp(self, ctx: dict[str, Any]):
        command: SignupCommand = ctx["command"]
        token, code = self.otp_store.issue(
            command.site_id,
            ctx["email"],
            OtpPurpose.CONFIRM_SIGNUP,
            ttl_minutes=settings.OTP_EXPIRE_MINUTES,
            meta={"user_id": str(ctx["create_account"].id)},
            ip_address=command.ip_address,
            user_agent=command.user_agent,
        )
        ctx["code"] = code
        return token

    def _invalidate_otp(self, ctx: dict[str, Any]) -> None:
        self.otp_store.invalidate(ctx["issue_otp"].id)

    def _render(self, ctx: dict[str, Any]):
        return build_code_email(
            ctx["branding"],
            ctx["email"],
            OtpPurpose.CONFIRM_SIGNUP,
            ctx.pop("code"),
            settings.OTP_EXPIRE_MINUTES,
            first_name=ctx["command"].first_name,
        )

    def verify_signup_otp(self, site_id: UUID, email: str, code: str) -> User:
        """
        Confirm an account with its signup code.

        The profile is activated, or created from the account metadata if the
        signup step that writes it had failed.

        Raises:
            InvalidCodeError: wrong, used or expired code, or no pending account
        """
        email = normalize_email(email)
        token = self.otp_store.claim(site_id, email, OtpPurpose.CONFIRM_SIGNUP, code)
        if token is None:
            raise InvalidCodeError()

        user = self.identity.find_user_by_email(email)
        if user is None or str(user.id) != token.meta.get("user_id"):
            raise InvalidCodeError()

        self.identity.confirm_user(user)
        profile = user.profile
        if profile is None:
            metadata = user.user_metadata or {}
            profile = UserProfile(
                id=user.id,
                tenant_id=site_id,
                first_name=metadata.get("first_name", ""),
                last_name=metadata.get("last_name", ""),
                email=email,
                role=metadata.get("role", UserRole.MEMBER.value),
            )
            self.db.add(profile)
            logger.info("Profile backfilled on confirmation", extra={"user_id": str(user.id)})
        profile.is_active = True
        self.db.commit()

        logger.info("Signup confirmed", extra={"user_id": str(user.id), "tenant_id": str(site_id)})
        return user

    def resend_signup_otp(
        self,
        site_id: UUID,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int | None:
        """
        Send a fresh confirmation code to a pending account.

        Does nothing for unknown or already confirmed accounts so the response
        does not reveal account state.

        Returns:
            The new code's lifetime in minutes, or None if nothing was sent
        """
        email = normalize_email(email)
        get_active_tenant(self.db, site_id)
        user = self.identity.find_user_by_email(email)
        if user is None or user.is_confirmed:
            return None
        if (user.user_metadata or {}).get("site_id") != str(site_id):
            return None

        token, code = self.otp_store.issue(
            site_id,
            email,
            OtpPurpose.CONFIRM_SIGNUP,
            meta={"user_id": str(user.id)},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            send_code_email(
                self.db,
                site_id,
                email,
                OtpPurpose.CONFIRM_SIGNUP,
                code,
                settings.OTP_EXPIRE_MINUTES,
                first_name=(user.user_metadata or {}).get("first_name"),
            )
        except EmailDeliveryError:
            self.otp_store.invalidate(token.id)
            raise
        return settings.OTP_EXPIRE_MINUTES
