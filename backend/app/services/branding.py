"""Tenant email branding."""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import get_logger
from app.models.tenant import Tenant, TenantEmailSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class Branding:
    """Resolved sender identity and look for a tenant's emails."""

    name: str
    from_email: str
    support_email: str
    logo_url: str | None
    primary_color: str
    domain: str

    def template_vars(self) -> dict:
        return {
            "brand_name": self.name,
            "support_email": self.support_email,
            "logo_url": self.logo_url,
            "primary_color": self.primary_color,
            "domain": self.domain,
        }


def default_branding() -> Branding:
    return Branding(
        name=settings.DEFAULT_BRAND_NAME,
        from_email=settings.DEFAULT_BRAND_FROM_EMAIL,
        support_email=settings.DEFAULT_BRAND_SUPPORT_EMAIL,
        logo_url=settings.DEFAULT_BRAND_LOGO_URL,
        primary_color=settings.DEFAULT_BRAND_PRIMARY_COLOR,
        domain=settings.DEFAULT_BRAND_DOMAIN,
    )


def resolve_branding(db: Session, tenant_id: UUID) -> Branding:
    """
    Branding for a tenant's emails.

    Unset fields fall back to the default brand field by field; a missing
    config row or a failed lookup yields the default brand. Never raises.
    """
    fallback = default_branding()
    try:
        config = db.get(TenantEmailSettings, tenant_id)
        tenant = db.get(Tenant, tenant_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "Tenant branding lookup failed, using default brand",
            extra={"tenant_id": str(tenant_id), "error": str(e)},
        )
        return fallback

    if config is None:
        return fallback

    return Branding(
        name=config.from_name or (tenant.name if tenant else None) or fallback.name,
        from_email=config.from_email or fallback.from_email,
        support_email=config.support_email or fallback.support_email,
        logo_url=config.logo_url or fallback.logo_url,
        primary_color=config.primary_color or fallback.primary_color,
        domain=config.domain or (tenant.domain if tenant else None) or fallback.domain,
    )
