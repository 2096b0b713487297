"""OAuth SSO endpoints.

The callback always answers with a redirect: to a magic link on success, or
to the web app's auth page with a fixed ``error`` reason code.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core.audit import write_auth_audit
from app.core.logging import get_logger
from app.core.security_logging import log_security_event
from app.db.session import get_db
from app.services.sso import OAuthCallbackError, SSOFailureReason, SSOService, auth_error_url

logger = get_logger(__name__)

router = APIRouter(tags=["SSO"])


@router.get(
    "/callback",
    status_code=status.HTTP_302_FOUND,
    summary="SSO callback",
    description="Provider redirect target. Redirects to a magic link or to /auth?error=<reason>.",
    response_class=RedirectResponse,
)
async def sso_callback(
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    try:
        target = await SSOService(db, request).handle_callback(
            code, state, error=error, error_description=error_description
        )
    except OAuthCallbackError as e:
        if e.reason is not SSOFailureReason.DOMAIN_NOT_ALLOWED:
            write_auth_audit(
                db,
                "sso_callback_failed",
                "deny",
                request,
                e.reason.value,
                meta={"detail": e.detail} if e.detail else None,
            )
        return RedirectResponse(auth_error_url(e.reason), status_code=status.HTTP_302_FOUND)
    except Exception:
        logger.exception("Unexpected SSO callback failure")
        db.rollback()
        log_security_event(
            request,
            event_type="sso_callback_failed",
            outcome="deny",
            reason_code=SSOFailureReason.OAUTH_CALLBACK_FAILED.value,
        )
        return RedirectResponse(
            auth_error_url(SSOFailureReason.OAUTH_CALLBACK_FAILED),
            status_code=status.HTTP_302_FOUND,
        )

    return RedirectResponse(target, status_code=status.HTTP_302_FOUND)


@router.get(
    "/{site_id}/{provider}/start",
    status_code=status.HTTP_302_FOUND,
    summary="Start SSO",
    description="Redirect to the provider's authorization page for the site's SSO connection.",
    response_class=RedirectResponse,
)
def sso_start(
    site_id: UUID,
    provider: str,
    request: Request,
    redirect: str | None = Query(default=None, max_length=512),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    authorize_url = SSOService(db, request).start(site_id, provider, redirect)
    log_security_event(
        request, event_type="sso_start", outcome="allow", provider=provider, site_id=str(site_id)
    )
    return RedirectResponse(authorize_url, status_code=status.HTTP_302_FOUND)
