"""Session registry endpoints: list and revoke login sessions."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.app_exceptions import raise_app_error
from app.core.dependencies import CurrentSession
from app.core.device_identity import DEVICE_ID_HEADER, is_valid_device_id
from app.core.security_logging import log_security_event
from app.db.session import get_db
from app.schemas.common import StatusResponse
from app.schemas.session import RevokeSessionsResponse, SessionListResponse, SessionResponse
from app.services.session_registry import SessionRegistry

router = APIRouter(tags=["Sessions"])


@router.get(
    "",
    response_model=SessionListResponse,
    summary="List sessions",
    description="Active sessions of the current user, most recently used first.",
)
def list_sessions(
    session: CurrentSession,
    db: Session = Depends(get_db),
) -> SessionListResponse:
    sessions = SessionRegistry(db).list_active(session.user_id)
    return SessionListResponse(
        sessions=[
            SessionResponse(
                id=s.id,
                device_id=s.device_id,
                device_type=s.device_type,
                browser=s.browser,
                os=s.os,
                ip_address=s.ip_address,
                country=s.country,
                city=s.city,
                auth_method=s.auth_method,
                mfa_verified=s.mfa_verified,
                last_activity_at=s.last_activity_at,
                created_at=s.created_at,
                expires_at=s.expires_at,
                is_current=s.id == session.id,
            )
            for s in sessions
        ]
    )


@router.post(
    "/revoke-others",
    response_model=RevokeSessionsResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign out other devices",
    description=(
        "Revoke every session on other devices. All sessions on the current "
        "device (from the session or the X-Device-Id header) stay active."
    ),
)
def revoke_other_sessions(
    session: CurrentSession,
    request: Request,
    db: Session = Depends(get_db),
) -> RevokeSessionsResponse:
    device_id = session.device_id
    if not device_id:
        header = request.headers.get(DEVICE_ID_HEADER, "").strip()
        device_id = header if is_valid_device_id(header) else None
    if not device_id:
        raise_app_error(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="DEVICE_ID_REQUIRED",
            message="The current device could not be identified",
        )

    revoked = SessionRegistry(db).revoke_all_other_sessions(session.user_id, device_id)
    log_security_event(
        request,
        event_type="sessions_revoked_others",
        outcome="allow",
        user_id=str(session.user_id),
        revoked_count=revoked,
    )
    return RevokeSessionsResponse(revoked_count=revoked)


@router.delete(
    "/{session_id}",
    response_model=StatusResponse,
    summary="Revoke session",
)
def revoke_session(
    session_id: UUID,
    session: CurrentSession,
    request: Request,
    db: Session = Depends(get_db),
) -> StatusResponse:
    if not SessionRegistry(db).revoke_session(session.user_id, session_id):
        raise_app_error(
            status_code=status.HTTP_404_NOT_FOUND,
            code="SESSION_NOT_FOUND",
            message="Session not found",
        )
    log_security_event(
        request,
        event_type="session_revoked",
        outcome="allow",
        user_id=str(session.user_id),
        session_id=str(session_id),
    )
    return StatusResponse()
