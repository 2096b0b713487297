"""Session registry schemas."""

from datetime import datetime
from uuid import UUID

from app.schemas.common import CamelModel


class SessionResponse(CamelModel):
    id: UUID
    device_id: str | None = None
    device_type: str | None = None
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    country: str | None = None
    city: str | None = None
    auth_method: str
    mfa_verified: bool
    last_activity_at: datetime
    created_at: datetime
    expires_at: datetime
    is_current: bool = False


class SessionListResponse(CamelModel):
    sessions: list[SessionResponse]


class RevokeSessionsResponse(CamelModel):
    success: bool = True
    revoked_count: int
