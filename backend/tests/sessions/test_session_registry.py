"""Tests for the session registry: listing, refresh rotation and revocation."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from app.common.clock import as_utc, utcnow
from app.core.security import hash_token
from app.models.session import UserSession
from app.models.tenant import Tenant
from app.models.user import User
from app.services.session_registry import SessionRegistry
from tests.helpers.seed import auth_headers, create_test_user, create_user_session


@pytest.fixture
def user(db: Session, tenant: Tenant) -> User:
    return create_test_user(db, tenant, email="sessions@example.com")


def _active(db: Session, user: User) -> set[str | None]:
    rows = (
        db.query(UserSession)
        .filter(UserSession.user_id == user.id, UserSession.is_active.is_(True))
        .all()
    )
    return {row.device_id for row in rows}


def test_revoke_all_other_sessions_keeps_current_device(db: Session, user: User) -> None:
    """
    Every session on the current device survives, even ones other than the
    caller's; sessions on other devices and with no device id are revoked.
    """
    current, _ = create_user_session(db, user, "device-a")
    sibling, _ = create_user_session(db, user, "device-a")
    create_user_session(db, user, "device-b")
    create_user_session(db, user, None)

    revoked = SessionRegistry(db).revoke_all_other_sessions(user.id, "device-a")

    assert revoked == 2
    db.refresh(current)
    db.refresh(sibling)
    assert current.is_active and sibling.is_active
    assert _active(db, user) == {"device-a"}

    revoked_rows = db.query(UserSession).filter(UserSession.is_active.is_(False)).all()
    assert all(row.revoked_at is not None for row in revoked_rows)
    # Rows are kept for history
    assert db.query(UserSession).count() == 4


def test_revoke_all_other_sessions_leaves_other_users_alone(
    db: Session, tenant: Tenant, user: User
) -> None:
    other = create_test_user(db, tenant, email="other.sessions@example.com")
    create_user_session(db, user, "device-a")
    create_user_session(db, other, "device-b")

    assert SessionRegistry(db).revoke_all_other_sessions(user.id, "device-a") == 0
    assert _active(db, other) == {"device-b"}


def test_revoke_others_twice_revokes_nothing_more(db: Session, user: User) -> None:
    create_user_session(db, user, "device-a")
    create_user_session(db, user, "device-b")
    registry = SessionRegistry(db)

    assert registry.revoke_all_other_sessions(user.id, "device-a") == 1
    assert registry.revoke_all_other_sessions(user.id, "device-a") == 0


def test_rotate_refresh_token_is_single_use(db: Session, user: User) -> None:
    session, refresh = create_user_session(db, user, "device-a")
    registry = SessionRegistry(db)

    rotated = registry.rotate(refresh)

    assert rotated is not None
    rotated_session, new_refresh = rotated
    assert rotated_session.id == session.id
    assert new_refresh != refresh
    assert registry.rotate(refresh) is None
    assert registry.rotate(new_refresh) is not None


def test_rotate_returns_the_updated_row(db: Session, user: User) -> None:
    """The session handed back carries the new hash and activity time, not the cached ones."""
    session, refresh = create_user_session(db, user, "device-a", last_activity_offset=timedelta(hours=-3))
    stale_activity = session.last_activity_at

    rotated_session, new_refresh = SessionRegistry(db).rotate(refresh)

    assert rotated_session.session_token_hash == hash_token(new_refresh)
    assert as_utc(rotated_session.last_activity_at) > as_utc(stale_activity)


def test_rotate_rejects_revoked_and_expired_sessions(db: Session, user: User) -> None:
    revoked, revoked_refresh = create_user_session(db, user, "device-a")
    expired, expired_refresh = create_user_session(db, user, "device-b")
    registry = SessionRegistry(db)

    registry.revoke_session(user.id, revoked.id)
    expired.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    assert registry.rotate(revoked_refresh) is None
    assert registry.rotate(expired_refresh) is None


def test_list_active_orders_by_last_activity(db: Session, user: User) -> None:
    older, _ = create_user_session(db, user, "device-a", last_activity_offset=timedelta(hours=-2))
    newer, _ = create_user_session(db, user, "device-b")
    gone, _ = create_user_session(db, user, "device-c")
    registry = SessionRegistry(db)
    registry.revoke_session(user.id, gone.id)

    sessions = registry.list_active(user.id)

    assert [s.id for s in sessions] == [newer.id, older.id]


def test_revoke_session_only_touches_own_sessions(db: Session, tenant: Tenant, user: User) -> None:
    other = create_test_user(db, tenant, email="intruder@example.com")
    session, _ = create_user_session(db, user, "device-a")
    registry = SessionRegistry(db)

    assert registry.revoke_session(other.id, session.id) is False
    assert registry.revoke_session(user.id, session.id) is True
    assert registry.revoke_session(user.id, session.id) is False


@pytest.mark.asyncio
async def test_revoke_others_endpoint_signs_out_other_devices(
    async_client: AsyncClient,
    db: Session,
    user: User,
) -> None:
    """Revoked sessions lose access at once; the caller's device keeps working."""
    current, _ = create_user_session(db, user, "device-a")
    sibling, _ = create_user_session(db, user, "device-a")
    other, _ = create_user_session(db, user, "device-b")
    create_user_session(db, user, None)
    other_headers = auth_headers(db, other)
    sibling_headers = auth_headers(db, sibling)

    response = await async_client.post(
        "/v1/auth/sessions/revoke-others", headers=auth_headers(db, current)
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "revokedCount": 2}

    denied = await async_client.get("/v1/auth/me", headers=other_headers)
    assert denied.status_code == 401
    assert denied.json()["code"] == "SESSION_REVOKED"

    still_ok = await async_client.get("/v1/auth/me", headers=sibling_headers)
    assert still_ok.status_code == 200


@pytest.mark.asyncio
async def test_revoke_others_uses_header_when_session_has_no_device(
    async_client: AsyncClient,
    db: Session,
    user: User,
) -> None:
    current, _ = create_user_session(db, user, None)
    create_user_session(db, user, "device-b")
    headers = auth_headers(db, current)

    missing = await async_client.post("/v1/auth/sessions/revoke-others", headers=headers)
    assert missing.status_code == 400
    assert missing.json()["code"] == "DEVICE_ID_REQUIRED"

    response = await async_client.post(
        "/v1/auth/sessions/revoke-others", headers={**headers, "X-Device-Id": "device-b"}
    )
    assert response.status_code == 200
    # The caller's own session has no device id, so it goes too
    assert response.json()["revokedCount"] == 1
    assert _active(db, user) == {"device-b"}


@pytest.mark.asyncio
async def test_list_sessions_marks_current(
    async_client: AsyncClient,
    db: Session,
    user: User,
) -> None:
    current, _ = create_user_session(db, user, "device-a", mfa_verified=True)
    create_user_session(db, user, "device-b", last_activity_offset=timedelta(hours=-1))

    response = await async_client.get("/v1/auth/sessions", headers=auth_headers(db, current))

    assert response.status_code == 200
    sessions = response.json()["sessions"]
    assert [s["deviceId"] for s in sessions] == ["device-a", "device-b"]
    assert sessions[0]["isCurrent"] is True
    assert sessions[0]["mfaVerified"] is True
    assert sessions[0]["authMethod"] == "password"
    assert sessions[1]["isCurrent"] is False


@pytest.mark.asyncio
async def test_delete_session_endpoint(
    async_client: AsyncClient,
    db: Session,
    user: User,
) -> None:
    current, _ = create_user_session(db, user, "device-a")
    other, _ = create_user_session(db, user, "device-b")
    headers = auth_headers(db, current)

    response = await async_client.delete(f"/v1/auth/sessions/{other.id}", headers=headers)
    assert response.status_code == 200

    again = await async_client.delete(f"/v1/auth/sessions/{other.id}", headers=headers)
    assert again.status_code == 404
    assert again.json()["code"] == "SESSION_NOT_FOUND"

    db.refresh(other)
    assert other.is_active is False
