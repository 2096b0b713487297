"""Tests for signup confirmation and code resend."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.models.audit import AuthAuditEvent
from app.models.otp import OtpToken
from app.models.session import UserSession
from app.models.tenant import Tenant
from app.models.user import User
from tests.helpers.outbox import RecordingEmailProvider
from tests.helpers.seed import create_tenant

EMAIL = "grace@example.com"


def _other_code(code: str) -> str:
    return "111111" if code != "111111" else "222222"


async def _signup(async_client: AsyncClient, tenant: Tenant, email: str = EMAIL) -> dict:
    response = await async_client.post(
        "/v1/signup-with-otp",
        json={
            "email": email,
            "password": "Str0ngPass!",
            "firstName": "Grace",
            "lastName": "Hopper",
            "siteId": str(tenant.id),
        },
    )
    assert response.status_code == 200
    return response.json()


async def _verify(async_client: AsyncClient, tenant: Tenant, code: str, email: str = EMAIL):
    return await async_client.post(
        "/v1/verify-signup-otp",
        json={"email": email, "siteId": str(tenant.id), "code": code},
    )


@pytest.mark.asyncio
async def test_verify_signup_confirms_account_and_signs_in(
    async_client: AsyncClient,
    db: Session,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    """The emailed code confirms the account, activates the profile and opens a session."""
    signup = await _signup(async_client, tenant)

    response = await _verify(async_client, tenant, outbox.last_code())

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Email confirmed"
    assert data["userId"] == signup["userId"]
    assert data["tokens"]["accessToken"]
    assert data["tokens"]["refreshToken"]
    assert data["tokens"]["tokenType"] == "bearer"

    user = db.query(User).filter(User.email == EMAIL).one()
    assert user.email_confirmed_at is not None
    assert user.profile.is_active is True
    assert db.query(UserSession).filter(UserSession.user_id == user.id).count() == 1

    me = await async_client.get(
        "/v1/auth/me", headers={"Authorization": f"Bearer {data['tokens']['accessToken']}"}
    )
    assert me.status_code == 200
    assert me.json()["email"] == EMAIL
    assert me.json()["emailConfirmed"] is True
    assert me.json()["siteId"] == str(tenant.id)


@pytest.mark.asyncio
async def test_verify_signup_is_case_insensitive_on_email(
    async_client: AsyncClient,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    await _signup(async_client, tenant)

    response = await _verify(async_client, tenant, outbox.last_code(), email="GRACE@EXAMPLE.COM")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_verify_signup_wrong_code_is_audited(
    async_client: AsyncClient,
    db: Session,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    """A wrong code is rejected, leaves the account pending and writes an audit row."""
    await _signup(async_client, tenant)

    response = await _verify(async_client, tenant, _other_code(outbox.last_code()))

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CODE"

    user = db.query(User).filter(User.email == EMAIL).one()
    assert user.email_confirmed_at is None

    event = db.query(AuthAuditEvent).filter(AuthAuditEvent.event_type == "signup_otp_failed").one()
    assert event.outcome == "deny"
    assert event.reason_code == "INVALID_CODE"
    assert event.email == EMAIL
    assert event.tenant_id == tenant.id


@pytest.mark.asyncio
async def test_verify_signup_code_is_single_use(
    async_client: AsyncClient,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    await _signup(async_client, tenant)
    code = outbox.last_code()

    first = await _verify(async_client, tenant, code)
    second = await _verify(async_client, tenant, code)

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["code"] == "INVALID_CODE"


@pytest.mark.asyncio
async def test_verify_signup_expired_code(
    async_client: AsyncClient,
    db: Session,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    await _signup(async_client, tenant)
    token = db.query(OtpToken).one()
    token.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    response = await _verify(async_client, tenant, outbox.last_code())

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CODE"


@pytest.mark.asyncio
async def test_verify_signup_code_is_scoped_to_site(
    async_client: AsyncClient,
    db: Session,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    """A code issued for one site does not confirm through another."""
    other = create_tenant(db, name="Other Site")
    await _signup(async_client, tenant)

    response = await _verify(async_client, other, outbox.last_code())

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_verify_signup_rejects_malformed_code(async_client: AsyncClient, tenant: Tenant) -> None:
    response = await _verify(async_client, tenant, "12ab")

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_resend_replaces_previous_code(
    async_client: AsyncClient,
    db: Session,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    """Resending retires the first code; only the newest one confirms."""
    await _signup(async_client, tenant)
    first_code = outbox.last_code()

    response = await async_client.post(
        "/v1/resend-signup-otp", json={"email": EMAIL, "siteId": str(tenant.id)}
    )

    assert response.status_code == 200
    assert response.json()["expiresInMinutes"] == 15
    assert len(outbox.messages) == 2
    second_code = outbox.last_code()
    assert second_code != first_code

    assert (await _verify(async_client, tenant, first_code)).status_code == 400
    assert (await _verify(async_client, tenant, second_code)).status_code == 200


@pytest.mark.asyncio
async def test_resend_does_not_reveal_unknown_email(
    async_client: AsyncClient,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    """Unknown and pending accounts get the same response; only pending ones get mail."""
    await _signup(async_client, tenant)

    pending = await async_client.post(
        "/v1/resend-signup-otp", json={"email": EMAIL, "siteId": str(tenant.id)}
    )
    unknown = await async_client.post(
        "/v1/resend-signup-otp", json={"email": "nobody@example.com", "siteId": str(tenant.id)}
    )

    assert pending.status_code == unknown.status_code == 200
    assert pending.json() == unknown.json()
    assert [m.to for m in outbox.messages] == [EMAIL, EMAIL]


@pytest.mark.asyncio
async def test_resend_skips_confirmed_account(
    async_client: AsyncClient,
    tenant: Tenant,
    outbox: RecordingEmailProvider,
) -> None:
    await _signup(async_client, tenant)
    await _verify(async_client, tenant, outbox.last_code())

    response = await async_client.post(
        "/v1/resend-signup-otp", json={"email": EMAIL, "siteId": str(tenant.id)}
    )

    assert response.status_code == 200
    assert len(outbox.messages) == 1
