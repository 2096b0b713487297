"""Tests for the trusted device registry and its endpoints."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from app.common.clock import as_utc, utcnow
from app.models.device import TrustedDevice
from app.models.tenant import Tenant
from app.models.user import User
from app.services.device_trust import DeviceDescriptor, DeviceTrustRegistry
from tests.helpers.seed import auth_headers, create_test_user, create_user_session, enable_mfa


@pytest.fixture
def user(db: Session, tenant: Tenant) -> User:
    return create_test_user(db, tenant, email="devices@example.com")


def test_trust_lasts_ninety_days(db: Session, user: User) -> None:
    registry = DeviceTrustRegistry(db)
    now = utcnow()

    devices = registry.trust(user.id, DeviceDescriptor(device_id="dev-1", device_name="Phone"))

    assert [d.device_id for d in devices] == ["dev-1"]
    assert registry.is_trusted(user.id, "dev-1")
    assert registry.is_trusted(user.id, "dev-1", now=now + timedelta(days=89))
    assert not registry.is_trusted(user.id, "dev-1", now=now + timedelta(days=91))


def test_retrust_renews_expiry_without_duplicates(db: Session, user: User) -> None:
    registry = DeviceTrustRegistry(db)
    registry.trust(user.id, DeviceDescriptor(device_id="dev-1", device_name="Phone"))
    device = db.query(TrustedDevice).one()
    device.trust_expires_at = utcnow() + timedelta(days=1)
    db.commit()

    registry.trust(user.id, DeviceDescriptor(device_id="dev-1"))

    device = db.query(TrustedDevice).one()
    assert as_utc(device.trust_expires_at) > utcnow() + timedelta(days=89)
    # Fields not sent again are kept
    assert device.device_name == "Phone"


def test_expired_trust_is_kept_but_inactive(db: Session, user: User) -> None:
    registry = DeviceTrustRegistry(db)
    registry.trust(user.id, DeviceDescriptor(device_id="dev-1"))
    device = db.query(TrustedDevice).one()
    device.trust_expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    assert not registry.is_trusted(user.id, "dev-1")
    devices = registry.list_devices(user.id)
    assert len(devices) == 1
    assert devices[0].trust_active() is False


def test_revoke_removes_trust(db: Session, user: User) -> None:
    registry = DeviceTrustRegistry(db)
    registry.trust(user.id, DeviceDescriptor(device_id="dev-1"))
    registry.trust(user.id, DeviceDescriptor(device_id="dev-2"))

    devices = registry.revoke(user.id, "dev-1")

    assert [d.device_id for d in devices] == ["dev-2"]
    assert not registry.is_trusted(user.id, "dev-1")
    # Unknown devices are a no-op
    assert [d.device_id for d in registry.revoke(user.id, "missing")] == ["dev-2"]


def test_update_trust_does_not_extend_expiry(db: Session, user: User) -> None:
    registry = DeviceTrustRegistry(db)
    registry.trust(user.id, DeviceDescriptor(device_id="dev-1"))
    before = as_utc(db.query(TrustedDevice).one().trust_expires_at)

    devices = registry.update_trust(user.id, "dev-1", device_name="Kitchen tablet", is_trusted=False)

    assert devices[0].device_name == "Kitchen tablet"
    assert as_utc(devices[0].trust_expires_at) == before
    assert not registry.is_trusted(user.id, "dev-1")

    registry.update_trust(user.id, "dev-1", is_trusted=True)
    assert registry.is_trusted(user.id, "dev-1")


def test_update_unknown_device_returns_none(db: Session, user: User) -> None:
    assert DeviceTrustRegistry(db).update_trust(user.id, "missing", device_name="x") is None


def test_trust_is_per_user(db: Session, tenant: Tenant, user: User) -> None:
    other = create_test_user(db, tenant, email="someone.else@example.com")
    registry = DeviceTrustRegistry(db)
    registry.trust(user.id, DeviceDescriptor(device_id="shared-id"))

    assert registry.is_trusted(user.id, "shared-id")
    assert not registry.is_trusted(other.id, "shared-id")
    assert not registry.is_trusted(user.id, None)


@pytest.mark.asyncio
async def test_trust_endpoint_requires_mfa_verified_session(
    async_client: AsyncClient,
    db: Session,
    user: User,
) -> None:
    """With MFA on, only a session that passed MFA may trust a device."""
    enable_mfa(db, user)
    session, _ = create_user_session(db, user, "dev-1", mfa_verified=False)

    response = await async_client.post(
        "/v1/auth/devices/trust",
        headers={**auth_headers(db, session), "X-Device-Id": "dev-1"},
        json={"deviceName": "Laptop"},
    )

    assert response.status_code == 403
    assert response.json()["code"] == "MFA_REQUIRED"
    assert db.query(TrustedDevice).count() == 0

    verified, _ = create_user_session(db, user, "dev-1", mfa_verified=True)
    response = await async_client.post(
        "/v1/auth/devices/trust",
        headers={**auth_headers(db, verified), "X-Device-Id": "dev-1"},
        json={"deviceName": "Laptop"},
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_device_endpoints(
    async_client: AsyncClient,
    db: Session,
    user: User,
) -> None:
    """Trust, list, check, rename and forget the current device."""
    session, _ = create_user_session(db, user, "dev-1")
    headers = {**auth_headers(db, session), "X-Device-Id": "dev-1"}

    trusted = await async_client.post(
        "/v1/auth/devices/trust", headers=headers, json={"deviceName": "Laptop"}
    )
    assert trusted.status_code == 200
    devices = trusted.json()["devices"]
    assert len(devices) == 1
    assert devices[0]["deviceId"] == "dev-1"
    assert devices[0]["isCurrent"] is True
    assert devices[0]["trustActive"] is True
    assert devices[0]["deviceType"] == "desktop"

    listed = await async_client.get("/v1/auth/devices", headers=headers)
    assert listed.status_code == 200
    assert listed.json()["devices"][0]["deviceName"] == "Laptop"

    check = await async_client.get("/v1/auth/devices/dev-1/trust", headers=headers)
    assert check.json() == {"deviceId": "dev-1", "trusted": True}

    renamed = await async_client.patch(
        "/v1/auth/devices/dev-1", headers=headers, json={"deviceName": "Site laptop"}
    )
    assert renamed.status_code == 200
    assert renamed.json()["devices"][0]["deviceName"] == "Site laptop"

    missing = await async_client.patch(
        "/v1/auth/devices/unknown", headers=headers, json={"isTrusted": False}
    )
    assert missing.status_code == 404
    assert missing.json()["code"] == "DEVICE_NOT_FOUND"

    forgotten = await async_client.delete("/v1/auth/devices/dev-1", headers=headers)
    assert forgotten.status_code == 200
    assert forgotten.json()["devices"] == []

    check = await async_client.get("/v1/auth/devices/dev-1/trust", headers=headers)
    assert check.json()["trusted"] is False


@pytest.mark.asyncio
async def test_device_endpoints_require_auth(async_client: AsyncClient) -> None:
    response = await async_client.get("/v1/auth/devices")

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"
