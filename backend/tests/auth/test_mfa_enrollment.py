"""Tests for TOTP enrollment, backup code regeneration and MFA removal."""

from datetime import timedelta

import pyotp
import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.config import settings
from app.models.mfa import MFABackupCode, MFATOTP
from app.models.tenant import Tenant
from app.models.user import User
from tests.helpers.seed import auth_headers, create_test_user, create_user_session, enable_mfa


@pytest.fixture
def user(db: Session, tenant: Tenant) -> User:
    return create_test_user(db, tenant, email="enroll@example.com")


@pytest.fixture
def headers(db: Session, user: User) -> dict[str, str]:
    session, _ = create_user_session(db, user, "device-a")
    return auth_headers(db, session)


def _next_step_code(secret: str) -> str:
    """A code for the following time step, still inside the drift window."""
    return pyotp.TOTP(secret).at(utcnow() + timedelta(seconds=30))


@pytest.mark.asyncio
async def test_enroll_enable_and_disable(
    async_client: AsyncClient,
    db: Session,
    user: User,
    headers: dict[str, str],
) -> None:
    """Setup, confirm with a code, then turn MFA off with a backup code."""
    status = await async_client.get("/v1/auth/mfa/status", headers=headers)
    assert status.json() == {"enabled": False, "remainingBackupCodes": 0}

    setup = await async_client.post("/v1/auth/mfa/setup", headers=headers)
    assert setup.status_code == 200
    secret = setup.json()["secret"]
    assert setup.json()["provisioningUri"].startswith("otpauth://totp/")

    # Not enabled until confirmed
    assert db.get(MFATOTP, user.id).enabled is False

    enabled = await async_client.post(
        "/v1/auth/mfa/enable", headers=headers, json={"code": pyotp.TOTP(secret).now()}
    )
    assert enabled.status_code == 200
    codes = enabled.json()["backupCodes"]
    assert len(codes) == settings.MFA_BACKUP_CODES_COUNT
    assert len(set(codes)) == len(codes)

    status = await async_client.get("/v1/auth/mfa/status", headers=headers)
    assert status.json() == {"enabled": True, "remainingBackupCodes": len(codes)}

    disabled = await async_client.post(
        "/v1/auth/mfa/disable", headers=headers, json={"code": codes[0]}
    )
    assert disabled.status_code == 200
    assert db.query(MFATOTP).count() == 0
    assert db.query(MFABackupCode).count() == 0


@pytest.mark.asyncio
async def test_enable_with_wrong_code(
    async_client: AsyncClient,
    db: Session,
    user: User,
    headers: dict[str, str],
) -> None:
    setup = await async_client.post("/v1/auth/mfa/setup", headers=headers)
    totp = pyotp.TOTP(setup.json()["secret"])
    current = totp.timecode(utcnow())
    valid = {totp.generate_otp(current + offset) for offset in range(-2, 3)}
    wrong = next(f"{n:06d}" for n in range(1_000_000) if f"{n:06d}" not in valid)

    response = await async_client.post("/v1/auth/mfa/enable", headers=headers, json={"code": wrong})

    assert response.status_code == 400
    assert response.json()["code"] == "MFA_INVALID"
    assert db.get(MFATOTP, user.id).enabled is False


@pytest.mark.asyncio
async def test_enable_without_setup(async_client: AsyncClient, headers: dict[str, str]) -> None:
    response = await async_client.post(
        "/v1/auth/mfa/enable", headers=headers, json={"code": "123456"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "MFA_INVALID"


@pytest.mark.asyncio
async def test_setup_when_already_enabled(
    async_client: AsyncClient,
    db: Session,
    user: User,
    headers: dict[str, str],
) -> None:
    enable_mfa(db, user)

    response = await async_client.post("/v1/auth/mfa/setup", headers=headers)

    assert response.status_code == 400
    assert response.json()["code"] == "MFA_INVALID"


@pytest.mark.asyncio
async def test_regenerate_backup_codes_replaces_old_ones(
    async_client: AsyncClient,
    db: Session,
    user: User,
    headers: dict[str, str],
) -> None:
    secret, old_codes = enable_mfa(db, user)

    response = await async_client.post(
        "/v1/auth/mfa/backup-codes/regenerate",
        headers=headers,
        json={"code": _next_step_code(secret)},
    )

    assert response.status_code == 200
    new_codes = response.json()["backupCodes"]
    assert len(new_codes) == settings.MFA_BACKUP_CODES_COUNT
    assert db.query(MFABackupCode).filter(MFABackupCode.user_id == user.id).count() == len(new_codes)

    # Old codes no longer disable MFA
    rejected = await async_client.post(
        "/v1/auth/mfa/disable", headers=headers, json={"code": old_codes[0]}
    )
    assert rejected.status_code == 400
    assert db.get(MFATOTP, user.id) is not None


@pytest.mark.asyncio
async def test_disable_with_totp(
    async_client: AsyncClient,
    db: Session,
    user: User,
    headers: dict[str, str],
) -> None:
    secret, _codes = enable_mfa(db, user)

    response = await async_client.post(
        "/v1/auth/mfa/disable", headers=headers, json={"code": pyotp.TOTP(secret).now()}
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Two-factor authentication disabled"
    assert db.query(MFATOTP).count() == 0


@pytest.mark.asyncio
async def test_mfa_endpoints_require_session(async_client: AsyncClient) -> None:
    response = await async_client.get("/v1/auth/mfa/status")

    assert response.status_code == 401
