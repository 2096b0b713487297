"""Tests for second-factor login (TOTP, backup codes, trusted devices)."""

from datetime import timedelta
from unittest.mock import patch
from uuid import UUID

import pyotp
import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from app.common.clock import as_utc, utcnow
from app.core.security import create_mfa_token
from app.models.audit import AuthAuditEvent
from app.models.device import TrustedDevice
from app.models.session import UserSession
from app.models.tenant import Tenant
from app.models.user import User
from tests.helpers.seed import DEFAULT_PASSWORD, create_test_user, enable_mfa

DEVICE_ID = "laptop-7f3a"


def _wrong_totp(secret: str) -> str:
    """A 6-digit code that matches no time step near now."""
    totp = pyotp.TOTP(secret)
    current = totp.timecode(utcnow())
    valid = {totp.generate_otp(current + offset) for offset in range(-3, 4)}
    candidate = 0
    while f"{candidate:06d}" in valid:
        candidate += 1
    return f"{candidate:06d}"


def _mfa_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_mfa_token(str(user.id))}"}


@pytest.fixture
def mfa_user(db: Session, tenant: Tenant) -> tuple[User, str, list[str]]:
    user = create_test_user(db, tenant, email="mfa.user@example.com")
    secret, codes = enable_mfa(db, user)
    return user, secret, codes


async def _login(async_client: AsyncClient, device_id: str = DEVICE_ID):
    return await async_client.post(
        "/v1/auth/login",
        json={"email": "mfa.user@example.com", "password": DEFAULT_PASSWORD},
        headers={"X-Device-Id": device_id},
    )


@pytest.mark.asyncio
async def test_login_with_mfa_returns_challenge(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    """Password login for an MFA user returns a pending token, not a session."""
    user, _secret, _codes = mfa_user

    response = await _login(async_client)

    assert response.status_code == 200
    data = response.json()
    assert data["mfaRequired"] is True
    assert data["method"] == "totp"
    assert data["mfaToken"]
    assert data["userId"] == str(user.id)
    assert "tokens" not in data
    assert db.query(UserSession).count() == 0


@pytest.mark.asyncio
async def test_verify_totp_and_trust_device(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    """A valid TOTP code with trustDevice opens an MFA-verified session and trusts the device for 90 days."""
    user, secret, _codes = mfa_user
    challenge = (await _login(async_client)).json()

    response = await async_client.post(
        "/v1/verify-mfa-login",
        headers={"Authorization": f"Bearer {challenge['mfaToken']}"},
        json={
            "action": "verify",
            "userId": str(user.id),
            "code": pyotp.TOTP(secret).now(),
            "trustDevice": True,
            "deviceInfo": {
                "deviceId": DEVICE_ID,
                "deviceName": "Work laptop",
                "deviceType": "desktop",
            },
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["tokens"]["accessToken"]
    assert "remainingCodes" not in data

    device = db.query(TrustedDevice).filter(TrustedDevice.user_id == user.id).one()
    assert device.device_id == DEVICE_ID
    assert device.device_name == "Work laptop"
    assert device.is_trusted is True
    expected_expiry = utcnow() + timedelta(days=90)
    assert abs(as_utc(device.trust_expires_at) - expected_expiry) < timedelta(minutes=1)

    session = db.get(UserSession, UUID(data["sessionId"]))
    assert session.mfa_verified is True
    assert session.device_id == DEVICE_ID

    # The trusted device skips the second factor next time
    again = await _login(async_client)
    assert again.status_code == 200
    assert again.json()["mfaRequired"] is False
    assert again.json()["tokens"]["accessToken"]

    # Other devices still get a challenge
    elsewhere = await _login(async_client, device_id="phone-0001")
    assert elsewhere.json()["mfaRequired"] is True


@pytest.mark.asyncio
async def test_verify_totp_without_trust_creates_no_device(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    user, secret, _codes = mfa_user

    response = await async_client.post(
        "/v1/verify-mfa-login",
        headers=_mfa_headers(user),
        json={"action": "verify", "userId": str(user.id), "code": pyotp.TOTP(secret).now()},
    )

    assert response.status_code == 200
    assert db.query(TrustedDevice).count() == 0


@pytest.mark.asyncio
async def test_totp_code_cannot_be_replayed(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    user, secret, _codes = mfa_user
    code = pyotp.TOTP(secret).now()
    body = {"action": "verify", "userId": str(user.id), "code": code}

    first = await async_client.post("/v1/verify-mfa-login", headers=_mfa_headers(user), json=body)
    second = await async_client.post("/v1/verify-mfa-login", headers=_mfa_headers(user), json=body)

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["success"] is False


@pytest.mark.asyncio
async def test_wrong_totp_code_is_rejected_and_audited(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    """A wrong code returns {success: false, error} and writes an audit row."""
    user, secret, _codes = mfa_user

    response = await async_client.post(
        "/v1/verify-mfa-login",
        headers=_mfa_headers(user),
        json={"action": "verify", "userId": str(user.id), "code": _wrong_totp(secret)},
    )

    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["error"]
    assert "tokens" not in data
    assert db.query(UserSession).count() == 0

    event = db.query(AuthAuditEvent).filter(AuthAuditEvent.event_type == "mfa_verify_failed").one()
    assert event.user_id == user.id
    assert event.reason_code == "INVALID_TOTP"
    assert event.meta["method"] == "totp"


@pytest.mark.asyncio
async def test_backup_code_login_reports_remaining_codes(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    """A backup code (any case) signs in once and reports how many are left."""
    user, _secret, codes = mfa_user
    body = {"action": "verify_backup", "userId": str(user.id), "code": codes[0].lower()}

    response = await async_client.post(
        "/v1/verify-mfa-login", headers=_mfa_headers(user), json=body
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["remainingCodes"] == len(codes) - 1
    assert data["tokens"]["accessToken"]

    reused = await async_client.post(
        "/v1/verify-mfa-login", headers=_mfa_headers(user), json=body
    )
    assert reused.status_code == 400
    assert reused.json()["success"] is False

    event = db.query(AuthAuditEvent).filter(AuthAuditEvent.event_type == "mfa_verify_failed").one()
    assert event.reason_code == "INVALID_BACKUP_CODE"


@pytest.mark.asyncio
async def test_backup_code_without_separator_is_accepted(
    async_client: AsyncClient,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    user, _secret, codes = mfa_user

    response = await async_client.post(
        "/v1/verify-mfa-login",
        headers=_mfa_headers(user),
        json={"action": "verify_backup", "userId": str(user.id), "code": codes[1].replace("-", "")},
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_mfa_token_must_match_user(
    async_client: AsyncClient,
    db: Session,
    tenant: Tenant,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    user, secret, _codes = mfa_user
    other = create_test_user(db, tenant, email="other@example.com")

    response = await async_client.post(
        "/v1/verify-mfa-login",
        headers=_mfa_headers(other),
        json={"action": "verify", "userId": str(user.id), "code": pyotp.TOTP(secret).now()},
    )

    assert response.status_code == 401
    assert response.json()["code"] == "MFA_TOKEN_INVALID"


@pytest.mark.asyncio
async def test_verify_mfa_requires_pending_token(
    async_client: AsyncClient,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    user, secret, _codes = mfa_user
    body = {"action": "verify", "userId": str(user.id), "code": pyotp.TOTP(secret).now()}

    missing = await async_client.post("/v1/verify-mfa-login", json=body)
    garbage = await async_client.post(
        "/v1/verify-mfa-login", headers={"Authorization": "Bearer not-a-jwt"}, json=body
    )

    assert missing.status_code == 401
    assert garbage.status_code == 401
    assert garbage.json()["code"] == "MFA_TOKEN_INVALID"


@pytest.mark.asyncio
async def test_locked_user_gets_429(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    """While the failure lock is set, even a correct code is refused."""
    user, secret, _codes = mfa_user

    with patch("app.services.mfa_verifier.mfa_lock_remaining", return_value=600):
        response = await async_client.post(
            "/v1/verify-mfa-login",
            headers=_mfa_headers(user),
            json={"action": "verify", "userId": str(user.id), "code": pyotp.TOTP(secret).now()},
        )

    assert response.status_code == 429
    assert response.json()["code"] == "MFA_LOCKED"
    assert db.query(UserSession).count() == 0
    assert db.query(AuthAuditEvent).filter(AuthAuditEvent.event_type == "mfa_verify_locked").count() == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, message",
    [
        ({"action": "verify", "code": "12345"}, "Please enter the complete 6-digit code."),
        ({"action": "verify", "code": "12a456"}, "Please enter the complete 6-digit code."),
        ({"action": "verify_backup", "code": "   "}, "Please enter a code."),
        (
            {"action": "verify", "code": "123456", "trustDevice": True},
            "Device details are required to trust this device.",
        ),
    ],
)
async def test_incomplete_mfa_input_is_rejected_before_lookup(
    async_client: AsyncClient,
    db: Session,
    mfa_user: tuple[User, str, list[str]],
    body: dict,
    message: str,
) -> None:
    """Local input errors use the dialog's own failure shape and count as no attempt."""
    user, _secret, _codes = mfa_user

    with patch("app.api.v1.endpoints.mfa.MFAVerifier") as verifier_cls:
        response = await async_client.post(
            "/v1/verify-mfa-login",
            headers=_mfa_headers(user),
            json={"userId": str(user.id), **body},
        )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": message}
    verifier_cls.assert_not_called()
    assert db.query(AuthAuditEvent).count() == 0


@pytest.mark.asyncio
async def test_verify_mfa_unknown_action(
    async_client: AsyncClient,
    mfa_user: tuple[User, str, list[str]],
) -> None:
    user, _secret, _codes = mfa_user

    response = await async_client.post(
        "/v1/verify-mfa-login",
        headers=_mfa_headers(user),
        json={"userId": str(user.id), "action": "disable", "code": "123456"},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_login_without_mfa_signs_in_directly(
    async_client: AsyncClient,
    db: Session,
    tenant: Tenant,
) -> None:
    create_test_user(db, tenant, email="plain@example.com")

    response = await async_client.post(
        "/v1/auth/login",
        json={"email": "plain@example.com", "password": DEFAULT_PASSWORD},
        headers={"X-Device-Id": DEVICE_ID},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["tokens"]["accessToken"]
    assert data["sessionId"]
    session = db.query(UserSession).one()
    assert session.device_id == DEVICE_ID
    assert session.mfa_verified is False
