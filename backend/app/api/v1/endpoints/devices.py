"""Trusted device endpoints."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.app_exceptions import raise_app_error
from app.core.dependencies import CurrentSession
from app.core.device_identity import DEVICE_ID_HEADER, RequestDeviceIdentity, is_valid_device_id
from app.core.security_logging import get_client_ip, get_user_agent, log_security_event
from app.db.session import get_db
from app.models.device import TrustedDevice
from app.models.session import UserSession
from app.schemas.device import (
    DeviceListResponse,
    DeviceTrustStatusResponse,
    TrustDeviceRequest,
    TrustedDeviceResponse,
    UpdateDeviceRequest,
)
from app.services.device_trust import DeviceDescriptor, DeviceTrustRegistry
from app.services.mfa_verifier import is_mfa_enabled

router = APIRouter(tags=["Devices"])


def _current_device_id(request: Request, session: UserSession) -> str | None:
    header = request.headers.get(DEVICE_ID_HEADER, "").strip()
    if is_valid_device_id(header):
        return header
    return session.device_id


def _device_list(devices: list[TrustedDevice], current_device_id: str | None) -> DeviceListResponse:
    now = utcnow()
    return DeviceListResponse(
        devices=[
            TrustedDeviceResponse(
                device_id=d.device_id,
                device_name=d.device_name,
                device_type=d.device_type,
                is_trusted=d.is_trusted,
                trust_active=d.trust_active(now),
                trusted_at=d.trusted_at,
                trust_expires_at=d.trust_expires_at,
                last_ip=d.last_ip,
                last_seen_at=d.last_seen_at,
                is_current=d.device_id == current_device_id,
            )
            for d in devices
        ]
    )


def _not_found() -> None:
    raise_app_error(
        status_code=status.HTTP_404_NOT_FOUND,
        code="DEVICE_NOT_FOUND",
        message="Device not found",
    )


@router.get(
    "",
    response_model=DeviceListResponse,
    summary="List devices",
    description="Devices the user has trusted, including ones whose trust has expired.",
)
def list_devices(
    session: CurrentSession,
    request: Request,
    db: Session = Depends(get_db),
) -> DeviceListResponse:
    devices = DeviceTrustRegistry(db).list_devices(session.user_id)
    return _device_list(devices, _current_device_id(request, session))


@router.post(
    "/trust",
    response_model=DeviceListResponse,
    status_code=status.HTTP_200_OK,
    summary="Trust this device",
    description=(
        "Skip MFA on this device for the trust period. With MFA enabled, the "
        "current session must have passed an MFA check."
    ),
)
def trust_device(
    request_data: TrustDeviceRequest,
    session: CurrentSession,
    request: Request,
    db: Session = Depends(get_db),
) -> DeviceListResponse:
    if is_mfa_enabled(db, session.user_id) and not session.mfa_verified:
        raise_app_error(
            status_code=status.HTTP_403_FORBIDDEN,
            code="MFA_REQUIRED",
            message="Verify with your authenticator before trusting this device.",
        )

    identity = RequestDeviceIdentity(request)
    device_id = request_data.device_id or _current_device_id(request, session)
    if not device_id:
        device_id = identity.get_or_create_device_id()

    devices = DeviceTrustRegistry(db).trust(
        session.user_id,
        DeviceDescriptor(
            device_id=device_id,
            device_name=request_data.device_name,
            device_type=request_data.device_type or session.device_type,
            user_agent=get_user_agent(request),
            fingerprint=identity.current_fingerprint(),
        ),
        ip_address=get_client_ip(request),
    )
    log_security_event(
        request,
        event_type="device_trusted",
        outcome="allow",
        user_id=str(session.user_id),
        device_id=device_id,
    )
    return _device_list(devices, device_id)


@router.get(
    "/{device_id}/trust",
    response_model=DeviceTrustStatusResponse,
    summary="Check device trust",
)
def check_device_trust(
    device_id: str,
    session: CurrentSession,
    db: Session = Depends(get_db),
) -> DeviceTrustStatusResponse:
    trusted = DeviceTrustRegistry(db).is_trusted(session.user_id, device_id)
    return DeviceTrustStatusResponse(device_id=device_id, trusted=trusted)


@router.patch(
    "/{device_id}",
    response_model=DeviceListResponse,
    summary="Update device",
    description="Rename a device or suspend its trust. The trust expiry is not extended.",
)
def update_device(
    device_id: str,
    request_data: UpdateDeviceRequest,
    session: CurrentSession,
    request: Request,
    db: Session = Depends(get_db),
) -> DeviceListResponse:
    devices = DeviceTrustRegistry(db).update_trust(
        session.user_id,
        device_id,
        device_name=request_data.device_name,
        is_trusted=request_data.is_trusted,
    )
    if devices is None:
        _not_found()
    return _device_list(devices, _current_device_id(request, session))


@router.delete(
    "/{device_id}",
    response_model=DeviceListResponse,
    summary="Forget device",
    description="Remove the device's trust. The next login from it asks for MFA.",
)
def revoke_device(
    device_id: str,
    session: CurrentSession,
    request: Request,
    db: Session = Depends(get_db),
) -> DeviceListResponse:
    devices = DeviceTrustRegistry(db).revoke(session.user_id, device_id)
    log_security_event(
        request,
        event_type="device_trust_revoked",
        outcome="allow",
        user_id=str(session.user_id),
        device_id=device_id,
    )
    return _device_list(devices, _current_device_id(request, session))
