"""Trusted device schemas."""

from datetime import datetime

from pydantic import Field

from app.schemas.common import CamelModel


class TrustedDeviceResponse(CamelModel):
    device_id: str
    device_name: str | None = None
    device_type: str | None = None
    is_trusted: bool
    trust_active: bool
    trusted_at: datetime | None = None
    trust_expires_at: datetime | None = None
    last_ip: str | None = None
    last_seen_at: datetime | None = None
    is_current: bool = False


class DeviceListResponse(CamelModel):
    devices: list[TrustedDeviceResponse]


class TrustDeviceRequest(CamelModel):
    """Trust the calling device (id from ``X-Device-Id`` when omitted)."""

    device_id: str | None = Field(default=None, max_length=128, pattern=r"^[A-Za-z0-9._:-]+$")
    device_name: str | None = Field(default=None, max_length=255)
    device_type: str | None = Field(default=None, max_length=32)


class UpdateDeviceRequest(CamelModel):
    device_name: str | None = Field(default=None, max_length=255)
    is_trusted: bool | None = None


class DeviceTrustStatusResponse(CamelModel):
    device_id: str
    trusted: bool
