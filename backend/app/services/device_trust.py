"""Trusted devices: time-limited MFA exemptions per (user, device)."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.config import settings
from app.core.logging import get_logger
from app.models.device import TrustedDevice

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeviceDescriptor:
    """Client-supplied description of the device being trusted."""

    device_id: str
    device_name: str | None = None
    device_type: str | None = None
    user_agent: str | None = None
    fingerprint: str | None = None


class DeviceTrustRegistry:
    """
    One row per (user, device id).

    Trust holds while ``is_trusted`` is set and ``trust_expires_at`` is in
    the future; expiry is checked on read and expired rows stay in place.
    Mutations return the re-fetched device list.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get(self, user_id: UUID, device_id: str) -> TrustedDevice | None:
        return (
            self.db.query(TrustedDevice)
            .filter(TrustedDevice.user_id == user_id, TrustedDevice.device_id == device_id)
            .first()
        )

    def list_devices(self, user_id: UUID) -> list[TrustedDevice]:
        return (
            self.db.query(TrustedDevice)
            .filter(TrustedDevice.user_id == user_id)
            .order_by(TrustedDevice.created_at.desc())
            .all()
        )

    def trust(
        self, user_id: UUID, descriptor: DeviceDescriptor, ip_address: str | None = None
    ) -> list[TrustedDevice]:
        """Trust a device for ``DEVICE_TRUST_DAYS`` from now (upsert)."""
        try:
            self._upsert(user_id, descriptor, ip_address)
        except IntegrityError:
            # Concurrent first trust of the same device; the row exists now
            self.db.rollback()
            self._upsert(user_id, descriptor, ip_address)

        logger.info(
            "Device trusted",
            extra={"user_id": str(user_id), "device_id": descriptor.device_id},
        )
        return self.list_devices(user_id)

    def _upsert(self, user_id: UUID, descriptor: DeviceDescriptor, ip_address: str | None) -> None:
        now = utcnow()
        device = self._get(user_id, descriptor.device_id)
        if device is None:
            device = TrustedDevice(user_id=user_id, device_id=descriptor.device_id)
            self.db.add(device)

        device.device_name = descriptor.device_name or device.device_name
        device.device_type = descriptor.device_type or device.device_type
        device.user_agent = descriptor.user_agent or device.user_agent
        device.fingerprint_hash = descriptor.fingerprint or device.fingerprint_hash
        device.is_trusted = True
        device.trusted_at = now
        device.trust_expires_at = now + timedelta(days=settings.DEVICE_TRUST_DAYS)
        device.last_seen_at = now
        # Best effort: keep the previous address when none is known
        if ip_address:
            device.last_ip = ip_address
        self.db.commit()

    def revoke(self, user_id: UUID, device_id: str) -> list[TrustedDevice]:
        """Delete the trust row for the device, if any."""
        device = self._get(user_id, device_id)
        if device is not None:
            self.db.delete(device)
            self.db.commit()
            logger.info("Device trust revoked", extra={"user_id": str(user_id), "device_id": device_id})
        return self.list_devices(user_id)

    def is_trusted(self, user_id: UUID, device_id: str | None, now: datetime | None = None) -> bool:
        if not device_id:
            return False
        row = (
            self.db.query(TrustedDevice.id)
            .filter(
                TrustedDevice.user_id == user_id,
                TrustedDevice.device_id == device_id,
                TrustedDevice.is_trusted.is_(True),
                TrustedDevice.trust_expires_at > (now or utcnow()),
            )
            .first()
        )
        return row is not None

    def update_trust(
        self,
        user_id: UUID,
        device_id: str,
        device_name: str | None = None,
        is_trusted: bool | None = None,
    ) -> list[TrustedDevice] | None:
        """Rename a device or flip its trusted flag. Expiry is left unchanged.

        Returns:
            The device list, or None if the device is unknown
        """
        device = self._get(user_id, device_id)
        if device is None:
            return None
        if device_name is not None:
            device.device_name = device_name
        if is_trusted is not None:
            device.is_trusted = is_trusted
        self.db.commit()
        return self.list_devices(user_id)

    def touch(self, user_id: UUID, device_id: str, ip_address: str | None = None) -> None:
        device = self._get(user_id, device_id)
        if device is None:
            return
        device.last_seen_at = utcnow()
        if ip_address:
            device.last_ip = ip_address
        self.db.commit()
