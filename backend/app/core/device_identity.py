"""Device identity: device ids, fingerprints and user-agent classification.

The browser generates a random device id once and keeps it in local storage;
it reaches the API in the ``X-Device-Id`` header (or in the request body for
MFA verification). The fingerprint is a secondary signal derived from client
hints and is never used as a key.
"""

import hashlib
import re
import uuid
from dataclasses import dataclass
from typing import Protocol

from fastapi import Request

from app.core.security_logging import get_user_agent

DEVICE_ID_HEADER = "X-Device-Id"
MAX_DEVICE_ID_LENGTH = 128

_DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


@dataclass(frozen=True)
class FingerprintInputs:
    """Client signals hashed into the device fingerprint."""

    user_agent: str = ""
    language: str = ""
    color_depth: int | str = ""
    screen_width: int | str = ""
    screen_height: int | str = ""
    timezone_offset: int | str = ""
    hardware_concurrency: int | str = ""
    platform: str = ""


def compute_fingerprint(inputs: FingerprintInputs) -> str:
    """SHA-256 over the concatenated client signals, hex encoded."""
    raw = "|".join(
        str(part)
        for part in (
            inputs.user_agent,
            inputs.language,
            inputs.color_depth,
            f"{inputs.screen_width}x{inputs.screen_height}",
            inputs.timezone_offset,
            inputs.hardware_concurrency,
            inputs.platform,
        )
    )
    return hashlib.sha256(raw.encode()).hexdigest()


def is_valid_device_id(device_id: str | None) -> bool:
    return bool(device_id) and _DEVICE_ID_RE.match(device_id) is not None


@dataclass(frozen=True)
class UserAgentInfo:
    browser: str
    os: str
    device_type: str


def classify_user_agent(user_agent: str | None) -> UserAgentInfo:
    """Best-effort browser / OS / device type from a user-agent string."""
    ua = user_agent or ""

    if "Edg/" in ua:
        browser = "Edge"
    elif "OPR/" in ua or "Opera" in ua:
        browser = "Opera"
    elif "Firefox/" in ua:
        browser = "Firefox"
    elif "Chrome/" in ua or "CriOS/" in ua:
        browser = "Chrome"
    elif "Safari/" in ua:
        browser = "Safari"
    else:
        browser = "Unknown"

    if "Windows" in ua:
        os_name = "Windows"
    elif "iPhone" in ua or "iPad" in ua:
        os_name = "iOS"
    elif "Android" in ua:
        os_name = "Android"
    elif "Mac OS X" in ua or "Macintosh" in ua:
        os_name = "macOS"
    elif "Linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Unknown"

    if "iPad" in ua or "Tablet" in ua:
        device_type = "tablet"
    elif "Mobi" in ua or "iPhone" in ua or "Android" in ua:
        device_type = "mobile"
    elif ua:
        device_type = "desktop"
    else:
        device_type = "unknown"

    return UserAgentInfo(browser=browser, os=os_name, device_type=device_type)


class DeviceIdentityProvider(Protocol):
    """Source of the caller's device id and fingerprint."""

    def get_or_create_device_id(self) -> str: ...

    def current_fingerprint(self) -> str | None: ...


class RequestDeviceIdentity:
    """Device identity read from request headers.

    A missing or malformed ``X-Device-Id`` gets a fresh id, which the caller
    should hand back to the client.
    """

    def __init__(self, request: Request):
        self._request = request
        self._device_id: str | None = None

    def get_or_create_device_id(self) -> str:
        if self._device_id is None:
            candidate = self._request.headers.get(DEVICE_ID_HEADER, "").strip()
            self._device_id = candidate if is_valid_device_id(candidate) else str(uuid.uuid4())
        return self._device_id

    def current_fingerprint(self) -> str | None:
        headers = self._request.headers
        user_agent = get_user_agent(self._request)
        if not user_agent:
            return None
        width, _, height = headers.get("X-Screen", "").partition("x")
        return compute_fingerprint(
            FingerprintInputs(
                user_agent=user_agent,
                language=headers.get("Accept-Language", "").split(",")[0],
                color_depth=headers.get("X-Color-Depth", ""),
                screen_width=width,
                screen_height=height,
                timezone_offset=headers.get("X-Timezone-Offset", ""),
                hardware_concurrency=headers.get("X-Hardware-Concurrency", ""),
                platform=headers.get("Sec-CH-UA-Platform", "").strip('"'),
            )
        )


class StaticDeviceIdentity:
    """Fixed device identity (tests, server-side callers)."""

    def __init__(self, device_id: str, fingerprint: str | None = None):
        self._device_id = device_id
        self._fingerprint = fingerprint

    def get_or_create_device_id(self) -> str:
        return self._device_id

    def current_fingerprint(self) -> str | None:
        return self._fingerprint
