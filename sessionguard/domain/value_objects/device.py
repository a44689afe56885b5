"""Canonical device descriptor value object.

Clients describe the device they log in from in several shapes (flat or
nested under ``deviceInfo``, with or without screen size). The descriptor is
built and validated once at the system boundary; everything deeper in the
call chain receives this single type.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Optional

UNKNOWN = "unknown"


@dataclass(frozen=True)
class DeviceDescriptor:
    """Describes the device a session was opened from.

    Attributes:
        type: Device class such as ``desktop``, ``mobile`` or ``tablet``.
        browser: Browser name.
        os: Operating system name.
        name: Optional user-facing label; defaults to ``"{browser} on {os}"``.
        ip: Optional client address at login time.
        screen: Optional screen size, informational only.
    """

    type: str = UNKNOWN
    browser: str = UNKNOWN
    os: str = UNKNOWN
    name: Optional[str] = None
    ip: Optional[str] = None
    screen: Optional[str] = field(default=None, compare=False)

    MAX_LENGTHS: ClassVar[dict] = {"type": 50, "browser": 100, "os": 100, "name": 255, "ip": 45, "screen": 32}

    def __post_init__(self):
        """Normalize whitespace, default blanks and enforce length limits."""
        for attr, limit in self.MAX_LENGTHS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValueError(f"Device {attr} must be a string")
            value = value.strip()
            if len(value) > limit:
                raise ValueError(f"Device {attr} must be at most {limit} characters")
            if not value:
                value = UNKNOWN if attr in ("type", "browser", "os") else None
            object.__setattr__(self, attr, value)

    @property
    def friendly_name(self) -> str:
        """Label shown in session listings."""
        if self.name:
            return self.name
        return f"{self.browser} on {self.os}"

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]], ip: Optional[str] = None) -> "DeviceDescriptor":
        """Build a descriptor from any of the payload shapes clients send.

        Args:
            data: Flat mapping, or a mapping with the fields nested under
                ``deviceInfo``/``device_info``. ``None`` yields an unknown device.
            ip: Client address observed by the transport; overrides a
                client-supplied ``ip``.

        Returns:
            DeviceDescriptor: The validated descriptor.

        Raises:
            ValueError: If a field has the wrong type or is too long.
        """
        data = dict(data or {})
        nested = data.get("deviceInfo") or data.get("device_info")
        if isinstance(nested, Mapping):
            data = {**data, **nested}

        screen = data.get("screen") or data.get("screenSize") or data.get("screen_size")
        if isinstance(screen, Mapping):
            screen = f"{screen.get('width', '?')}x{screen.get('height', '?')}"

        return cls(
            type=data.get("type") or data.get("deviceType") or data.get("device_type") or UNKNOWN,
            browser=data.get("browser") or UNKNOWN,
            os=data.get("os") or UNKNOWN,
            name=data.get("name") or data.get("deviceName") or data.get("device_name") or data.get("friendlyName"),
            ip=ip or data.get("ip"),
            screen=str(screen) if screen else None,
        )
