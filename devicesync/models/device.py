"""Device model."""

import json
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

CAPABILITY_FIELDS = (
    "has_camera",
    "has_ar",
    "has_vr",
    "has_gps",
    "has_accelerometer",
    "has_gyroscope",
    "has_touch_screen",
    "has_keyboard",
    "has_microphone",
    "has_speakers",
    "supports_offline",
    "max_storage_size",  # MB
)

METADATA_FIELDS = (
    "timezone",
    "locale",
    "screen_resolution",  # {"width": int, "height": int}
    "screen_density",
    "network_type",  # 'wifi' | 'cellular' | 'ethernet' | 'offline'
    "battery_level",
    "user_agent",
    "ip_address",
)

DEFAULT_CAPABILITIES = {
    "has_camera": False,
    "has_ar": False,
    "has_vr": False,
    "has_gps": False,
    "has_accelerometer": False,
    "has_gyroscope": False,
    "has_touch_screen": False,
    "has_keyboard": True,
    "has_microphone": False,
    "has_speakers": True,
    "supports_offline": True,
    "max_storage_size": 50,
}

DEFAULT_METADATA = {"timezone": "UTC", "locale": "en-US"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC. SQLite drops tzinfo, so naive values are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def merge_capabilities(current: dict, patch: dict) -> dict:
    """Field-level merge of a capability patch. Unknown keys and None are ignored."""
    merged = {name: current.get(name, DEFAULT_CAPABILITIES[name]) for name in CAPABILITY_FIELDS}
    for name in CAPABILITY_FIELDS:
        if patch.get(name) is not None:
            merged[name] = patch[name]
    return merged


def merge_metadata(current: dict, patch: dict) -> dict:
    """Field-level merge of a metadata patch. Unknown keys and None are ignored."""
    merged = {name: current[name] for name in METADATA_FIELDS if current.get(name) is not None}
    for name in METADATA_FIELDS:
        if patch.get(name) is not None:
            merged[name] = patch[name]
    return merged


class Device(SQLModel, table=True):
    __tablename__ = "devices"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    device_type: str  # 'web' | 'mobile' | 'ar' | 'vr'
    platform: str  # 'ios' | 'android' | 'windows' | 'macos' | 'linux' | 'web'
    device_name: str
    device_model: Optional[str] = None
    os_version: Optional[str] = None
    app_version: Optional[str] = None
    capabilities_json: str = Field(default_factory=lambda: json.dumps(DEFAULT_CAPABILITIES))
    metadata_json: str = Field(default_factory=lambda: json.dumps(DEFAULT_METADATA))
    is_active: bool = Field(default=True, index=True)
    last_sync_at: Optional[datetime] = None
    registered_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def capabilities(self) -> dict:
        return json.loads(self.capabilities_json)

    @property
    def device_metadata(self) -> dict:
        # ``metadata`` is reserved by SQLAlchemy's declarative base
        return json.loads(self.metadata_json)

    @property
    def last_seen_at(self) -> datetime:
        return as_utc(self.last_sync_at or self.registered_at)
