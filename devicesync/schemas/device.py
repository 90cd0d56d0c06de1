"""Device schemas."""

from datetime import datetime
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from devicesync.models.device import Device, as_utc
from devicesync.services.token_service import DeviceAuthToken

T = TypeVar("T")

DeviceType = Literal["web", "mobile", "ar", "vr"]
Platform = Literal["ios", "android", "windows", "macos", "linux", "web"]
NetworkType = Literal["wifi", "cellular", "ethernet", "offline"]


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class DeviceCapabilities(BaseModel):
    has_camera: bool
    has_ar: bool
    has_vr: bool
    has_gps: bool
    has_accelerometer: bool
    has_gyroscope: bool
    has_touch_screen: bool
    has_keyboard: bool
    has_microphone: bool
    has_speakers: bool
    supports_offline: bool
    max_storage_size: int = Field(ge=0)  # MB


class CapabilitiesPatch(BaseModel):
    has_camera: Optional[bool] = None
    has_ar: Optional[bool] = None
    has_vr: Optional[bool] = None
    has_gps: Optional[bool] = None
    has_accelerometer: Optional[bool] = None
    has_gyroscope: Optional[bool] = None
    has_touch_screen: Optional[bool] = None
    has_keyboard: Optional[bool] = None
    has_microphone: Optional[bool] = None
    has_speakers: Optional[bool] = None
    supports_offline: Optional[bool] = None
    max_storage_size: Optional[int] = Field(default=None, ge=0)


class ScreenResolution(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)


class DeviceMetadata(BaseModel):
    timezone: Optional[str] = None
    locale: Optional[str] = None
    screen_resolution: Optional[ScreenResolution] = None
    screen_density: Optional[float] = Field(default=None, gt=0)
    network_type: Optional[NetworkType] = None
    battery_level: Optional[float] = Field(default=None, ge=0, le=100)
    user_agent: Optional[str] = None


class DeviceRegisterRequest(BaseModel):
    device_type: DeviceType
    platform: Platform
    device_name: str = Field(min_length=1, max_length=100)
    device_model: Optional[str] = Field(default=None, max_length=100)
    os_version: Optional[str] = Field(default=None, max_length=50)
    app_version: Optional[str] = None
    capabilities: DeviceCapabilities
    metadata: DeviceMetadata = Field(default_factory=DeviceMetadata)


class DeviceUpdateRequest(BaseModel):
    device_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    app_version: Optional[str] = None
    os_version: Optional[str] = Field(default=None, max_length=50)
    capabilities: Optional[CapabilitiesPatch] = None
    metadata: Optional[DeviceMetadata] = None
    is_active: Optional[bool] = None


class DeviceResponse(BaseModel):
    id: str
    user_id: str
    device_type: str
    platform: str
    device_name: str
    device_model: Optional[str]
    os_version: Optional[str]
    app_version: Optional[str]
    capabilities: dict
    metadata: dict
    is_active: bool
    last_sync_at: Optional[datetime]
    registered_at: datetime
    updated_at: datetime

    @classmethod
    def from_device(cls, d: Device) -> "DeviceResponse":
        return cls(
            id=d.id,
            user_id=d.user_id,
            device_type=d.device_type,
            platform=d.platform,
            device_name=d.device_name,
            device_model=d.device_model,
            os_version=d.os_version,
            app_version=d.app_version,
            capabilities=d.capabilities,
            metadata=d.device_metadata,
            is_active=d.is_active,
            last_sync_at=as_utc(d.last_sync_at),
            registered_at=as_utc(d.registered_at),
            updated_at=as_utc(d.updated_at),
        )


class DeviceTokenResponse(BaseModel):
    device_id: str
    user_id: str
    token: str
    token_id: str
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def from_token(cls, t: DeviceAuthToken) -> "DeviceTokenResponse":
        return cls(
            device_id=t.device_id,
            user_id=t.user_id,
            token=t.token,
            token_id=t.token_id,
            issued_at=t.issued_at,
            expires_at=t.expires_at,
        )


class DeviceRegisterResponse(BaseModel):
    device: DeviceResponse
    auth_token: DeviceTokenResponse
    warnings: list[str] = []


class DeviceConnectionResponse(BaseModel):
    device_id: str
    is_connected: bool


class ConnectedDevicesResponse(BaseModel):
    user_id: str
    connected_devices: list[str]


class ConnectionStatsResponse(BaseModel):
    total_connections: int
    active_users: int
    connected_devices: int
    by_device_type: dict[str, int]


class DeviceStatusNotifyRequest(BaseModel):
    status: dict
