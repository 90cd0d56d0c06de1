"""DeviceSync Database Models."""

from devicesync.models.device import Device
from devicesync.models.sync import OfflineOperation, SyncRecord

__all__ = [
    "Device",
    "SyncRecord",
    "OfflineOperation",
]
