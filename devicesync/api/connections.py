"""Real-time connection introspection and device status push."""

import asyncio

from fastapi import APIRouter, Depends

from devicesync.api.deps import get_current_user_id, get_device_service, get_registry
from devicesync.schemas.device import (
    ConnectedDevicesResponse,
    ConnectionStatsResponse,
    DeviceConnectionResponse,
    DeviceStatusNotifyRequest,
    Envelope,
)
from devicesync.services.device_service import DeviceService
from devicesync.ws.registry import ConnectionRegistry

router = APIRouter(prefix="/ws", tags=["connections"])


@router.get("/stats", response_model=Envelope[ConnectionStatsResponse])
def connection_stats(
    user_id: str = Depends(get_current_user_id),
    registry: ConnectionRegistry = Depends(get_registry),
):
    return Envelope(data=ConnectionStatsResponse(**registry.get_connection_stats()))


@router.get("/user/devices", response_model=Envelope[ConnectedDevicesResponse])
def connected_devices(
    user_id: str = Depends(get_current_user_id),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Devices of the current user with an open connection."""
    return Envelope(
        data=ConnectedDevicesResponse(
            user_id=user_id,
            connected_devices=registry.get_user_connected_devices(user_id),
        )
    )


@router.get("/devices/{device_id}/connection", response_model=Envelope[DeviceConnectionResponse])
def device_connection(
    device_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
    registry: ConnectionRegistry = Depends(get_registry),
):
    service.get_owned_device(device_id, user_id)
    return Envelope(
        data=DeviceConnectionResponse(
            device_id=device_id,
            is_connected=registry.is_device_connected(device_id),
        )
    )


@router.post("/devices/{device_id}/notify", response_model=Envelope[DeviceConnectionResponse])
async def notify_device(
    device_id: str,
    body: DeviceStatusNotifyRequest,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Push a ``device_status`` frame to one device, if it is connected."""
    await asyncio.to_thread(service.get_owned_device, device_id, user_id)
    delivered = await registry.notify_device_status(device_id, body.status)
    return Envelope(
        data=DeviceConnectionResponse(device_id=device_id, is_connected=delivered),
        message="Notification sent" if delivered else "Device not connected",
    )
