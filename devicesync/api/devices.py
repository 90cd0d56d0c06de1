"""Device management API endpoints."""

import asyncio

from fastapi import APIRouter, Depends, Request, status

from devicesync.api.deps import (
    bearer_scheme,
    get_current_device,
    get_current_user_id,
    get_device_service,
    get_registry,
)
from devicesync.models.device import Device
from devicesync.schemas.device import (
    DeviceRegisterRequest,
    DeviceRegisterResponse,
    DeviceResponse,
    DeviceTokenResponse,
    DeviceUpdateRequest,
    Envelope,
)
from devicesync.services.device_service import DeviceService
from devicesync.ws.registry import ConnectionRegistry

router = APIRouter(prefix="/devices", tags=["devices"])


@router.post(
    "/register",
    response_model=Envelope[DeviceRegisterResponse],
    status_code=status.HTTP_201_CREATED,
)
def register_device(
    body: DeviceRegisterRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
):
    """Register a device for the current user and issue its device token."""
    ip_address = request.client.host if request.client else None
    device, auth_token, validation = service.register(user_id, body.model_dump(), ip_address)
    return Envelope(
        data=DeviceRegisterResponse(
            device=DeviceResponse.from_device(device),
            auth_token=DeviceTokenResponse.from_token(auth_token),
            warnings=validation.warnings,
        ),
        message="Device registered successfully",
    )


@router.get("/user", response_model=Envelope[list[DeviceResponse]])
def list_user_devices(
    active: bool = False,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
):
    """List the current user's devices (``?active=true`` for active only)."""
    devices = service.list_devices(user_id, active_only=active)
    return Envelope(data=[DeviceResponse.from_device(d) for d in devices])


@router.post("/token/refresh", response_model=Envelope[DeviceTokenResponse])
def refresh_device_token(
    device: Device = Depends(get_current_device),
    credentials=Depends(bearer_scheme),
    service: DeviceService = Depends(get_device_service),
):
    """Issue a new token for the calling device. The old token stays valid."""
    new_token = service.refresh_token(credentials.credentials)
    return Envelope(
        data=DeviceTokenResponse.from_token(new_token),
        message="Token refreshed successfully",
    )


@router.get("/{device_id}", response_model=Envelope[DeviceResponse])
def get_device(
    device_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
):
    device = service.get_owned_device(device_id, user_id)
    return Envelope(data=DeviceResponse.from_device(device))


@router.put("/{device_id}", response_model=Envelope[DeviceResponse])
def update_device(
    device_id: str,
    body: DeviceUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
):
    """Partially update a device; capabilities and metadata are merged."""
    service.get_owned_device(device_id, user_id)
    device = service.update(device_id, body.model_dump(exclude_none=True))
    return Envelope(data=DeviceResponse.from_device(device), message="Device updated successfully")


@router.post("/{device_id}/activate", response_model=Envelope[DeviceResponse])
async def activate_device(
    device_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
    registry: ConnectionRegistry = Depends(get_registry),
):
    await asyncio.to_thread(service.get_owned_device, device_id, user_id)
    device = await asyncio.to_thread(service.activate, device_id)
    await registry.notify_device_status(device_id, {"status": "activated"})
    return Envelope(data=DeviceResponse.from_device(device), message="Device activated successfully")


@router.post("/{device_id}/deactivate", response_model=Envelope[DeviceResponse])
async def deactivate_device(
    device_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
    registry: ConnectionRegistry = Depends(get_registry),
):
    await asyncio.to_thread(service.get_owned_device, device_id, user_id)
    device = await asyncio.to_thread(service.deactivate, device_id)
    await registry.notify_device_status(device_id, {"status": "deactivated"})
    return Envelope(data=DeviceResponse.from_device(device), message="Device deactivated successfully")


@router.delete("/{device_id}", response_model=Envelope[None])
def delete_device(
    device_id: str,
    user_id: str = Depends(get_current_user_id),
    service: DeviceService = Depends(get_device_service),
):
    """Permanently delete a device (deactivate for a soft delete)."""
    service.get_owned_device(device_id, user_id)
    service.delete(device_id)
    return Envelope(message="Device deleted successfully")
