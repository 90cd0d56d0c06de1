"""Common API dependencies: user/device extraction, service construction."""

from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from devicesync.config import settings
from devicesync.database import get_session
from devicesync.models.device import Device
from devicesync.services.device_service import DeviceService
from devicesync.services.offline_service import OfflineQueue
from devicesync.services.sync_service import SyncEngine
from devicesync.services.token_service import DeviceTokenService
from devicesync.utils.errors import Unauthorized
from devicesync.utils.security import decode_token
from devicesync.ws.registry import ConnectionRegistry

bearer_scheme = HTTPBearer(auto_error=False)


def get_token_service() -> DeviceTokenService:
    return DeviceTokenService(
        settings.device_token_secret,
        settings.device_token_ttl,
        settings.jwt_algorithm,
    )


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def _credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No token provided")
    return credentials.credentials


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Extract and validate the user from an identity-provider access token."""
    try:
        payload = decode_token(_credentials(credentials))
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired token")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise Unauthorized("Invalid token type")
    return payload["sub"]


def get_device_service(
    session: Session = Depends(get_session),
    tokens: DeviceTokenService = Depends(get_token_service),
) -> DeviceService:
    return DeviceService(session, tokens, settings.max_devices_per_user)


def get_current_device(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: DeviceService = Depends(get_device_service),
) -> Device:
    """Extract and validate the calling device from a device token."""
    return service.authenticate(_credentials(credentials))


def get_sync_engine(
    session: Session = Depends(get_session),
    registry: ConnectionRegistry = Depends(get_registry),
) -> SyncEngine:
    return SyncEngine(
        session,
        notifier=registry,
        max_retries=settings.sync_max_retries,
        retry_delay=settings.sync_retry_delay_seconds,
    )


def get_offline_queue(
    session: Session = Depends(get_session),
    engine: SyncEngine = Depends(get_sync_engine),
) -> OfflineQueue:
    return OfflineQueue(session, engine)
