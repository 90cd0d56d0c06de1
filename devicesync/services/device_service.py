"""Device registration, lifecycle and authentication business logic."""

import logging
from typing import Any, Optional

from sqlmodel import Session

from devicesync.models.device import Device, merge_capabilities
from devicesync.services.device_store import DeviceStore
from devicesync.services.device_validation import (
    ValidationResult,
    learning_feature_support,
    validate_capabilities,
    validate_device,
)
from devicesync.services.token_service import DeviceAuthToken, DeviceTokenService
from devicesync.utils.errors import (
    AppError,
    DeviceLimitExceeded,
    Forbidden,
    InvalidToken,
    NotFound,
    Unauthorized,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


class DeviceService:
    def __init__(
        self,
        session: Session,
        tokens: DeviceTokenService,
        max_devices_per_user: int = 10,
        log: Optional[logging.Logger] = None,
    ):
        self.store = DeviceStore(session)
        self.tokens = tokens
        self.max_devices_per_user = max_devices_per_user
        self.logger = log or logger

    def register(
        self,
        user_id: str,
        spec: dict[str, Any],
        ip_address: Optional[str] = None,
    ) -> tuple[Device, DeviceAuthToken, ValidationResult]:
        """Register a device for ``user_id`` and issue its first token."""
        self.logger.info("Registering %s device for user %s", spec.get("device_type"), user_id)

        active = self.store.list_by_user(user_id, active_only=True)
        if len(active) >= self.max_devices_per_user:
            raise DeviceLimitExceeded(
                f"Maximum number of devices ({self.max_devices_per_user}) reached for user"
            )

        capabilities = merge_capabilities({}, spec.get("capabilities") or {})
        validation = validate_device(
            spec["device_type"], spec["platform"], capabilities, spec.get("metadata") or {}
        )
        self._check(validation, spec["device_type"], spec["platform"])
        self.logger.info(
            "Device learning feature support: %s", learning_feature_support(capabilities)
        )

        device = self.store.create(user_id, spec, ip_address)
        auth_token = self.tokens.issue(device.id, user_id)

        self.logger.info("Device %s registered for user %s", device.id, user_id)
        return device, auth_token, validation

    def get_device(self, device_id: str) -> Device:
        device = self.store.get(device_id)
        if not device:
            raise NotFound("Device not found")
        return device

    def get_owned_device(self, device_id: str, user_id: str) -> Device:
        device = self.get_device(device_id)
        if device.user_id != user_id:
            raise Forbidden("Device belongs to another user")
        return device

    def list_devices(self, user_id: str, active_only: bool = False) -> list[Device]:
        return self.store.list_by_user(user_id, active_only=active_only)

    def update(self, device_id: str, patch: dict[str, Any]) -> Device:
        """Partial update; a capability patch is validated after merging."""
        if patch.get("capabilities") is not None:
            device = self.get_device(device_id)
            merged = merge_capabilities(device.capabilities, patch["capabilities"])
            self._check(
                validate_capabilities(device.device_type, device.platform, merged),
                device.device_type,
                device.platform,
            )

        device = self.store.update(device_id, patch)
        self.logger.info("Device %s updated", device_id)
        return device

    def activate(self, device_id: str) -> Device:
        device = self.store.set_active(device_id, True)
        self.logger.info("Device %s activated", device_id)
        return device

    def deactivate(self, device_id: str) -> Device:
        device = self.store.set_active(device_id, False)
        self.logger.info("Device %s deactivated", device_id)
        return device

    def delete(self, device_id: str) -> None:
        self.store.delete(device_id)
        self.logger.info("Device %s deleted", device_id)

    def authenticate(self, token: str) -> Device:
        """Resolve a device token to an active device."""
        claims = self.tokens.verify(token)
        device = self.store.get(claims.device_id)
        if not device:
            raise Unauthorized("Device not found")
        if device.user_id != claims.user_id:
            raise InvalidToken("Token does not match device owner")
        if not device.is_active:
            raise Unauthorized("Device is not active")
        return device

    def refresh_token(self, old_token: str) -> DeviceAuthToken:
        claims = self.tokens.verify(old_token)
        device = self.get_device(claims.device_id)
        new_token = self.tokens.issue(device.id, claims.user_id)
        self.logger.info("Device token refreshed for %s", device.id)
        return new_token

    def cleanup_inactive(self, older_than_days: int = 30) -> int:
        """Deactivate devices unseen for ``older_than_days``. Returns the count."""
        stale = [d for d in self.store.find_inactive(older_than_days) if d.is_active]
        deactivated = 0
        for device in stale:
            try:
                self.store.set_active(device.id, False)
                deactivated += 1
            except AppError as e:
                self.logger.error("Failed to deactivate inactive device %s: %s", device.id, e)
        self.logger.info(
            "Inactive device cleanup: found %d, deactivated %d", len(stale), deactivated
        )
        return deactivated

    def _check(self, validation: ValidationResult, device_type: str, platform: str) -> None:
        if not validation.is_valid:
            raise ValidationFailed("; ".join(validation.errors), details=validation.to_dict())
        if validation.warnings:
            self.logger.warning(
                "Device validation warnings (%s/%s): %s",
                device_type,
                platform,
                "; ".join(validation.warnings),
            )
