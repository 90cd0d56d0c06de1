"""Persistence of registered devices."""

import json
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from devicesync.models.device import (
    DEFAULT_CAPABILITIES,
    DEFAULT_METADATA,
    Device,
    merge_capabilities,
    merge_metadata,
    utcnow,
)
from devicesync.utils.errors import Conflict, Internal, NotFound


class DeviceStore:
    """CRUD over ``Device`` rows."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, user_id: str, spec: dict[str, Any], ip_address: Optional[str] = None) -> Device:
        metadata = merge_metadata(DEFAULT_METADATA, spec.get("metadata") or {})
        if ip_address:
            metadata["ip_address"] = ip_address

        now = utcnow()
        device = Device(
            user_id=user_id,
            device_type=spec["device_type"],
            platform=spec["platform"],
            device_name=spec["device_name"],
            device_model=spec.get("device_model"),
            os_version=spec.get("os_version"),
            app_version=spec.get("app_version"),
            capabilities_json=json.dumps(
                merge_capabilities(DEFAULT_CAPABILITIES, spec.get("capabilities") or {})
            ),
            metadata_json=json.dumps(metadata),
            is_active=True,
            registered_at=now,
            updated_at=now,
        )
        if spec.get("id"):
            if self.get(spec["id"]):
                raise Conflict("Device already exists")
            device.id = spec["id"]

        try:
            self.session.add(device)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict("Device already exists") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal("Failed to create device") from exc
        self.session.refresh(device)
        return device

    def get(self, device_id: str) -> Optional[Device]:
        try:
            return self.session.get(Device, device_id)
        except SQLAlchemyError as exc:
            raise Internal("Failed to find device") from exc

    def list_by_user(self, user_id: str, active_only: bool = False) -> list[Device]:
        query = select(Device).where(Device.user_id == user_id)
        if active_only:
            query = query.where(Device.is_active == True)  # noqa: E712
        try:
            return list(self.session.exec(query.order_by(Device.registered_at)).all())
        except SQLAlchemyError as exc:
            raise Internal("Failed to find devices by user") from exc

    def update(self, device_id: str, patch: dict[str, Any]) -> Device:
        """Apply a partial update.

        Capabilities and metadata are merged field by field with the stored
        values; other fields are replaced when present in ``patch``.
        ``updated_at`` is always stamped.
        """
        device = self.get(device_id)
        if not device:
            raise NotFound("Device not found")

        if patch.get("device_name") is not None:
            device.device_name = patch["device_name"]
        if patch.get("app_version") is not None:
            device.app_version = patch["app_version"]
        if patch.get("os_version") is not None:
            device.os_version = patch["os_version"]
        if patch.get("capabilities") is not None:
            device.capabilities_json = json.dumps(
                merge_capabilities(device.capabilities, patch["capabilities"])
            )
        if patch.get("metadata") is not None:
            device.metadata_json = json.dumps(
                merge_metadata(device.device_metadata, patch["metadata"])
            )
        if patch.get("is_active") is not None:
            device.is_active = patch["is_active"]
        if patch.get("last_sync_at") is not None:
            device.last_sync_at = patch["last_sync_at"]
        device.updated_at = utcnow()

        return self._save(device, "Failed to update device")

    def set_active(self, device_id: str, active: bool) -> Device:
        return self.update(device_id, {"is_active": active})

    def touch_last_sync(self, device_id: str) -> Device:
        return self.update(device_id, {"last_sync_at": utcnow()})

    def delete(self, device_id: str) -> None:
        device = self.get(device_id)
        if not device:
            raise NotFound("Device not found")
        try:
            self.session.delete(device)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal("Failed to delete device") from exc

    def find_inactive(self, older_than_days: int = 30) -> list[Device]:
        """Devices not seen (last sync, else registration) for ``older_than_days``."""
        cutoff = utcnow() - timedelta(days=older_than_days)
        try:
            devices = self.session.exec(select(Device)).all()
        except SQLAlchemyError as exc:
            raise Internal("Failed to find inactive devices") from exc
        return [d for d in devices if d.last_seen_at < cutoff]

    def _save(self, device: Device, failure: str) -> Device:
        try:
            self.session.add(device)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal(failure) from exc
        self.session.refresh(device)
        return device
