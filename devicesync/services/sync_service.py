"""Sync engine: batch synchronization with conflict detection and resolution.

A stored record for (device, data type) conflicts with an incoming request
when the server copy is at least as new in version *and* strictly newer in
modification time. Non-conflicting requests overwrite the record in place
and bump its version past both sides. Requests in a batch are processed in
order and independently: one failing item never fails the batch.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlmodel import Session

from devicesync.models.device import as_utc, utcnow
from devicesync.models.sync import DATA_TYPES, RESOLUTIONS, SyncRecord
from devicesync.services.device_store import DeviceStore
from devicesync.services.sync_store import SyncStore
from devicesync.utils.errors import (
    AppError,
    Forbidden,
    Internal,
    InvalidState,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncRequest:
    device_id: str
    data_type: str
    payload: Any
    version: int
    last_modified: datetime


@dataclass
class SyncConflict:
    id: str  # id of the underlying sync record
    user_id: str
    device_id: str
    data_type: str
    server_payload: Any
    client_payload: Any
    server_version: int
    client_version: int
    conflicted_at: datetime


@dataclass
class SyncResult:
    synced_data: list[SyncRecord] = field(default_factory=list)
    conflicts: list[SyncConflict] = field(default_factory=list)
    requested: int = 0

    @property
    def message(self) -> str:
        if not self.requested:
            return "No data to sync"
        return f"Synchronized {len(self.synced_data)} items, {len(self.conflicts)} conflicts"


class SyncEngine:
    def __init__(
        self,
        session: Session,
        notifier=None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        log: Optional[logging.Logger] = None,
    ):
        self.store = SyncStore(session)
        self.devices = DeviceStore(session)
        self.notifier = notifier
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = log or logger

    async def sync_batch(
        self,
        user_id: str,
        requests: list[SyncRequest],
        origin_device_id: Optional[str] = None,
    ) -> SyncResult:
        """Synchronize a batch of requests for ``user_id``.

        Update broadcasts skip ``origin_device_id`` (or, when not given, the
        device the record belongs to). Conflict notices go to every device.
        """
        self.logger.info("Starting sync of %d request(s) for user %s", len(requests), user_id)
        result = SyncResult(requested=len(requests))

        for request in requests:
            try:
                outcome = await self._process_with_retry(user_id, request)
            except Exception as e:
                self.logger.error(
                    "Failed to process sync request (device=%s, type=%s): %s",
                    request.device_id,
                    request.data_type,
                    e,
                )
                continue
            if isinstance(outcome, SyncConflict):
                result.conflicts.append(outcome)
            else:
                result.synced_data.append(outcome)

        await asyncio.to_thread(self._touch_devices, user_id, [r.device_id for r in requests])

        if self.notifier:
            for record in result.synced_data:
                await self.notifier.broadcast_sync_update(
                    user_id,
                    {
                        "record_id": record.id,
                        "device_id": record.device_id,
                        "data_type": record.data_type,
                        "version": record.version,
                        "last_modified": record.modified_at.isoformat(),
                    },
                    exclude_device_id=origin_device_id or record.device_id,
                )
            for conflict in result.conflicts:
                await self.notifier.notify_conflict(
                    user_id,
                    {
                        "conflict_id": conflict.id,
                        "device_id": conflict.device_id,
                        "data_type": conflict.data_type,
                        "conflicted_at": conflict.conflicted_at.isoformat(),
                    },
                )

        self.logger.info(
            "Sync completed for user %s: %d synced, %d conflicts, %d dropped",
            user_id,
            len(result.synced_data),
            len(result.conflicts),
            result.requested - len(result.synced_data) - len(result.conflicts),
        )
        return result

    async def _process_with_retry(self, user_id: str, request: SyncRequest):
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(self._process, user_id, request)
            except Internal:
                attempt += 1
                if attempt >= self.max_retries:
                    raise
                self.logger.warning(
                    "Retrying sync request (device=%s, type=%s), attempt %d/%d",
                    request.device_id,
                    request.data_type,
                    attempt + 1,
                    self.max_retries,
                )
                await asyncio.sleep(self.retry_delay)

    def _touch_devices(self, user_id: str, device_ids: list[str]) -> None:
        """Stamp ``last_sync_at`` on every referenced device the user owns."""
        for device_id in dict.fromkeys(device_ids):
            try:
                device = self.devices.get(device_id)
                if device and device.user_id == user_id:
                    self.devices.touch_last_sync(device_id)
            except AppError as e:
                self.logger.error("Failed to update last sync time for %s: %s", device_id, e)

    def _process(self, user_id: str, request: SyncRequest) -> SyncRecord | SyncConflict:
        if request.data_type not in DATA_TYPES:
            raise ValidationFailed(f"Unknown data type: {request.data_type}")
        device = self.devices.get(request.device_id)
        if not device:
            raise NotFound(f"Device {request.device_id} not found")
        if device.user_id != user_id:
            raise Forbidden(f"Device {request.device_id} belongs to another user")

        client_modified = as_utc(request.last_modified)
        existing = self.store.latest_for(request.device_id, request.data_type)

        if existing is None:
            return self.store.create(
                user_id=user_id,
                device_id=request.device_id,
                data_type=request.data_type,
                payload=request.payload,
                version=request.version,
                last_modified=client_modified,
            )

        if existing.version >= request.version and existing.modified_at > client_modified:
            existing.sync_status = "conflict"
            self.store.save(existing)
            return SyncConflict(
                id=existing.id,
                user_id=user_id,
                device_id=existing.device_id,
                data_type=existing.data_type,
                server_payload=existing.payload,
                client_payload=request.payload,
                server_version=existing.version,
                client_version=request.version,
                conflicted_at=utcnow(),
            )

        existing.set_payload(request.payload)
        existing.version = max(existing.version, request.version) + 1
        existing.last_modified = client_modified
        existing.sync_status = "synced"
        return self.store.save(existing)

    async def resolve_conflict(
        self,
        user_id: str,
        conflict_id: str,
        resolution: str,
        merged_payload: Any = None,
    ) -> SyncRecord:
        self.logger.info("Resolving conflict %s for user %s with %s", conflict_id, user_id, resolution)

        record = await asyncio.to_thread(
            self._resolve, user_id, conflict_id, resolution, merged_payload
        )

        if self.notifier:
            await self.notifier.broadcast_sync_update(
                user_id,
                {
                    "record_id": record.id,
                    "device_id": record.device_id,
                    "data_type": record.data_type,
                    "version": record.version,
                    "last_modified": record.modified_at.isoformat(),
                    "conflict_resolved": True,
                    "resolution": resolution,
                },
            )

        self.logger.info("Conflict %s resolved with %s", conflict_id, resolution)
        return record

    def _resolve(
        self,
        user_id: str,
        conflict_id: str,
        resolution: str,
        merged_payload: Any,
    ) -> SyncRecord:
        record = self.store.get(conflict_id)
        if not record:
            raise NotFound("Conflict not found")
        if record.user_id != user_id:
            raise Forbidden("Unauthorized to resolve this conflict")
        if record.sync_status != "conflict":
            raise InvalidState("Data is not in conflict state")
        if resolution not in RESOLUTIONS:
            raise ValidationFailed(f"Invalid conflict resolution strategy: {resolution}")

        if resolution != "server_wins":
            if merged_payload is None:
                raise ValidationFailed(f"Merged payload required for {resolution} resolution")
            record.set_payload(merged_payload)

        record.version += 1
        record.sync_status = "synced"
        record.conflict_resolution = resolution
        record.last_modified = utcnow()
        return self.store.save(record)

    def get_user_sync_data(
        self,
        user_id: str,
        data_type: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> list[SyncRecord]:
        """Records in scope, without the ones currently in conflict."""
        if device_id:
            records = [r for r in self.store.list_for_device(device_id, data_type) if r.user_id == user_id]
        else:
            records = self.store.list_for_user(user_id, data_type)
        return [r for r in records if r.sync_status != "conflict"]

    def get_conflicts(self, user_id: str) -> list[SyncRecord]:
        return self.store.list_conflicts(user_id)

    def cleanup_old_data(self, sync_days: int = 30, offline_days: int = 7) -> dict[str, int]:
        self.logger.info("Starting cleanup of sync data older than %d days", sync_days)
        cleaned = {
            "sync_data_cleaned": self.store.purge_older_than(sync_days),
            "offline_data_cleaned": self.store.purge_offline_older_than(offline_days, synced_only=True),
        }
        self.logger.info("Cleanup completed: %s", cleaned)
        return cleaned
