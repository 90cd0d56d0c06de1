"""Offline operation queue and replay.

Operations recorded while a device was offline are stored as-is and later
replayed through the sync engine. Replay drains the queue at most once:
every loaded operation is marked synced after the batch runs, including
the ones that ended in a conflict. Those are settled through conflict
resolution, never by replaying again.
"""

import asyncio
import logging
from typing import Any, Optional

from sqlmodel import Session

from devicesync.models.sync import OfflineOperation
from devicesync.services.sync_service import SyncEngine, SyncRequest, SyncResult
from devicesync.services.sync_store import SyncStore
from devicesync.utils.errors import AppError, Forbidden, NotFound

logger = logging.getLogger(__name__)

# Offline writes carry no prior version
OFFLINE_VERSION = 1


class OfflineQueue:
    def __init__(self, session: Session, engine: SyncEngine, log: Optional[logging.Logger] = None):
        self.store = SyncStore(session)
        self.engine = engine
        self.logger = log or logger

    def store_operations(
        self,
        user_id: str,
        device_id: str,
        operations: list[dict[str, Any]],
    ) -> list[OfflineOperation]:
        self.logger.info("Storing %d offline operation(s) for device %s", len(operations), device_id)
        stored = [
            self.store.add_offline(
                user_id=user_id,
                device_id=device_id,
                data_type=op["data_type"],
                operation=op["operation"],
                payload=op.get("payload"),
                client_timestamp=op["timestamp"],
            )
            for op in operations
        ]
        self.logger.info("Stored %d offline operation(s) for device %s", len(stored), device_id)
        return stored

    def pending(self, device_id: str) -> list[OfflineOperation]:
        return self.store.pending_offline(device_id)

    async def replay(self, user_id: str, device_id: str) -> SyncResult:
        self.logger.info("Replaying offline operations for device %s", device_id)

        operations = await asyncio.to_thread(self.store.pending_offline, device_id)
        if not operations:
            return SyncResult()

        requests = [
            SyncRequest(
                device_id=device_id,
                data_type=op.data_type,
                payload=op.payload,
                version=OFFLINE_VERSION,
                last_modified=op.timestamp,
            )
            for op in operations
        ]
        result = await self.engine.sync_batch(user_id, requests, origin_device_id=device_id)

        await asyncio.to_thread(self._mark_synced, operations)

        self.logger.info(
            "Offline replay for device %s processed %d operation(s)", device_id, len(operations)
        )
        return result

    def _mark_synced(self, operations: list[OfflineOperation]) -> None:
        for op in operations:
            try:
                self.store.mark_offline_synced(op)
            except AppError as e:
                self.logger.error("Failed to mark offline operation %s as synced: %s", op.id, e)

    def discard(self, user_id: str, op_id: str) -> None:
        op = self.store.get_offline(op_id)
        if not op:
            raise NotFound("Offline operation not found")
        if op.user_id != user_id:
            raise Forbidden("Offline operation belongs to another user")
        self.store.discard_offline(op)
        self.logger.info("Discarded offline operation %s", op_id)

    def purge_expired(self, retention_days: int) -> int:
        """Drop operations older than the retention window, replayed or not."""
        purged = self.store.purge_offline_older_than(retention_days)
        if purged:
            self.logger.info("Purged %d expired offline operation(s)", purged)
        return purged
