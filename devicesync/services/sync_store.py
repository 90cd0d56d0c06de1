"""Persistence of sync records and offline operations."""

import json
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from devicesync.models.device import as_utc, utcnow
from devicesync.models.sync import OfflineOperation, SyncRecord
from devicesync.utils.errors import Internal


class SyncStore:
    def __init__(self, session: Session):
        self.session = session

    # --- Sync records ---

    def create(
        self,
        user_id: str,
        device_id: str,
        data_type: str,
        payload: Any,
        version: int,
        last_modified: datetime,
        sync_status: str = "synced",
    ) -> SyncRecord:
        record = SyncRecord(
            user_id=user_id,
            device_id=device_id,
            data_type=data_type,
            payload_json=json.dumps(payload),
            version=version,
            last_modified=as_utc(last_modified),
            sync_status=sync_status,
        )
        return self.save(record, "Failed to create sync data")

    def get(self, record_id: str) -> Optional[SyncRecord]:
        try:
            return self.session.get(SyncRecord, record_id)
        except SQLAlchemyError as exc:
            raise Internal("Failed to get sync data") from exc

    def latest_for(self, device_id: str, data_type: str) -> Optional[SyncRecord]:
        """Most recently modified record for (device, data type), any status."""
        query = (
            select(SyncRecord)
            .where(SyncRecord.device_id == device_id, SyncRecord.data_type == data_type)
            .order_by(col(SyncRecord.last_modified).desc())
        )
        return self._first(query, "Failed to get device sync data")

    def list_for_user(self, user_id: str, data_type: Optional[str] = None) -> list[SyncRecord]:
        query = select(SyncRecord).where(SyncRecord.user_id == user_id)
        if data_type:
            query = query.where(SyncRecord.data_type == data_type)
        return self._all(query.order_by(col(SyncRecord.last_modified).desc()), "Failed to get user sync data")

    def list_for_device(self, device_id: str, data_type: Optional[str] = None) -> list[SyncRecord]:
        query = select(SyncRecord).where(SyncRecord.device_id == device_id)
        if data_type:
            query = query.where(SyncRecord.data_type == data_type)
        return self._all(query.order_by(col(SyncRecord.last_modified).desc()), "Failed to get device sync data")

    def list_conflicts(self, user_id: str) -> list[SyncRecord]:
        query = select(SyncRecord).where(
            SyncRecord.user_id == user_id, SyncRecord.sync_status == "conflict"
        )
        return self._all(query, "Failed to get conflicted sync data")

    def save(self, record: SyncRecord, failure: str = "Failed to update sync data") -> SyncRecord:
        try:
            self.session.add(record)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal(failure) from exc
        self.session.refresh(record)
        return record

    def purge_older_than(self, days: int) -> int:
        """Delete synced records last modified more than ``days`` ago."""
        cutoff = utcnow() - timedelta(days=days)
        query = select(SyncRecord).where(SyncRecord.sync_status == "synced")
        stale = [r for r in self._all(query, "Failed to clean up sync data") if r.modified_at < cutoff]
        return self._delete_all(stale, "Failed to clean up sync data")

    # --- Offline operations ---

    def add_offline(
        self,
        user_id: str,
        device_id: str,
        data_type: str,
        operation: str,
        payload: Any,
        client_timestamp: datetime,
    ) -> OfflineOperation:
        op = OfflineOperation(
            user_id=user_id,
            device_id=device_id,
            data_type=data_type,
            operation=operation,
            payload_json=json.dumps(payload),
            client_timestamp=as_utc(client_timestamp),
            synced=False,
        )
        try:
            self.session.add(op)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal("Failed to create offline data") from exc
        self.session.refresh(op)
        return op

    def get_offline(self, op_id: str) -> Optional[OfflineOperation]:
        try:
            return self.session.get(OfflineOperation, op_id)
        except SQLAlchemyError as exc:
            raise Internal("Failed to get offline data") from exc

    def pending_offline(self, device_id: str) -> list[OfflineOperation]:
        """Not yet replayed operations for a device, in insertion order."""
        query = (
            select(OfflineOperation)
            .where(OfflineOperation.device_id == device_id, OfflineOperation.synced == False)  # noqa: E712
            .order_by(col(OfflineOperation.created_at))
        )
        return self._all(query, "Failed to get device offline data")

    def mark_offline_synced(self, op: OfflineOperation) -> None:
        op.synced = True
        try:
            self.session.add(op)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal("Failed to mark offline data as synced") from exc

    def discard_offline(self, op: OfflineOperation) -> None:
        try:
            self.session.delete(op)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal("Failed to delete offline data") from exc

    def purge_offline_older_than(self, days: int, synced_only: bool = False) -> int:
        cutoff = utcnow() - timedelta(days=days)
        query = select(OfflineOperation)
        if synced_only:
            query = query.where(OfflineOperation.synced == True)  # noqa: E712
        ops = self._all(query, "Failed to clean up offline data")
        stale = [op for op in ops if op.timestamp < cutoff]
        return self._delete_all(stale, "Failed to clean up offline data")

    # --- helpers ---

    def _first(self, query, failure: str):
        try:
            return self.session.exec(query).first()
        except SQLAlchemyError as exc:
            raise Internal(failure) from exc

    def _all(self, query, failure: str) -> list:
        try:
            return list(self.session.exec(query).all())
        except SQLAlchemyError as exc:
            raise Internal(failure) from exc

    def _delete_all(self, rows: list, failure: str) -> int:
        if not rows:
            return 0
        try:
            for row in rows:
                self.session.delete(row)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal(failure) from exc
        return len(rows)
