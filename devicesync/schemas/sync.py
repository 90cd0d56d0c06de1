"""Sync and offline schemas."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from devicesync.models.device import as_utc
from devicesync.models.sync import OfflineOperation, SyncRecord
from devicesync.services.sync_service import SyncConflict, SyncResult

DataType = Literal["progress", "preferences", "content", "companion", "assessment"]
Resolution = Literal["server_wins", "client_wins", "merge"]
OperationKind = Literal["create", "update", "delete"]


class SyncItem(BaseModel):
    device_id: Optional[str] = None  # defaults to the authenticated device
    data_type: DataType
    payload: Any
    version: int = Field(ge=1)
    last_modified: datetime


class SyncBatchRequest(BaseModel):
    requests: list[SyncItem] = Field(min_length=1)


class ConflictResolveRequest(BaseModel):
    conflict_id: str
    resolution: Resolution
    merged_payload: Optional[Any] = None


class OfflineOperationItem(BaseModel):
    data_type: DataType
    operation: OperationKind
    payload: Any = None
    timestamp: datetime


class OfflineStoreRequest(BaseModel):
    operations: list[OfflineOperationItem] = Field(min_length=1)


class SyncRecordResponse(BaseModel):
    id: str
    user_id: str
    device_id: str
    data_type: str
    payload: Any
    version: int
    last_modified: datetime
    sync_status: str
    conflict_resolution: Optional[str]

    @classmethod
    def from_record(cls, r: SyncRecord) -> "SyncRecordResponse":
        return cls(
            id=r.id,
            user_id=r.user_id,
            device_id=r.device_id,
            data_type=r.data_type,
            payload=r.payload,
            version=r.version,
            last_modified=r.modified_at,
            sync_status=r.sync_status,
            conflict_resolution=r.conflict_resolution,
        )


class SyncConflictResponse(BaseModel):
    id: str
    user_id: str
    device_id: str
    data_type: str
    server_payload: Any
    client_payload: Any
    server_version: int
    client_version: int
    conflicted_at: datetime

    @classmethod
    def from_conflict(cls, c: SyncConflict) -> "SyncConflictResponse":
        return cls(
            id=c.id,
            user_id=c.user_id,
            device_id=c.device_id,
            data_type=c.data_type,
            server_payload=c.server_payload,
            client_payload=c.client_payload,
            server_version=c.server_version,
            client_version=c.client_version,
            conflicted_at=c.conflicted_at,
        )


class SyncResultResponse(BaseModel):
    requested: int
    synced_data: list[SyncRecordResponse]
    conflicts: list[SyncConflictResponse]

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(
            requested=result.requested,
            synced_data=[SyncRecordResponse.from_record(r) for r in result.synced_data],
            conflicts=[SyncConflictResponse.from_conflict(c) for c in result.conflicts],
        )


class OfflineOperationResponse(BaseModel):
    id: str
    user_id: str
    device_id: str
    data_type: str
    operation: str
    payload: Any
    timestamp: datetime
    synced: bool

    @classmethod
    def from_operation(cls, op: OfflineOperation) -> "OfflineOperationResponse":
        return cls(
            id=op.id,
            user_id=op.user_id,
            device_id=op.device_id,
            data_type=op.data_type,
            operation=op.operation,
            payload=op.payload,
            timestamp=as_utc(op.client_timestamp),
            synced=op.synced,
        )
