"""Sync API: batch sync, offline queue, conflict resolution."""

from typing import Optional

from fastapi import APIRouter, Depends, status

from devicesync.api.deps import (
    get_current_device,
    get_current_user_id,
    get_offline_queue,
    get_sync_engine,
)
from devicesync.config import settings
from devicesync.models.device import Device
from devicesync.schemas.device import Envelope
from devicesync.schemas.sync import (
    ConflictResolveRequest,
    DataType,
    OfflineOperationResponse,
    OfflineStoreRequest,
    SyncBatchRequest,
    SyncRecordResponse,
    SyncResultResponse,
)
from devicesync.services.offline_service import OfflineQueue
from devicesync.services.sync_service import SyncEngine, SyncRequest
from devicesync.utils.errors import ValidationFailed

router = APIRouter(prefix="/sync", tags=["sync"])


def _check_batch_size(count: int) -> None:
    if count > settings.sync_batch_size:
        raise ValidationFailed(
            f"Batch too large: {count} items (max {settings.sync_batch_size})",
            {"max_batch_size": settings.sync_batch_size, "received": count},
        )


@router.post("/sync", response_model=Envelope[SyncResultResponse])
async def sync_data(
    body: SyncBatchRequest,
    device: Device = Depends(get_current_device),
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Synchronize a batch of records from the calling device.

    Items without a ``device_id`` are attributed to the calling device.
    """
    _check_batch_size(len(body.requests))
    requests = [
        SyncRequest(
            device_id=item.device_id or device.id,
            data_type=item.data_type,
            payload=item.payload,
            version=item.version,
            last_modified=item.last_modified,
        )
        for item in body.requests
    ]
    result = await engine.sync_batch(device.user_id, requests, origin_device_id=device.id)
    return Envelope(data=SyncResultResponse.from_result(result), message=result.message)


@router.get("/offline", response_model=Envelope[list[OfflineOperationResponse]])
def list_offline_operations(
    device: Device = Depends(get_current_device),
    queue: OfflineQueue = Depends(get_offline_queue),
):
    """Operations of the calling device still waiting for replay."""
    return Envelope(data=[OfflineOperationResponse.from_operation(op) for op in queue.pending(device.id)])


@router.post(
    "/offline",
    response_model=Envelope[list[OfflineOperationResponse]],
    status_code=status.HTTP_201_CREATED,
)
def store_offline_operations(
    body: OfflineStoreRequest,
    device: Device = Depends(get_current_device),
    queue: OfflineQueue = Depends(get_offline_queue),
):
    _check_batch_size(len(body.operations))
    stored = queue.store_operations(
        device.user_id,
        device.id,
        [op.model_dump() for op in body.operations],
    )
    return Envelope(
        data=[OfflineOperationResponse.from_operation(op) for op in stored],
        message=f"Stored {len(stored)} offline operations",
    )


@router.post("/offline/sync", response_model=Envelope[SyncResultResponse])
async def sync_offline_operations(
    device: Device = Depends(get_current_device),
    queue: OfflineQueue = Depends(get_offline_queue),
):
    """Replay the calling device's pending offline operations."""
    result = await queue.replay(device.user_id, device.id)
    return Envelope(data=SyncResultResponse.from_result(result), message=result.message)


@router.delete("/offline/{op_id}", response_model=Envelope[None])
def discard_offline_operation(
    op_id: str,
    user_id: str = Depends(get_current_user_id),
    queue: OfflineQueue = Depends(get_offline_queue),
):
    queue.discard(user_id, op_id)
    return Envelope(message="Offline operation discarded")


@router.get("/data", response_model=Envelope[list[SyncRecordResponse]])
def get_sync_data(
    data_type: Optional[DataType] = None,
    device_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    engine: SyncEngine = Depends(get_sync_engine),
):
    records = engine.get_user_sync_data(user_id, data_type, device_id)
    return Envelope(data=[SyncRecordResponse.from_record(r) for r in records])


@router.get("/conflicts", response_model=Envelope[list[SyncRecordResponse]])
def get_conflicts(
    user_id: str = Depends(get_current_user_id),
    engine: SyncEngine = Depends(get_sync_engine),
):
    records = engine.get_conflicts(user_id)
    return Envelope(data=[SyncRecordResponse.from_record(r) for r in records])


@router.post("/conflicts/resolve", response_model=Envelope[SyncRecordResponse])
async def resolve_conflict(
    body: ConflictResolveRequest,
    user_id: str = Depends(get_current_user_id),
    engine: SyncEngine = Depends(get_sync_engine),
):
    record = await engine.resolve_conflict(
        user_id,
        body.conflict_id,
        body.resolution,
        body.merged_payload,
    )
    return Envelope(data=SyncRecordResponse.from_record(record), message="Conflict resolved successfully")
