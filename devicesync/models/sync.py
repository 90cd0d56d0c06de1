"""Sync record and offline operation models."""

import json
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlmodel import Field, SQLModel

from devicesync.models.device import as_utc, utcnow

DATA_TYPES = ("progress", "preferences", "content", "companion", "assessment")
RESOLUTIONS = ("server_wins", "client_wins", "merge")


class SyncRecord(SQLModel, table=True):
    __tablename__ = "sync_records"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    device_id: str = Field(index=True)
    data_type: str = Field(index=True)
    payload_json: str = "null"
    version: int = Field(default=1, ge=1)
    last_modified: datetime = Field(default_factory=utcnow, index=True)
    sync_status: str = Field(default="synced", index=True)  # 'synced' | 'pending' | 'conflict'
    conflict_resolution: Optional[str] = None  # 'server_wins' | 'client_wins' | 'merge'

    @property
    def payload(self) -> Any:
        return json.loads(self.payload_json)

    def set_payload(self, payload: Any) -> None:
        self.payload_json = json.dumps(payload)

    @property
    def modified_at(self) -> datetime:
        return as_utc(self.last_modified)


class OfflineOperation(SQLModel, table=True):
    __tablename__ = "offline_operations"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    device_id: str = Field(index=True)
    data_type: str
    operation: str  # 'create' | 'update' | 'delete'
    payload_json: str = "null"
    client_timestamp: datetime
    synced: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def payload(self) -> Any:
        return json.loads(self.payload_json)

    @property
    def timestamp(self) -> datetime:
        return as_utc(self.client_timestamp)
