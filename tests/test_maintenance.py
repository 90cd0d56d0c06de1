"""Periodic maintenance pass."""

from datetime import timedelta

from devicesync.models.device import utcnow
from devicesync.services.device_store import DeviceStore
from devicesync.services.maintenance import run_maintenance
from devicesync.services.sync_store import SyncStore


def test_run_maintenance(session, device_spec):
    devices = DeviceStore(session)
    stale = devices.create("user-1", device_spec())
    fresh = devices.create("user-1", device_spec())
    stale.registered_at = utcnow() - timedelta(days=90)
    session.add(stale)
    session.commit()

    sync = SyncStore(session)
    sync.add_offline("user-1", fresh.id, "progress", "update", {"n": 1}, utcnow() - timedelta(days=30))
    sync.add_offline("user-1", fresh.id, "progress", "update", {"n": 2}, utcnow())

    report = run_maintenance(session)

    assert report["devices_deactivated"] == 1
    assert report["offline_expired"] == 1
    session.refresh(stale)
    session.refresh(fresh)
    assert stale.is_active is False
    assert fresh.is_active is True
    assert [op.payload for op in sync.pending_offline(fresh.id)] == [{"n": 2}]
