"""Background maintenance: inactive devices and stale sync data.

Runs as a daemon thread, one pass at start and then every
``maintenance_interval_hours``.
"""

import logging
import threading

from sqlmodel import Session

from devicesync.config import settings
from devicesync.database import new_session
from devicesync.services.device_service import DeviceService
from devicesync.services.offline_service import OfflineQueue
from devicesync.services.sync_service import SyncEngine
from devicesync.services.token_service import DeviceTokenService

logger = logging.getLogger(__name__)


def run_maintenance(session: Session) -> dict[str, int]:
    """One maintenance pass. Returns how many rows each step touched."""
    tokens = DeviceTokenService(
        settings.device_token_secret, settings.device_token_ttl, settings.jwt_algorithm
    )
    devices = DeviceService(session, tokens, settings.max_devices_per_user)
    sync = SyncEngine(session)
    queue = OfflineQueue(session, sync)

    report = {"devices_deactivated": devices.cleanup_inactive(settings.inactive_device_days)}
    report.update(sync.cleanup_old_data(settings.sync_retention_days, settings.offline_retention_days))
    report["offline_expired"] = queue.purge_expired(settings.offline_retention_days)
    return report


class MaintenanceWorker:
    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="maintenance")
        self._thread.start()
        logger.info("Maintenance worker started (every %ss)", self.interval_seconds)

    def stop(self) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Maintenance worker stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                with new_session() as session:
                    report = run_maintenance(session)
                logger.info("Maintenance pass completed: %s", report)
            except Exception as e:
                logger.error("Maintenance pass failed: %s", e)
            self._stop.wait(self.interval_seconds)


maintenance_worker = MaintenanceWorker(settings.maintenance_interval_hours * 3600)
