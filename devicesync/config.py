"""DeviceSync Server Configuration."""

import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    service_name: str = "DeviceSync"
    host: str = "0.0.0.0"
    port: int = 3006
    debug: bool = False
    log_level: str = "INFO"

    # Paths
    data_dir: Path = Path.home() / "devicesync" / "data"

    # Database
    db_path: Path = Path.home() / "devicesync" / "data" / "devicesync.db"

    # JWT (user access tokens issued by the identity provider)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours

    # Device tokens
    device_token_secret: str = ""
    device_token_ttl: str = "7d"  # <int><s|m|h|d>

    # WebSocket
    heartbeat_interval_seconds: float = 30.0
    connection_timeout_seconds: float = 60.0

    # Devices
    max_devices_per_user: int = 10
    inactive_device_days: int = 30

    # Sync
    sync_batch_size: int = 100
    sync_max_retries: int = 3
    sync_retry_delay_seconds: float = 1.0
    sync_retention_days: int = 30

    # Offline
    offline_retention_days: int = 7

    # Maintenance (inactive devices, stale records)
    maintenance_enabled: bool = True
    maintenance_interval_hours: float = 24.0

    model_config = {"env_prefix": "DEVICESYNC_"}

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in [self.data_dir, self.db_path.parent]:
            d.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate secrets if not set, persist to file so they survive restarts."""
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.jwt_secret:
            self.jwt_secret = saved.get("jwt_secret", "") or secrets.token_urlsafe(32)
        if not self.device_token_secret:
            self.device_token_secret = (
                saved.get("device_token_secret", "") or secrets.token_urlsafe(32)
            )

        # Persist for next restart
        secrets_file.write_text(
            f"jwt_secret={self.jwt_secret}\n"
            f"device_token_secret={self.device_token_secret}\n"
        )


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
