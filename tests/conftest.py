"""Shared fixtures. Settings are read at import, so env goes first."""

import os
import tempfile

_DATA_DIR = tempfile.mkdtemp()
os.environ["DEVICESYNC_DATA_DIR"] = _DATA_DIR
os.environ["DEVICESYNC_DB_PATH"] = os.path.join(_DATA_DIR, "test.db")
os.environ["DEVICESYNC_MAINTENANCE_ENABLED"] = "false"
os.environ["DEVICESYNC_HEARTBEAT_INTERVAL_SECONDS"] = "3600"
os.environ["DEVICESYNC_SYNC_RETRY_DELAY_SECONDS"] = "0"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from devicesync.config import settings  # noqa: E402
from devicesync.database import engine, init_db, new_session  # noqa: E402
from devicesync.main import app  # noqa: E402
from devicesync.services.device_validation import recommended_capabilities  # noqa: E402
from devicesync.services.token_service import DeviceTokenService  # noqa: E402
from devicesync.utils.security import create_access_token  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    SQLModel.metadata.drop_all(engine)
    init_db()
    yield


@pytest.fixture
def session():
    with new_session() as s:
        yield s


@pytest.fixture
def tokens():
    return DeviceTokenService(settings.device_token_secret, settings.device_token_ttl, settings.jwt_algorithm)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def user_headers():
    def make(user_id: str = "user-1") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return make


@pytest.fixture
def device_spec():
    def make(device_type: str = "mobile", platform: str = "ios", **overrides) -> dict:
        capabilities = {
            "has_camera": False,
            "has_ar": False,
            "has_vr": False,
            "has_gps": False,
            "has_accelerometer": False,
            "has_gyroscope": False,
            "has_touch_screen": False,
            "has_keyboard": False,
            "has_microphone": False,
            "has_speakers": False,
            "supports_offline": False,
            "max_storage_size": 0,
        }
        capabilities.update(recommended_capabilities(device_type))
        capabilities.update(overrides.pop("capabilities", {}))
        spec = {
            "device_type": device_type,
            "platform": platform,
            "device_name": f"Test {device_type}",
            "capabilities": capabilities,
            "metadata": {
                "timezone": "Europe/Berlin",
                "locale": "de-DE",
                "screen_resolution": {"width": 1170, "height": 2532},
                "screen_density": 3.0,
                "network_type": "wifi",
            },
        }
        spec.update(overrides)
        return spec
    return make


@pytest.fixture
def register_device(client, user_headers, device_spec):
    """Register a device over HTTP; returns ``(device_json, device_headers)``."""
    def register(user_id: str = "user-1", device_type: str = "mobile", platform: str = "ios", **overrides):
        r = client.post(
            "/api/v1/devices/register",
            json=device_spec(device_type, platform, **overrides),
            headers=user_headers(user_id),
        )
        assert r.status_code == 201, f"register failed: {r.status_code} {r.text}"
        data = r.json()["data"]
        return data["device"], {"Authorization": f"Bearer {data['auth_token']['token']}"}
    return register
