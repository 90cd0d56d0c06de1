"""WebSocket endpoint and multi-device flows over HTTP + WebSocket."""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from starlette.websockets import WebSocketDisconnect

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def token_of(headers):
    return headers["Authorization"].split(" ", 1)[1]


@contextmanager
def connect(client, headers):
    """Open a device socket and consume the welcome frame."""
    with client.websocket_connect(f"/ws?token={token_of(headers)}") as ws:
        welcome = ws.receive_json()
        assert welcome["type"] == "device_status"
        assert welcome["data"]["status"] == "connected"
        yield ws


def sync_item(data_type="progress", payload=None, version=1, at=T0, device_id=None):
    item = {
        "data_type": data_type,
        "payload": payload if payload is not None else {},
        "version": version,
        "last_modified": at.isoformat(),
    }
    if device_id:
        item["device_id"] = device_id
    return item


def test_missing_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws"):
            pass
    assert exc.value.code == 4001


def test_invalid_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert exc.value.code == 4001


def test_inactive_device_is_refused(client, register_device, user_headers):
    device, headers = register_device()
    client.post(f"/api/v1/devices/{device['id']}/deactivate", headers=user_headers())

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/ws?token={token_of(headers)}"):
            pass
    assert exc.value.code == 4001


def test_ping_pong_and_errors(client, register_device):
    _, headers = register_device()
    with connect(client, headers) as ws:
        ws.send_json({"type": "ping", "id": "p1"})
        pong = ws.receive_json()
        assert pong["type"] == "pong"
        assert pong["id"] == "p1"

        ws.send_text("{not json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "dance"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert "dance" in error["data"]["message"]

        # still usable after errors
        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_new_connection_replaces_old(client, register_device):
    _, headers = register_device()
    with connect(client, headers) as first:
        with connect(client, headers) as second:
            with pytest.raises(WebSocketDisconnect) as exc:
                first.receive_json()
            assert exc.value.code == 4000

            second.send_json({"type": "ping"})
            assert second.receive_json()["type"] == "pong"


def test_sync_broadcast_skips_origin(client, register_device):
    _, headers_a = register_device()
    device_b, headers_b = register_device(device_type="web", platform="web")

    with connect(client, headers_a) as ws_a, connect(client, headers_b) as ws_b:
        r = client.post(
            "/api/v1/sync/sync",
            json={"requests": [sync_item(payload={"lesson": 3})]},
            headers=headers_b,
        )
        assert r.status_code == 200, r.text
        assert r.json()["data"]["synced_data"][0]["device_id"] == device_b["id"]

        update = ws_a.receive_json()
        assert update["type"] == "sync_update"
        assert update["data"]["device_id"] == device_b["id"]
        assert update["data"]["version"] == 1

        # nothing was queued for the originating device before this pong
        ws_b.send_json({"type": "ping"})
        assert ws_b.receive_json()["type"] == "pong"


def test_conflict_flow_between_two_devices(client, register_device, user_headers):
    device_a, headers_a = register_device()
    _, headers_b = register_device(device_type="web", platform="web")

    r = client.post(
        "/api/v1/sync/sync",
        json={"requests": [sync_item(payload={"lesson": 5}, version=2, at=T0 + timedelta(minutes=5))]},
        headers=headers_a,
    )
    assert r.status_code == 200

    with connect(client, headers_a) as ws_a, connect(client, headers_b) as ws_b:
        r = client.post(
            "/api/v1/sync/sync",
            json={"requests": [sync_item(payload={"lesson": 4}, version=2, device_id=device_a["id"])]},
            headers=headers_b,
        )
        result = r.json()["data"]
        assert result["synced_data"] == []
        assert len(result["conflicts"]) == 1
        conflict_id = result["conflicts"][0]["id"]

        for ws in (ws_a, ws_b):
            notice = ws.receive_json()
            assert notice["type"] == "conflict_notification"
            assert notice["data"]["conflict_id"] == conflict_id

        r = client.get("/api/v1/sync/conflicts", headers=user_headers())
        assert [c["id"] for c in r.json()["data"]] == [conflict_id]

        r = client.post(
            "/api/v1/sync/conflicts/resolve",
            json={"conflict_id": conflict_id, "resolution": "merge", "merged_payload": {"lesson": 5, "notes": True}},
            headers=user_headers(),
        )
        assert r.status_code == 200, r.text
        resolved = r.json()["data"]
        assert resolved["sync_status"] == "synced"
        assert resolved["conflict_resolution"] == "merge"
        assert resolved["version"] == 3

        for ws in (ws_a, ws_b):
            update = ws.receive_json()
            assert update["type"] == "sync_update"
            assert update["data"]["conflict_resolved"] is True

    r = client.get("/api/v1/sync/data", params={"data_type": "progress"}, headers=user_headers())
    assert [d["payload"] for d in r.json()["data"]] == [{"lesson": 5, "notes": True}]


def test_resolve_unknown_conflict(client, user_headers):
    r = client.post(
        "/api/v1/sync/conflicts/resolve",
        json={"conflict_id": "missing", "resolution": "server_wins"},
        headers=user_headers(),
    )
    assert r.status_code == 404


def test_client_sync_update_is_relayed(client, register_device):
    device_a, headers_a = register_device()
    _, headers_b = register_device(device_type="web", platform="web")

    with connect(client, headers_a) as ws_a, connect(client, headers_b) as ws_b:
        ws_a.send_json({"type": "sync_update", "data": {"hint": "refresh"}})
        relayed = ws_b.receive_json()
        assert relayed["type"] == "sync_update"
        assert relayed["data"] == {"hint": "refresh", "source_device_id": device_a["id"]}


def test_deactivate_pushes_status(client, register_device, user_headers):
    device, headers = register_device()
    with connect(client, headers) as ws:
        client.post(f"/api/v1/devices/{device['id']}/deactivate", headers=user_headers())
        status = ws.receive_json()
        assert status["type"] == "device_status"
        assert status["data"] == {"status": "deactivated"}


def test_offline_store_and_replay(client, register_device):
    _, headers = register_device()
    ops = [
        {"data_type": "progress", "operation": "update", "payload": {"n": 1}, "timestamp": T0.isoformat()},
        {"data_type": "content", "operation": "create", "payload": {"id": "c1"}, "timestamp": T0.isoformat()},
    ]
    r = client.post("/api/v1/sync/offline", json={"operations": ops}, headers=headers)
    assert r.status_code == 201, r.text
    assert len(r.json()["data"]) == 2

    r = client.get("/api/v1/sync/offline", headers=headers)
    assert len(r.json()["data"]) == 2

    r = client.post("/api/v1/sync/offline/sync", headers=headers)
    assert r.status_code == 200
    assert len(r.json()["data"]["synced_data"]) == 2

    r = client.get("/api/v1/sync/offline", headers=headers)
    assert r.json()["data"] == []

    r = client.post("/api/v1/sync/offline/sync", headers=headers)
    assert r.json()["message"] == "No data to sync"


def test_batch_size_limit(client, register_device, monkeypatch):
    from devicesync.config import settings

    monkeypatch.setattr(settings, "sync_batch_size", 2)
    _, headers = register_device()
    r = client.post(
        "/api/v1/sync/sync",
        json={"requests": [sync_item(payload={"i": i}) for i in range(3)]},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["error"]["details"]["max_batch_size"] == 2


def test_sync_requires_device_token(client, user_headers):
    r = client.post("/api/v1/sync/sync", json={"requests": [sync_item()]}, headers=user_headers())
    assert r.status_code == 401


def test_connection_endpoints(client, register_device, user_headers):
    device_a, headers_a = register_device()
    device_b, _ = register_device(device_type="vr", platform="windows", capabilities={"has_keyboard": True})

    with connect(client, headers_a) as ws:
        r = client.get("/api/v1/ws/stats", headers=user_headers())
        stats = r.json()["data"]
        assert stats["total_connections"] == 1
        assert stats["by_device_type"] == {"mobile": 1}

        r = client.get("/api/v1/ws/user/devices", headers=user_headers())
        assert r.json()["data"]["connected_devices"] == [device_a["id"]]

        r = client.get(f"/api/v1/ws/devices/{device_a['id']}/connection", headers=user_headers())
        assert r.json()["data"]["is_connected"] is True
        r = client.get(f"/api/v1/ws/devices/{device_b['id']}/connection", headers=user_headers())
        assert r.json()["data"]["is_connected"] is False
        r = client.get(f"/api/v1/ws/devices/{device_a['id']}/connection", headers=user_headers("user-2"))
        assert r.status_code == 403

        r = client.post(
            f"/api/v1/ws/devices/{device_a['id']}/notify",
            json={"status": {"status": "update_available"}},
            headers=user_headers(),
        )
        assert r.json()["data"]["is_connected"] is True
        pushed = ws.receive_json()
        assert pushed["data"] == {"status": "update_available"}
