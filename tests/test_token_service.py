"""Device token issuing, verification and refresh."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from devicesync.services.token_service import DeviceTokenService, parse_ttl
from devicesync.utils.errors import InvalidToken, TokenExpired

SECRET = "test-secret"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("90s", timedelta(seconds=90)),
        ("15m", timedelta(minutes=15)),
        ("12h", timedelta(hours=12)),
        ("7d", timedelta(days=7)),
    ],
)
def test_parse_ttl(text, expected):
    assert parse_ttl(text) == expected


@pytest.mark.parametrize("text", ["", "7", "d7", "7w", "1.5h", "-1d"])
def test_parse_ttl_rejects_bad_format(text):
    with pytest.raises(ValueError):
        parse_ttl(text)


def test_issue_and_verify():
    service = DeviceTokenService(SECRET, "7d")
    issued = service.issue("dev-1", "user-1")

    assert issued.expires_at - issued.issued_at == timedelta(days=7)
    claims = service.verify(issued.token)
    assert claims.device_id == "dev-1"
    assert claims.user_id == "user-1"
    assert claims.token_id == issued.token_id


def test_token_claims_shape():
    issued = DeviceTokenService(SECRET).issue("dev-1", "user-1")
    decoded = jwt.decode(issued.token, SECRET, algorithms=["HS256"])
    assert decoded["type"] == "device"
    assert decoded["deviceId"] == "dev-1"
    assert decoded["userId"] == "user-1"
    assert decoded["jti"] == issued.token_id


def test_expired_token():
    service = DeviceTokenService(SECRET, "1s")
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    issued = service.issue("dev-1", "user-1", now=past)

    with pytest.raises(TokenExpired):
        service.verify(issued.token)
    assert service.is_expired(issued.token)


def test_wrong_secret_is_invalid():
    issued = DeviceTokenService("other-secret").issue("dev-1", "user-1")
    service = DeviceTokenService(SECRET)
    with pytest.raises(InvalidToken):
        service.verify(issued.token)
    assert not service.is_expired(issued.token)


def test_malformed_token_is_invalid():
    with pytest.raises(InvalidToken):
        DeviceTokenService(SECRET).verify("not-a-jwt")


def test_user_access_token_is_not_a_device_token():
    token = jwt.encode(
        {"sub": "user-1", "type": "access", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidToken):
        DeviceTokenService(SECRET).verify(token)


def test_refresh_keeps_binding_and_old_token():
    service = DeviceTokenService(SECRET)
    old = service.issue("dev-1", "user-1")
    new = service.refresh(old.token)

    assert new.token != old.token
    assert new.token_id != old.token_id
    assert service.verify(new.token).device_id == "dev-1"
    # refresh is additive
    assert service.verify(old.token).device_id == "dev-1"


def test_refresh_fails_once_original_expired():
    service = DeviceTokenService(SECRET, "1m")
    old = service.issue("dev-1", "user-1", now=datetime.now(timezone.utc) - timedelta(minutes=5))
    with pytest.raises(TokenExpired):
        service.refresh(old.token)


def test_get_expiration():
    service = DeviceTokenService(SECRET, "1h")
    issued = service.issue("dev-1", "user-1")
    assert service.get_expiration(issued.token) == issued.expires_at
    assert service.get_expiration("garbage") is None
