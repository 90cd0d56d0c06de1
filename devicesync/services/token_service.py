"""Device token issuing and verification.

Device tokens are stateless JWTs binding a device id to a user id. Validity
is decided by signature and expiry alone: there is no server-side session
table, so refreshing a token does not revoke the one it was refreshed from.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from devicesync.utils.errors import InvalidToken, TokenExpired

TOKEN_TYPE = "device"

_TTL_PATTERN = re.compile(r"^(\d+)([smhd])$")
_TTL_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_ttl(text: str) -> timedelta:
    """Parse ``"<int><s|m|h|d>"`` into a timedelta, e.g. ``"7d"`` or ``"90s"``."""
    match = _TTL_PATTERN.match(text.strip())
    if not match:
        raise ValueError(f"Invalid expiration time format: {text!r}")
    return int(match.group(1)) * _TTL_UNITS[match.group(2)]


@dataclass
class DeviceAuthToken:
    device_id: str
    user_id: str
    token: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass
class TokenClaims:
    device_id: str
    user_id: str
    token_id: str


class DeviceTokenService:
    """Signs and verifies device tokens."""

    def __init__(self, secret: str, ttl: str = "7d", algorithm: str = "HS256"):
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = parse_ttl(ttl)

    def issue(self, device_id: str, user_id: str, now: datetime | None = None) -> DeviceAuthToken:
        token_id = str(uuid.uuid4())
        now = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        expires_at = now + self._ttl
        payload = {
            "jti": token_id,
            "deviceId": device_id,
            "userId": user_id,
            "type": TOKEN_TYPE,
            "iat": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return DeviceAuthToken(
            device_id=device_id,
            user_id=user_id,
            token=token,
            token_id=token_id,
            issued_at=now,
            expires_at=expires_at,
        )

    def verify(self, token: str) -> TokenClaims:
        try:
            decoded = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpired("Device token expired")
        except jwt.PyJWTError:
            raise InvalidToken("Invalid device token")

        if decoded.get("type") != TOKEN_TYPE:
            raise InvalidToken("Invalid token type")
        if not decoded.get("deviceId") or not decoded.get("userId"):
            raise InvalidToken("Invalid device token")

        return TokenClaims(
            device_id=decoded["deviceId"],
            user_id=decoded["userId"],
            token_id=decoded.get("jti", ""),
        )

    def refresh(self, old_token: str) -> DeviceAuthToken:
        """Issue a new token for the binding of ``old_token``.

        The old token keeps working until its own expiry.
        """
        claims = self.verify(old_token)
        return self.issue(claims.device_id, claims.user_id)

    def is_expired(self, token: str) -> bool:
        try:
            jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            return True
        except jwt.PyJWTError:
            return False
        return False

    def get_expiration(self, token: str) -> datetime | None:
        try:
            decoded = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError:
            return None
        exp = decoded.get("exp")
        if exp is None:
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc)
