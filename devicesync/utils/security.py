"""Security utilities: user access tokens from the identity provider.

DeviceSync does not own user accounts. User-level bearer tokens are issued by
an external identity provider that shares ``jwt_secret`` with this service;
``create_access_token`` exists so local tooling and tests can mint them.
"""

from datetime import datetime, timedelta, timezone

import jwt

from devicesync.config import settings


def create_access_token(user_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
