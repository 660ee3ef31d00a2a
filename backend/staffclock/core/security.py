from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from staffclock.core.config import settings

# Verified when no real candidate exists so an unknown email costs the same as a wrong PIN.
_DUMMY_PIN_HASH = bcrypt.hashpw(b"000000", bcrypt.gensalt(rounds=4)).decode("utf-8")


class TokenError(Exception):
    pass


def hash_pin(pin: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.pin_hash_rounds)
    return bcrypt.hashpw(pin.encode("utf-8"), salt).decode("utf-8")


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    """Compare a candidate PIN with a stored bcrypt hash.

    bcrypt's comparison is constant-time; malformed hashes count as a mismatch.
    """
    if not pin_hash:
        pin_hash = _DUMMY_PIN_HASH
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        return False


def burn_pin_check(pin: str) -> None:
    verify_pin(pin, _DUMMY_PIN_HASH)


def create_access_token(
    user_id: str,
    *,
    role: str,
    tenant_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.token_expire_minutes))
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "tenant_id": str(tenant_id),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise TokenError(str(exc)) from exc
    if not payload.get("sub") or not payload.get("tenant_id"):
        raise TokenError("Token is missing required claims")
    return payload
