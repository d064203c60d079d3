import time
from typing import Any, Dict, Optional

import jwt

from .config import settings


class InvalidToken(Exception):
    pass


def create_access_token(user_id: str, lifetime_seconds: int = 3600, **claims: Any) -> str:
    """Issue a signed bearer token whose `sub` is the user id."""
    now = int(time.time())
    payload: Dict[str, Any] = {"sub": str(user_id), "iat": now, "exp": now + lifetime_seconds}
    payload.update({k: v for k, v in claims.items() if v is not None})
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: Optional[str]) -> str:
    """Verify a bearer token and return the user id it was issued for."""
    if not token:
        raise InvalidToken("Authentication required")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise InvalidToken("Invalid token") from e

    # older tokens carried the id as userId
    user_id = payload.get("sub") or payload.get("userId")
    if user_id is None:
        raise InvalidToken("Invalid token")
    return str(user_id)
