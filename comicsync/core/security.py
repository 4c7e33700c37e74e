from datetime import datetime, timedelta, timezone
import uuid
from typing import Any, Dict
from jose import jwt, JWTError
from fastapi import HTTPException, status

from .config import get_settings


def create_access_token(user_id: int) -> str:
    settings = get_settings()
    # timezone-aware UTC to avoid local-time offset issues on .timestamp()
    now = datetime.now(timezone.utc)
    expires = now + timedelta(minutes=settings.access_token_exp_minutes)
    to_encode: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
        "type": "access",
        # ensure uniqueness even within the same second
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str = "access") -> Dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        if payload.get("type") != expected_type:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
        return payload
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalid or expired")
