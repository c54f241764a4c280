from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from logisync.core.config import settings

def create_access_token(
    user_id: int,
    organization_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a signed access token carrying the caller's identity and organization scope"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {
        "sub": str(user_id),
        "org": organization_id,
        "role": role,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str) -> Optional[dict]:
    """Verify signature and expiry; returns the payload or None"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

def decode_access_token(token: str) -> Optional[dict]:
    """Decode and validate access token"""
    payload = verify_token(token)
    if payload is None:
        return None

    # Check token type
    if payload.get("type") != "access":
        return None

    if payload.get("sub") is None or payload.get("org") is None:
        return None

    return payload
