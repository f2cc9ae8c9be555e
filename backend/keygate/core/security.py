import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from keygate.config import settings

def create_access_token(user_id: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(
        {"sub": str(user_id), "exp": expire, "amr": ["wallet"]},
        settings.SECRET_KEY,
        settings.ALGORITHM,
    )

def decode_token(token: str) -> Optional[int]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        return None

def new_login_token() -> tuple[str, str]:
    """Return a (token, hashed_token) pair. Only the hash is persisted."""
    token = secrets.token_urlsafe(32)
    return token, hash_login_token(token)

def hash_login_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()
