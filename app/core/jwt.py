from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError

from app.core import config
from app.core.exceptions import AuthenticationFailed


# -------- CREATE TOKEN --------
def create_access_token(data: dict, expires_delta: int | None = None):
    """Generate JWT token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_delta if expires_delta else config.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


# -------- DECODE TOKEN --------
def decode_token(token: str):
    """Decode JWT and return the payload"""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationFailed("Invalid or expired token")

    if "sub" not in payload or "role" not in payload:
        raise AuthenticationFailed("Invalid token payload")

    return payload
