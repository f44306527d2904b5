"""
Bureau Export Engine - Authentication Utilities
JWT bearer tokens and the admin dependency guarding reporting routes
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from .config import Settings, get_settings

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 24

# Bearer token security
security = HTTPBearer()


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as asserted by the token."""
    id: str
    role: str


def _signing_key(settings: Settings) -> str:
    if not settings.jwt_secret_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured",
        )
    return settings.jwt_secret_key


def create_access_token(user_id: str, settings: Settings, role: str = "admin") -> str:
    """Create a JWT access token with role claim."""
    expire = datetime.utcnow() + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    to_encode = {
        "sub": user_id,
        "role": role,
        "exp": expire
    }
    return jwt.encode(to_encode, _signing_key(settings), algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    """Decode and validate a JWT token (signature and expiry)."""
    try:
        return jwt.decode(token, _signing_key(settings), algorithms=[ALGORITHM])
    except JWTError:
        return None


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Actor:
    """
    Dependency to get the current authenticated caller.
    Validates the JWT token; expired tokens are rejected by the decoder.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials, settings)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    return Actor(id=user_id, role=payload.get("role", "user"))


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """
    Dependency to require admin role.
    Use this on reporting and consent routes.
    """
    if actor.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return actor
