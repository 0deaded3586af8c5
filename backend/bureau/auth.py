"""
Credit Bureau Engine - Authentication Utilities
Bearer JWT tokens and the acting-identity dependency.

Credentials are verified by the identity provider that issues tokens; this
module only signs and reads them.
"""
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import ACCESS_TOKEN_EXPIRE_HOURS, JWT_ALGORITHM, JWT_SECRET_KEY
from .database import get_db
from .models.actor import Actor
from .models.db_models import UserDB, UserRole

# Bearer token security
security = HTTPBearer()


def create_access_token(user_id: str, role: UserRole, expires_in: Optional[timedelta] = None) -> str:
    """Create a JWT access token with role claim."""
    expire = datetime.utcnow() + (expires_in or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode = {
        "sub": user_id,
        "role": UserRole(role).value,
        "exp": expire,
    }
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> Actor:
    """
    Dependency resolving the bearer token to an Actor.
    The role comes from the stored user, not from the token claim.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    user_id: str = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if user is None:
        raise credentials_exception

    return Actor(id=user.id, role=UserRole(user.role), display_name=user.full_name or None)


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency for admin-only routes."""
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return actor
