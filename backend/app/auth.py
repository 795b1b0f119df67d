"""Bearer identity for the Gigboard backend.

Tokens are issued elsewhere; this module only decodes them into an
``AuthContext`` carrying the caller's user id and role.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings

# Cookie name for httpOnly auth
AUTH_COOKIE_NAME = "gigboard_auth"

ADMIN_ROLE = "admin"

# Make bearer optional to allow cookie fallback and anonymous feed reads
security = HTTPBearer(auto_error=False)


def create_access_token(
    user_id: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
    role: str | None = None,
) -> str:
    """Create a JWT access token for a user."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))

    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    if role:
        to_encode["role"] = role
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthContext:
    """Identity decoded from a bearer token."""

    def __init__(self, user_id: str, role: str | None = None):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def _extract_token(
    credentials: HTTPAuthorizationCredentials | None, request: Request
) -> str | None:
    # Authorization header first, then the httpOnly cookie
    if credentials:
        return credentials.credentials
    return request.cookies.get(AUTH_COOKIE_NAME)


def _context_from_token(token: str, settings: Settings) -> AuthContext:
    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AuthContext(user_id=user_id, role=payload.get("role"))


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext:
    """Get the authenticated caller from the token or cookie."""
    token = _extract_token(credentials, request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated - provide Authorization header or auth cookie",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _context_from_token(token, settings)


async def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext | None:
    """Like get_current_user, but anonymous callers get None.

    A token that is present but invalid is still rejected.
    """
    token = _extract_token(credentials, request)
    if not token:
        return None
    return _context_from_token(token, settings)


async def require_admin(
    user: Annotated[AuthContext, Depends(get_current_user)],
) -> AuthContext:
    """Reject non-admin callers."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


# Type aliases for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
OptionalUser = Annotated[AuthContext | None, Depends(get_optional_user)]
AdminUser = Annotated[AuthContext, Depends(require_admin)]
