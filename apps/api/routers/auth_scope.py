"""Authentication dependencies for API user and tenant scoping."""

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    tenant_id: str
    role: str = "viewer"
    email: Optional[str] = None


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
    token: Optional[str] = Query(default=None),
) -> AuthContext:
    """Resolve authenticated user from a Bearer session token or `?token=` (for EventSource/video tags)."""
    raw_token: Optional[str] = None
    if credentials and credentials.scheme.lower() == "bearer":
        raw_token = credentials.credentials
    elif token:
        raw_token = token
    if not raw_token:
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        payload = decode_session_token(raw_token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(
        user_id=str(payload.get("sub", "")),
        tenant_id=str(payload.get("tenant", "")),
        role=str(payload.get("role", "viewer") or "viewer"),
        email=str(payload.get("email", "")) or None,
    )


def require_role(*roles: str) -> Callable:
    """Return a dependency that rejects sessions without one of `roles`."""

    async def _dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions for this action.")
        return auth

    return _dependency
