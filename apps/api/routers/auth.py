"""
Session introspection router.

Sign-in is handled by the external identity provider; this API only
verifies the session tokens it issues.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routers.auth_scope import AuthContext, get_auth_context

router = APIRouter()


class CurrentSessionResponse(BaseModel):
    user_id: str
    tenant_id: str
    role: str
    email: Optional[str] = None
    can_upload: bool


@router.get("/me", response_model=CurrentSessionResponse)
async def get_current_session(auth: AuthContext = Depends(get_auth_context)):
    """Return the authenticated user's scope and role."""
    return CurrentSessionResponse(
        user_id=auth.user_id,
        tenant_id=auth.tenant_id,
        role=auth.role,
        email=auth.email,
        can_upload=auth.role in ("editor", "admin"),
    )
