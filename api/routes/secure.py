"""
api/routes/secure.py -- Role-gated demo endpoints.

The role predicates for these paths live in auth.policy.DEFAULT_POLICY; by
the time a handler runs, the access middleware has already allowed the
caller.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/secure/user", response_class=PlainTextResponse)
async def user_access() -> str:
    return "User or Admin can access this endpoint."


@router.get("/secure/admin", response_class=PlainTextResponse)
async def admin_access() -> str:
    return "Only Admin can access this endpoint."
