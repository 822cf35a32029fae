"""Server-sent progress events for the authenticated user."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from routers.auth_scope import AuthContext, get_auth_context
from services.notifier import subscribe_user_events

router = APIRouter()
logger = logging.getLogger(__name__)

SSE_PING_SECONDS = 15


@router.get("/stream")
async def stream_events(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
):
    """
    Stream progress, completion and failure events for the caller's media.
    Events published before the client connects are not replayed.
    """

    async def event_generator():
        try:
            async for message in subscribe_user_events(auth.user_id):
                if await request.is_disconnected():
                    break
                yield {"event": message.get("type", "progress"), "data": json.dumps(message)}
        except Exception as exc:
            logger.warning("SSE subscription error for %s: %s", auth.user_id, exc)
            yield {"event": "error", "data": json.dumps({"message": "Event stream unavailable"})}

    return EventSourceResponse(event_generator(), ping=SSE_PING_SECONDS)
