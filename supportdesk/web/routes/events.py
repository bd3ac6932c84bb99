"""SSE endpoint for real-time workspace events."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from supportdesk.collaborators import Collaborators
from supportdesk.events import Event, InProcessEventBus, workspace_topic
from supportdesk.types import Level, Role
from supportdesk.web.dependencies import (
    RequestScope,
    ScopeDescriptor,
    get_collaborators,
    require_roles,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["events"])

_HEARTBEAT_INTERVAL = 15.0  # seconds


@router.get("/api/workspaces/{workspace_id}/events")
async def workspace_event_stream(
    workspace_id: str,
    request: Request,
    auth: RequestScope = Depends(
        require_roles(
            Role.WORKSPACE_MEMBER,
            scope=ScopeDescriptor(path={"workspace_id": Level.WORKSPACE}),
        )
    ),
    collaborators: Collaborators = Depends(get_collaborators),
) -> StreamingResponse:
    """Stream conversation and message events as Server-Sent Events."""
    bus = collaborators.publisher
    if not isinstance(bus, InProcessEventBus):
        raise HTTPException(status_code=501, detail="Event streaming not available")
    topic = workspace_topic(workspace_id)

    async def event_generator() -> AsyncGenerator[str, None]:
        q = bus.subscribe(topic)
        logger.info(
            "sse_client_connected", workspace_id=workspace_id, principal_id=auth.principal.id
        )
        try:
            yield ": connected\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event: Event = await asyncio.wait_for(q.get(), timeout=_HEARTBEAT_INTERVAL)
                except TimeoutError:
                    yield ": heartbeat\n\n"
                    continue
                yield event.to_sse()
        finally:
            bus.unsubscribe(topic, q)
            logger.info("sse_stream_closed", workspace_id=workspace_id)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
