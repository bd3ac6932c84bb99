"""Inbound message ingestion and inbox API routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from supportdesk.collaborators import Collaborators
from supportdesk.conversations.inbox import get_inbox, ingest_inbound_message
from supportdesk.models.domain import ConversationSummary, InboundMessage
from supportdesk.types import InboxKind, Level, Role
from supportdesk.web.dependencies import (
    RequestScope,
    ScopeDescriptor,
    get_collaborators,
    require_roles,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/workspaces/{workspace_id}", tags=["inbox"])

_WORKSPACE = ScopeDescriptor(path={"workspace_id": Level.WORKSPACE})


class IngestResponse(BaseModel):
    message_id: str
    contact_id: str
    conversation: ConversationSummary


@router.post("/inbound-messages", status_code=201, response_model=IngestResponse)
async def create_inbound_message(
    workspace_id: str,
    body: InboundMessage,
    auth: RequestScope = Depends(
        require_roles(Role.ACCOUNT_ADMIN, Role.WORKSPACE_ADMIN, scope=_WORKSPACE)
    ),
    collaborators: Collaborators = Depends(get_collaborators),
) -> IngestResponse:
    result = await ingest_inbound_message(
        workspace_id, body, auth.declared, collaborators=collaborators
    )
    return IngestResponse(
        message_id=result.message.id,
        contact_id=result.contact.id,
        conversation=ConversationSummary.model_validate(result.conversation),
    )


@router.get("/inbox/{kind}", response_model=list[ConversationSummary])
async def list_inbox(
    workspace_id: str,
    kind: InboxKind,
    auth: RequestScope = Depends(require_roles(Role.WORKSPACE_MEMBER, scope=_WORKSPACE)),
    collaborators: Collaborators = Depends(get_collaborators),
) -> list[ConversationSummary]:
    return await get_inbox(
        kind, auth.principal.id, workspace_id, auth.declared, collaborators=collaborators
    )
