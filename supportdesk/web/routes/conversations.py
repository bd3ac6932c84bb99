"""Conversation lifecycle and assignment API routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from supportdesk.collaborators import Collaborators
from supportdesk.conversations import access, assignment, state_machine
from supportdesk.exceptions import EntityNotFound
from supportdesk.models.domain import AssignmentDetails, ConversationState, ConversationSummary
from supportdesk.tenancy.authorizer import authorize
from supportdesk.types import Level, Role
from supportdesk.web.dependencies import (
    RequestScope,
    ScopeDescriptor,
    get_collaborators,
    require_roles,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/workspaces/{workspace_id}/conversations", tags=["conversations"])

_WORKSPACE = ScopeDescriptor(path={"workspace_id": Level.WORKSPACE})
_CONVERSATION = ScopeDescriptor(
    path={"workspace_id": Level.WORKSPACE}, conversation="conversation_id"
)

_member = require_roles(Role.WORKSPACE_MEMBER, scope=_WORKSPACE)
_conversation_member = require_roles(Role.WORKSPACE_MEMBER, scope=_CONVERSATION)
_assigner = require_roles(
    Role.ACCOUNT_ADMIN, Role.WORKSPACE_ADMIN, Role.HUMAN_SUPPORT, scope=_CONVERSATION
)


async def _viewer(
    conversation_id: str,
    auth: RequestScope = Depends(_conversation_member),
    collaborators: Collaborators = Depends(get_collaborators),
) -> RequestScope:
    """Admins see every conversation; others need assignment or department membership."""
    is_admin = authorize(
        auth.principal, auth.context, [Role.ACCOUNT_ADMIN, Role.WORKSPACE_ADMIN]
    ).allowed
    if not is_admin and not await access.can_user_view_conversation(
        auth.principal.id, conversation_id, auth.declared, collaborators=collaborators
    ):
        raise EntityNotFound("conversation", conversation_id)
    return auth


class StateChangeRequest(BaseModel):
    state: str = Field(min_length=1)


class AssignRequest(BaseModel):
    user_id: str = Field(min_length=1)


@router.get("", response_model=list[ConversationSummary])
async def list_conversations(
    workspace_id: str,
    status: str | None = None,
    limit: int = Query(default=state_machine.DEFAULT_PAGE_SIZE, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: RequestScope = Depends(_member),
    collaborators: Collaborators = Depends(get_collaborators),
) -> list[ConversationSummary]:
    return await state_machine.list_conversations_by_status(
        workspace_id,
        auth.declared,
        status,
        limit=limit,
        offset=offset,
        collaborators=collaborators,
    )


@router.get("/{conversation_id}", response_model=ConversationSummary)
async def get_conversation(
    conversation_id: str,
    auth: RequestScope = Depends(_viewer),
    collaborators: Collaborators = Depends(get_collaborators),
) -> ConversationSummary:
    conversation = await state_machine.load_conversation(
        conversation_id, auth.declared, collaborators=collaborators
    )
    return ConversationSummary.model_validate(conversation)


@router.get("/{conversation_id}/state", response_model=ConversationState)
async def get_state(
    conversation_id: str,
    auth: RequestScope = Depends(_viewer),
    collaborators: Collaborators = Depends(get_collaborators),
) -> ConversationState:
    return await state_machine.get_conversation_state(
        conversation_id, auth.declared, collaborators=collaborators
    )


@router.post("/{conversation_id}/state", response_model=ConversationSummary)
async def change_state(
    conversation_id: str,
    body: StateChangeRequest,
    auth: RequestScope = Depends(_viewer),
    collaborators: Collaborators = Depends(get_collaborators),
) -> ConversationSummary:
    conversation = await state_machine.set_state(
        conversation_id, body.state, auth.declared, collaborators=collaborators
    )
    return ConversationSummary.model_validate(conversation)


@router.get("/{conversation_id}/assignment", response_model=AssignmentDetails | None)
async def get_assignment(
    conversation_id: str,
    auth: RequestScope = Depends(_viewer),
    collaborators: Collaborators = Depends(get_collaborators),
) -> AssignmentDetails | None:
    return await assignment.get_assignment_details(
        conversation_id, auth.declared, collaborators=collaborators
    )


@router.post("/{conversation_id}/assignment", response_model=ConversationSummary)
async def assign(
    conversation_id: str,
    body: AssignRequest,
    auth: RequestScope = Depends(_assigner),
    collaborators: Collaborators = Depends(get_collaborators),
) -> ConversationSummary:
    conversation = await assignment.assign_conversation(
        conversation_id, body.user_id, auth.declared, collaborators=collaborators
    )
    return ConversationSummary.model_validate(conversation)


@router.delete("/{conversation_id}/assignment", response_model=ConversationSummary)
async def unassign(
    conversation_id: str,
    auth: RequestScope = Depends(_assigner),
    collaborators: Collaborators = Depends(get_collaborators),
) -> ConversationSummary:
    conversation = await assignment.unassign_conversation(
        conversation_id, auth.declared, collaborators=collaborators
    )
    return ConversationSummary.model_validate(conversation)


@router.post("/{conversation_id}/claim", response_model=ConversationSummary)
async def claim(
    conversation_id: str,
    auth: RequestScope = Depends(_viewer),
    collaborators: Collaborators = Depends(get_collaborators),
) -> ConversationSummary:
    conversation = await assignment.claim_conversation(
        conversation_id, auth.principal.id, auth.declared, collaborators=collaborators
    )
    return ConversationSummary.model_validate(conversation)
