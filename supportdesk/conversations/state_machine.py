"""Conversation lifecycle: TODO, ASSIGNED, ESCALATED and CLOSED.

CLOSED is not terminal; a conversation can be reopened to TODO by a new
inbound message or to ASSIGNED when an agent replies. Every write is a
conditional update on the status read at the start of the call, so two
concurrent writers cannot both apply a transition from the same state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from supportdesk.cache import keys
from supportdesk.events import publish_event, workspace_topic
from supportdesk.exceptions import (
    ConcurrentModification,
    EntityNotFound,
    IllegalTransition,
    InvalidState,
    ScopeMismatch,
)
from supportdesk.models.database import _utc_now
from supportdesk.models.domain import ConversationState, ConversationSummary
from supportdesk.tenancy.containment import resolve_containment
from supportdesk.tenancy.context import DeclaredScope
from supportdesk.types import ConversationStatus
from supportdesk.utils.retry import retry

if TYPE_CHECKING:
    from supportdesk.collaborators import Collaborators
    from supportdesk.models.database import Conversation

logger = structlog.get_logger(__name__)

LEGAL_TRANSITIONS: dict[str, frozenset[str]] = {
    ConversationStatus.TODO: frozenset({ConversationStatus.ASSIGNED, ConversationStatus.ESCALATED}),
    ConversationStatus.ASSIGNED: frozenset({ConversationStatus.CLOSED}),
    ConversationStatus.ESCALATED: frozenset({ConversationStatus.ASSIGNED}),
    ConversationStatus.CLOSED: frozenset({ConversationStatus.TODO, ConversationStatus.ASSIGNED}),
}

# Applied when a new external message arrives; other states are left alone
INBOUND_STATE_MAP: dict[str, str] = {
    ConversationStatus.CLOSED: ConversationStatus.TODO,
    ConversationStatus.ASSIGNED: ConversationStatus.TODO,
}

DEFAULT_PAGE_SIZE = 50

_VALID_STATES = frozenset(s.value for s in ConversationStatus)


def is_legal_transition(from_state: str, to_state: str) -> bool:
    """Unknown current states have no legal targets."""
    return to_state in LEGAL_TRANSITIONS.get(from_state, frozenset())


async def load_conversation(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> Conversation:
    """Load a conversation and verify it sits inside ``scope``.

    Raises:
        EntityNotFound: missing, or in a different workspace than declared.
        ScopeMismatch: the workspace belongs to a different account than
            declared, or a declared department is not the conversation's.
    """
    conversation = await collaborators.conversations.get(conversation_id)
    if conversation is None or conversation.workspace_id != scope.workspace_id:
        raise EntityNotFound("conversation", conversation_id)
    if scope.department_id and scope.department_id != conversation.department_id:
        raise ScopeMismatch("department", scope.department_id, conversation.department_id or "")
    await resolve_containment(
        collaborators.entities,
        DeclaredScope(account_id=scope.account_id, workspace_id=conversation.workspace_id),
    )
    return conversation


async def set_state(
    conversation_id: str,
    new_state: str,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> Conversation:
    """Move a conversation to ``new_state`` if the transition is legal.

    Raises:
        EntityNotFound, ScopeMismatch: see ``load_conversation``.
        InvalidState: ``new_state`` is not one of the four states.
        IllegalTransition: the move is not allowed from the current state.
        ConcurrentModification: the status changed after it was read.
    """
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    if new_state not in _VALID_STATES:
        raise InvalidState(new_state)

    from_state = conversation.status
    if not is_legal_transition(from_state, new_state):
        logger.info(
            "conversation_transition_rejected",
            conversation_id=conversation_id,
            from_state=from_state,
            to_state=new_state,
        )
        raise IllegalTransition(from_state, new_state)

    updated = await collaborators.conversations.update_status(
        conversation_id, from_state, new_state, _utc_now()
    )
    if updated is None:
        logger.warning(
            "conversation_state_conflict",
            conversation_id=conversation_id,
            expected_state=from_state,
        )
        raise ConcurrentModification(conversation_id, from_state)

    workspace_id = conversation.workspace_id
    await collaborators.cache.invalidate(keys.status_change_keys(conversation_id, workspace_id))
    await publish_event(
        collaborators.publisher,
        workspace_topic(workspace_id),
        "conversation.status_changed",
        {
            "conversation_id": conversation_id,
            "workspace_id": workspace_id,
            "from_state": from_state,
            "to_state": new_state,
            "status_updated_at": updated.status_updated_at.isoformat(),
        },
    )
    logger.info(
        "conversation_state_changed",
        conversation_id=conversation_id,
        from_state=from_state,
        to_state=new_state,
    )
    return updated


async def mark_as_assigned(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> Conversation:
    return await set_state(
        conversation_id, ConversationStatus.ASSIGNED, scope, collaborators=collaborators
    )


async def mark_as_escalated(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> Conversation:
    return await set_state(
        conversation_id, ConversationStatus.ESCALATED, scope, collaborators=collaborators
    )


async def mark_as_closed(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> Conversation:
    return await set_state(
        conversation_id, ConversationStatus.CLOSED, scope, collaborators=collaborators
    )


async def mark_as_todo(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> Conversation:
    return await set_state(
        conversation_id, ConversationStatus.TODO, scope, collaborators=collaborators
    )


async def get_conversation_state(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> ConversationState:
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)

    async def load() -> dict:
        state = ConversationState(
            status=conversation.status, status_updated_at=conversation.status_updated_at
        )
        return state.model_dump(mode="json")

    cached = await collaborators.cache.get_or_load(keys.conversation_state(conversation_id), load)
    return ConversationState.model_validate(cached)


async def list_conversations_by_status(
    workspace_id: str,
    scope: DeclaredScope,
    status: str | None = None,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    collaborators: Collaborators,
) -> list[ConversationSummary]:
    """List a workspace's conversations, newest status change first.

    Only the default first page is cached.
    """
    if status is not None and status not in _VALID_STATES:
        raise InvalidState(status)
    await resolve_containment(
        collaborators.entities,
        DeclaredScope(account_id=scope.account_id, workspace_id=workspace_id),
    )

    async def load() -> list[dict]:
        rows = await collaborators.conversations.list_by_status(
            workspace_id, status, limit=limit, offset=offset
        )
        return [ConversationSummary.model_validate(r).model_dump(mode="json") for r in rows]

    if offset == 0 and limit == DEFAULT_PAGE_SIZE:
        rows = await collaborators.cache.get_or_load(
            keys.workspace_conversations(workspace_id, status), load
        )
    else:
        rows = await load()
    return [ConversationSummary.model_validate(r) for r in rows]


@retry(max_attempts=2, delay_ms=50, retry_on=(ConcurrentModification,))
async def _apply_inbound_mapping(
    conversation_id: str, scope: DeclaredScope, collaborators: Collaborators
) -> Conversation:
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    target = INBOUND_STATE_MAP.get(conversation.status)
    if target is None:
        return conversation
    return await set_state(conversation_id, target, scope, collaborators=collaborators)


async def normalize_for_inbound(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> Conversation:
    """Reopen a conversation for a new inbound message.

    The mapped target goes through ``set_state`` like any other write. A
    rejection is logged and the conversation is returned unchanged, so a
    message is never lost because its conversation could not move.
    """
    try:
        return await _apply_inbound_mapping(conversation_id, scope, collaborators)
    except (IllegalTransition, ConcurrentModification) as e:
        logger.warning(
            "inbound_normalization_rejected",
            conversation_id=conversation_id,
            error=str(e),
        )
        return await load_conversation(conversation_id, scope, collaborators=collaborators)
