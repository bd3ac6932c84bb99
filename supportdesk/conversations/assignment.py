"""Conversation assignment.

``assign_conversation`` and ``unassign_conversation`` only touch the
assignment fields; the lifecycle status moves through the state machine.
``claim_conversation`` does both at once with a single conditional write.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from supportdesk.cache import keys
from supportdesk.conversations.state_machine import is_legal_transition, load_conversation
from supportdesk.events import publish_event, workspace_topic
from supportdesk.exceptions import (
    ConcurrentModification,
    EntityNotFound,
    IllegalTransition,
)
from supportdesk.models.database import _utc_now
from supportdesk.models.domain import AssignmentDetails, UserSummary
from supportdesk.types import ConversationStatus, Level

if TYPE_CHECKING:
    from supportdesk.collaborators import Collaborators
    from supportdesk.models.database import Conversation
    from supportdesk.tenancy.context import DeclaredScope

logger = structlog.get_logger(__name__)


async def _require_workspace_member(
    user_id: str, workspace_id: str, collaborators: Collaborators
) -> None:
    membership = await collaborators.memberships.find_active(user_id, workspace_id, Level.WORKSPACE)
    if membership is None:
        raise EntityNotFound("user", user_id)


async def _after_assignment_write(
    conversation: Conversation,
    event_name: str,
    collaborators: Collaborators,
    previous_user_id: str | None = None,
) -> None:
    # Access decisions of the old and new assignee are known by exact key
    affected = {conversation.assigned_user_id, previous_user_id} - {None}
    await collaborators.cache.invalidate(
        [
            *keys.assignment_keys(conversation.id, conversation.workspace_id),
            *(keys.conversation_access(u, conversation.id) for u in sorted(affected)),
        ]
    )
    await collaborators.cache.bump_epoch(keys.conversation_scope(conversation.id))
    await publish_event(
        collaborators.publisher,
        workspace_topic(conversation.workspace_id),
        event_name,
        {
            "conversation_id": conversation.id,
            "workspace_id": conversation.workspace_id,
            "assigned_user_id": conversation.assigned_user_id,
            "status": conversation.status,
        },
    )


async def assign_conversation(
    conversation_id: str,
    user_id: str,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> Conversation:
    """Assign to an active member of the conversation's workspace.

    Raises:
        EntityNotFound: the conversation is out of scope, or the user is
            not an active workspace member.
    """
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    await _require_workspace_member(user_id, conversation.workspace_id, collaborators)

    updated = await collaborators.conversations.set_assignment(conversation_id, user_id, _utc_now())
    if updated is None:
        raise EntityNotFound("conversation", conversation_id)
    await _after_assignment_write(
        updated, "conversation.assigned", collaborators, conversation.assigned_user_id
    )
    logger.info("conversation_assigned", conversation_id=conversation_id, user_id=user_id)
    return updated


async def unassign_conversation(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> Conversation:
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    updated = await collaborators.conversations.set_assignment(conversation_id, None, None)
    if updated is None:
        raise EntityNotFound("conversation", conversation_id)
    await _after_assignment_write(
        updated, "conversation.unassigned", collaborators, conversation.assigned_user_id
    )
    logger.info(
        "conversation_unassigned",
        conversation_id=conversation_id,
        previous_user_id=conversation.assigned_user_id,
    )
    return updated


async def claim_conversation(
    conversation_id: str,
    user_id: str,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> Conversation:
    """Assign to ``user_id`` and move to ASSIGNED in one conditional write.

    Raises:
        IllegalTransition: ASSIGNED is not reachable from the current state.
        ConcurrentModification: the status changed after it was read.
    """
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    await _require_workspace_member(user_id, conversation.workspace_id, collaborators)

    from_state = conversation.status
    if not is_legal_transition(from_state, ConversationStatus.ASSIGNED):
        raise IllegalTransition(from_state, ConversationStatus.ASSIGNED)

    updated = await collaborators.conversations.claim(
        conversation_id, user_id, from_state, _utc_now()
    )
    if updated is None:
        logger.warning(
            "conversation_claim_conflict", conversation_id=conversation_id, expected_state=from_state
        )
        raise ConcurrentModification(conversation_id, from_state)

    await collaborators.cache.invalidate(
        keys.status_change_keys(conversation_id, updated.workspace_id)
    )
    await publish_event(
        collaborators.publisher,
        workspace_topic(updated.workspace_id),
        "conversation.status_changed",
        {
            "conversation_id": conversation_id,
            "workspace_id": updated.workspace_id,
            "from_state": from_state,
            "to_state": updated.status,
            "status_updated_at": updated.status_updated_at.isoformat(),
        },
    )
    await _after_assignment_write(
        updated, "conversation.assigned", collaborators, conversation.assigned_user_id
    )
    logger.info("conversation_claimed", conversation_id=conversation_id, user_id=user_id)
    return updated


async def is_conversation_assigned(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> bool:
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)

    async def load() -> bool:
        return conversation.assigned_user_id is not None

    return await collaborators.cache.get_or_load(keys.conversation_assigned(conversation_id), load)


async def get_assigned_user(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> UserSummary | None:
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)

    async def load() -> dict | None:
        if conversation.assigned_user_id is None:
            return None
        user = await collaborators.entities.get_user(conversation.assigned_user_id)
        return user.model_dump(mode="json") if user else None

    cached = await collaborators.cache.get_or_load(
        keys.conversation_assigned_user(conversation_id), load
    )
    return UserSummary.model_validate(cached) if cached else None


async def get_assignment_details(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> AssignmentDetails | None:
    """Uncached; None when the conversation is unassigned."""
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    if conversation.assigned_user_id is None or conversation.assigned_at is None:
        return None
    user = await collaborators.entities.get_user(conversation.assigned_user_id)
    return AssignmentDetails(user=user, assigned_at=conversation.assigned_at)
