"""Inbound message ingestion and per-user inbox views."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from supportdesk.cache import keys
from supportdesk.conversations.state_machine import load_conversation, normalize_for_inbound
from supportdesk.events import publish_event, workspace_topic
from supportdesk.exceptions import EntityNotFound
from supportdesk.models.database import Contact, Conversation, Message, _utc_now
from supportdesk.models.domain import ConversationSummary
from supportdesk.tenancy.containment import resolve_containment
from supportdesk.tenancy.context import DeclaredScope
from supportdesk.types import ConversationStatus, DepartmentRole, InboxKind, Level

if TYPE_CHECKING:
    from supportdesk.collaborators import Collaborators
    from supportdesk.models.domain import InboundMessage

logger = structlog.get_logger(__name__)

_ESCALATION_ROLES = (DepartmentRole.HUMAN_SUPPORT.value, DepartmentRole.DEPARTMENT_MANAGER.value)


@dataclass
class IngestResult:
    message: Message
    conversation: Conversation
    contact: Contact


async def ingest_inbound_message(
    workspace_id: str,
    inbound: InboundMessage,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> IngestResult:
    """Record an external message against the contact's conversation.

    The conversation is reopened through the state machine; if that is
    rejected the message is still stored.
    """
    scope = DeclaredScope(account_id=scope.account_id, workspace_id=workspace_id)
    chain = await resolve_containment(collaborators.entities, scope)
    repo = collaborators.conversations

    if inbound.department_id:
        await resolve_containment(
            collaborators.entities,
            DeclaredScope(
                account_id=chain.account_id,
                workspace_id=workspace_id,
                department_id=inbound.department_id,
            ),
        )

    contact = await repo.find_or_create_contact(inbound.from_email, inbound.from_name)
    conversation = await repo.find_latest_for_contact(workspace_id, contact.id)
    if conversation is None:
        conversation = await repo.create(
            Conversation(
                workspace_id=workspace_id,
                contact_id=contact.id,
                subject=inbound.subject,
                department_id=inbound.department_id,
            )
        )
        logger.info("conversation_created", conversation_id=conversation.id)

    message = await repo.add_message(
        Message(
            conversation_id=conversation.id,
            from_email=inbound.from_email,
            from_name=inbound.from_name,
            to_email=inbound.to_email,
            subject=inbound.subject,
            body=inbound.body,
            is_internal=False,
        )
    )

    await normalize_for_inbound(conversation.id, scope, collaborators=collaborators)
    await repo.touch_last_message(conversation.id, _utc_now())
    conversation = await load_conversation(conversation.id, scope, collaborators=collaborators)

    # A new conversation joins the TODO list; status lists embed last_message_at
    await collaborators.cache.invalidate(keys.status_change_keys(conversation.id, workspace_id))
    await publish_event(
        collaborators.publisher,
        workspace_topic(workspace_id),
        "message.created",
        {
            "message_id": message.id,
            "conversation_id": conversation.id,
            "contact_id": contact.id,
            "status": conversation.status,
        },
    )
    logger.info(
        "inbound_message_ingested",
        workspace_id=workspace_id,
        conversation_id=conversation.id,
        status=conversation.status,
    )
    return IngestResult(message=message, conversation=conversation, contact=contact)


async def get_inbox(
    kind: InboxKind,
    user_id: str,
    workspace_id: str,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> list[ConversationSummary]:
    """Conversations for one inbox tab, newest status change first.

    Raises:
        EntityNotFound: the user is not an active member of the workspace.
    """
    await resolve_containment(
        collaborators.entities,
        DeclaredScope(account_id=scope.account_id, workspace_id=workspace_id),
    )
    memberships = collaborators.memberships
    if await memberships.find_active(user_id, workspace_id, Level.WORKSPACE) is None:
        raise EntityNotFound("workspace", workspace_id)

    repo = collaborators.conversations
    if kind == InboxKind.ASSIGNED_TO_ME:
        rows = await repo.list_for_inbox(
            workspace_id, exclude_status=ConversationStatus.CLOSED, assigned_user_id=user_id
        )
    else:
        roles = _ESCALATION_ROLES if kind == InboxKind.ESCALATED else None
        department_ids = await memberships.list_user_department_ids(user_id, workspace_id, roles)
        if not department_ids:
            return []
        if kind == InboxKind.UNASSIGNED:
            rows = await repo.list_for_inbox(
                workspace_id,
                exclude_status=ConversationStatus.CLOSED,
                unassigned=True,
                department_ids=department_ids,
            )
        elif kind == InboxKind.ESCALATED:
            rows = await repo.list_for_inbox(
                workspace_id, status=ConversationStatus.ESCALATED, department_ids=department_ids
            )
        else:
            rows = await repo.list_for_inbox(
                workspace_id, status=ConversationStatus.CLOSED, department_ids=department_ids
            )

    logger.debug("inbox_listed", kind=kind.value, workspace_id=workspace_id, count=len(rows))
    return [ConversationSummary.model_validate(r) for r in rows]
