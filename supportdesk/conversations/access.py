"""Who may see a conversation.

A conversation is visible to its assigned user, otherwise to any member of
its routing department. ``conversation_access`` entries are per subject and
are not deleted when department membership changes; they lag by up to the
cache TTL unless versioned keys are on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from supportdesk.cache import keys
from supportdesk.conversations.assignment import get_assigned_user
from supportdesk.conversations.state_machine import load_conversation
from supportdesk.exceptions import EntityNotFound, ScopeMismatch
from supportdesk.models.domain import UserSummary, VisibilityScope
from supportdesk.tenancy import department_authority
from supportdesk.tenancy.context import DeclaredScope
from supportdesk.types import VisibilityType

if TYPE_CHECKING:
    from supportdesk.collaborators import Collaborators

logger = structlog.get_logger(__name__)


async def can_user_view_conversation(
    user_id: str,
    conversation_id: str,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> bool:
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    department_id = conversation.department_id

    epoch_scopes = [keys.conversation_scope(conversation_id)]
    if department_id:
        epoch_scopes.append(keys.department_scope(department_id))
    cache = collaborators.cache
    key = await cache.scoped_key(keys.conversation_access(user_id, conversation_id), *epoch_scopes)

    async def load() -> bool:
        if conversation.assigned_user_id == user_id:
            return True
        if not department_id:
            return False
        try:
            return await department_authority.is_department_member(
                user_id,
                department_id,
                DeclaredScope(account_id=scope.account_id, workspace_id=conversation.workspace_id),
                collaborators=collaborators,
            )
        except (EntityNotFound, ScopeMismatch) as e:
            logger.warning(
                "conversation_department_check_failed",
                conversation_id=conversation_id,
                department_id=department_id,
                error=str(e),
            )
            return False

    return await cache.get_or_load(key, load)


async def get_conversation_visibility_scope(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> VisibilityScope:
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)

    async def load() -> dict:
        visibility = VisibilityScope(
            department_id=conversation.department_id,
            assigned_user_id=conversation.assigned_user_id,
            visibility_type=(
                VisibilityType.USER_ASSIGNED
                if conversation.assigned_user_id
                else VisibilityType.DEPARTMENT
            ),
        )
        return visibility.model_dump(mode="json")

    cached = await collaborators.cache.get_or_load(
        keys.conversation_visibility(conversation_id), load
    )
    return VisibilityScope.model_validate(cached)


async def get_conversation_viewers(
    conversation_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> list[UserSummary]:
    """The assigned user, or the department's managers and human support staff."""
    conversation = await load_conversation(conversation_id, scope, collaborators=collaborators)
    scope = DeclaredScope(account_id=scope.account_id, workspace_id=conversation.workspace_id)

    async def load() -> list[dict]:
        if conversation.assigned_user_id:
            user = await get_assigned_user(conversation_id, scope, collaborators=collaborators)
            return [user.model_dump(mode="json")] if user else []
        if not conversation.department_id:
            return []
        try:
            managers = await department_authority.get_department_managers(
                conversation.department_id, scope, collaborators=collaborators
            )
            support = await department_authority.get_human_support_users(
                conversation.department_id, scope, collaborators=collaborators
            )
        except (EntityNotFound, ScopeMismatch) as e:
            logger.warning(
                "conversation_viewers_lookup_failed", conversation_id=conversation_id, error=str(e)
            )
            return []
        seen: dict[str, dict] = {}
        for user in [*managers, *support]:
            if user.id not in seen:
                seen[user.id] = UserSummary.model_validate(user.model_dump()).model_dump(mode="json")
        return list(seen.values())

    rows = await collaborators.cache.get_or_load(keys.conversation_viewers(conversation_id), load)
    return [UserSummary.model_validate(row) for row in rows]


async def invalidate_user_conversation_access(
    user_id: str, conversation_id: str, *, collaborators: Collaborators
) -> None:
    """Drop one subject's cached access decision (unversioned key only)."""
    await collaborators.cache.invalidate([keys.conversation_access(user_id, conversation_id)])
