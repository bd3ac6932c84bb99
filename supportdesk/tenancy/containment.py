"""Containment chain resolution.

Every component that accepts a scope re-derives the chain here: parent ids
are read from the child entity record and declared parents are only
compared against them, never trusted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from supportdesk.exceptions import EntityNotFound, ScopeMismatch
from supportdesk.tenancy.context import Containment, DeclaredScope
from supportdesk.types import Level

if TYPE_CHECKING:
    from supportdesk.storage.repositories.entities import EntityStore

logger = structlog.get_logger(__name__)

_PARENT_LEVEL = {
    Level.TEAM: Level.DEPARTMENT,
    Level.DEPARTMENT: Level.WORKSPACE,
    Level.WORKSPACE: Level.ACCOUNT,
}


async def resolve_containment(entities: EntityStore, declared: DeclaredScope) -> Containment:
    """Walk upward from the deepest declared id to the account.

    Raises:
        EntityNotFound: an id on the chain does not exist.
        ScopeMismatch: a declared parent id disagrees with the stored one.
    """
    level = declared.deepest_level()
    if level is None:
        return Containment()

    ids: dict[Level, str] = {}
    entity_id = declared.get(level)
    while True:
        parent_id = await entities.get_parent_id(entity_id, level)
        if parent_id is None:
            raise EntityNotFound(level.value, entity_id)
        ids[level] = entity_id

        parent_level = _PARENT_LEVEL.get(level)
        if parent_level is None:
            # Reached the account; its parent is the owning platform owner
            break
        declared_parent = declared.get(parent_level)
        if declared_parent and declared_parent != parent_id:
            logger.warning(
                "scope_mismatch",
                level=parent_level.value,
                declared_id=declared_parent,
                child_level=level.value,
                child_id=entity_id,
            )
            raise ScopeMismatch(parent_level.value, declared_parent, parent_id)
        level, entity_id = parent_level, parent_id

    return Containment(
        account_id=ids.get(Level.ACCOUNT),
        workspace_id=ids.get(Level.WORKSPACE),
        department_id=ids.get(Level.DEPARTMENT),
        team_id=ids.get(Level.TEAM),
        owner_id=parent_id,
    )
