"""Cached, chain-verified lookups and writes over department memberships.

List keys (managers, human support, all users) are deleted by the writers
here. Per-subject keys (``is_dept_manager`` and friends) are not; they may
lag a membership write by up to the cache TTL unless versioned keys are
enabled, in which case the department epoch bump retires them at once.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from supportdesk.cache import keys
from supportdesk.exceptions import AlreadyExists, EntityNotFound
from supportdesk.models.domain import DepartmentUser, Membership
from supportdesk.tenancy.containment import resolve_containment
from supportdesk.tenancy.context import Containment, DeclaredScope
from supportdesk.types import DepartmentRole, Level

if TYPE_CHECKING:
    from supportdesk.cache.authority import AuthorityCache
    from supportdesk.collaborators import Collaborators

logger = structlog.get_logger(__name__)


async def _verify_department(
    department_id: str, scope: DeclaredScope, collaborators: Collaborators
) -> Containment:
    declared = DeclaredScope(
        account_id=scope.account_id,
        workspace_id=scope.workspace_id,
        department_id=department_id,
    )
    return await resolve_containment(collaborators.entities, declared)


async def _cached_department_list(
    key: str,
    department_id: str,
    roles: list[str] | None,
    collaborators: Collaborators,
) -> list[DepartmentUser]:
    async def load() -> list[dict]:
        users = await collaborators.memberships.list_department_users(department_id, roles)
        return [u.model_dump(mode="json") for u in users]

    rows = await collaborators.cache.get_or_load(key, load)
    return [DepartmentUser.model_validate(row) for row in rows]


async def get_department_managers(
    department_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> list[DepartmentUser]:
    await _verify_department(department_id, scope, collaborators)
    return await _cached_department_list(
        keys.department_managers(department_id),
        department_id,
        [DepartmentRole.DEPARTMENT_MANAGER.value],
        collaborators,
    )


async def get_human_support_users(
    department_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> list[DepartmentUser]:
    await _verify_department(department_id, scope, collaborators)
    return await _cached_department_list(
        keys.department_human_support(department_id),
        department_id,
        [DepartmentRole.HUMAN_SUPPORT.value],
        collaborators,
    )


async def get_department_users(
    department_id: str,
    scope: DeclaredScope,
    role: DepartmentRole | None = None,
    *,
    collaborators: Collaborators,
) -> list[DepartmentUser]:
    await _verify_department(department_id, scope, collaborators)
    users = await _cached_department_list(
        keys.department_users(department_id), department_id, None, collaborators
    )
    if role is not None:
        users = [u for u in users if u.department_role == role]
    return users


async def get_user_department_role(
    user_id: str, department_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> str | None:
    """Return the user's active department role, or None if not a member."""
    await _verify_department(department_id, scope, collaborators)
    return await _cached_role(user_id, department_id, collaborators)


async def _cached_role(user_id: str, department_id: str, collaborators: Collaborators) -> str | None:
    cache = collaborators.cache
    key = await cache.scoped_key(
        keys.user_dept_role(user_id, department_id), keys.department_scope(department_id)
    )

    async def load() -> str | None:
        membership = await collaborators.memberships.find_active(
            user_id, department_id, Level.DEPARTMENT
        )
        return membership.role if membership else None

    return await cache.get_or_load(key, load)


async def _cached_flag(
    base_key: str,
    user_id: str,
    department_id: str,
    accepted: tuple[str, ...] | None,
    collaborators: Collaborators,
) -> bool:
    cache = collaborators.cache
    key = await cache.scoped_key(base_key, keys.department_scope(department_id))

    async def load() -> bool:
        membership = await collaborators.memberships.find_active(
            user_id, department_id, Level.DEPARTMENT
        )
        if membership is None:
            return False
        return accepted is None or membership.role in accepted

    return await cache.get_or_load(key, load)


async def is_department_manager(
    user_id: str, department_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> bool:
    await _verify_department(department_id, scope, collaborators)
    return await _cached_flag(
        keys.is_dept_manager(user_id, department_id),
        user_id,
        department_id,
        (DepartmentRole.DEPARTMENT_MANAGER.value,),
        collaborators,
    )


async def is_human_support(
    user_id: str, department_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> bool:
    await _verify_department(department_id, scope, collaborators)
    return await _cached_flag(
        keys.is_human_support(user_id, department_id),
        user_id,
        department_id,
        (DepartmentRole.HUMAN_SUPPORT.value,),
        collaborators,
    )


async def is_department_member(
    user_id: str, department_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> bool:
    """Any active department role counts."""
    await _verify_department(department_id, scope, collaborators)
    return await _cached_flag(
        keys.is_dept_member(user_id, department_id), user_id, department_id, None, collaborators
    )


async def invalidate_department_cache(department_id: str, cache: AuthorityCache) -> None:
    """Delete the enumerable department keys and retire versioned per-subject keys."""
    await cache.invalidate(keys.department_keys(department_id))
    await cache.bump_epoch(keys.department_scope(department_id))


async def add_department_member(
    department_id: str,
    user_id: str,
    role: DepartmentRole,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> Membership:
    """Add an active workspace member to a department.

    Raises:
        EntityNotFound: the user does not exist or is not an active member
            of the department's workspace.
        AlreadyExists: the user already belongs to the department.
    """
    chain = await _verify_department(department_id, scope, collaborators)
    memberships = collaborators.memberships

    user = await collaborators.entities.get_user(user_id)
    workspace_membership = (
        await memberships.find_active(user_id, chain.workspace_id, Level.WORKSPACE)
        if user
        else None
    )
    if workspace_membership is None:
        raise EntityNotFound("user", user_id)
    if await memberships.find_active(user_id, department_id, Level.DEPARTMENT):
        raise AlreadyExists("department_membership", user_id)

    membership = await memberships.upsert(user_id, department_id, Level.DEPARTMENT, role.value)
    await invalidate_department_cache(department_id, collaborators.cache)
    logger.info("department_member_added", department_id=department_id, user_id=user_id, role=role)
    return membership


async def update_department_member_role(
    department_id: str,
    user_id: str,
    role: DepartmentRole,
    scope: DeclaredScope,
    *,
    collaborators: Collaborators,
) -> Membership:
    await _verify_department(department_id, scope, collaborators)
    memberships = collaborators.memberships
    existing = await memberships.find_active(user_id, department_id, Level.DEPARTMENT)
    if existing is None:
        raise EntityNotFound("department_membership", user_id)

    membership = await memberships.upsert(user_id, department_id, Level.DEPARTMENT, role.value)
    await invalidate_department_cache(department_id, collaborators.cache)
    logger.info(
        "department_member_role_updated",
        department_id=department_id,
        user_id=user_id,
        from_role=existing.role,
        to_role=role,
    )
    return membership


async def remove_department_member(
    department_id: str, user_id: str, scope: DeclaredScope, *, collaborators: Collaborators
) -> None:
    await _verify_department(department_id, scope, collaborators)
    removed = await collaborators.memberships.remove(user_id, department_id, Level.DEPARTMENT)
    if not removed:
        raise EntityNotFound("department_membership", user_id)
    await invalidate_department_cache(department_id, collaborators.cache)
    logger.info("department_member_removed", department_id=department_id, user_id=user_id)
