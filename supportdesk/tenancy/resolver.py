"""Build a TenantContext for an authenticated principal."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from supportdesk.exceptions import EntityNotFound
from supportdesk.tenancy.containment import resolve_containment
from supportdesk.tenancy.context import DeclaredScope, TenantContext
from supportdesk.types import AccountRole, DepartmentRole, Level, TeamRole, WorkspaceRole

if TYPE_CHECKING:
    from supportdesk.models.domain import Principal
    from supportdesk.storage.repositories.entities import EntityStore
    from supportdesk.storage.repositories.memberships import MembershipStore

logger = structlog.get_logger(__name__)

# Virtual roles a platform owner holds throughout an account it owns
_OWNER_ROLES: dict[Level, str] = {
    Level.ACCOUNT: AccountRole.ADMIN.value,
    Level.WORKSPACE: WorkspaceRole.ADMIN.value,
    Level.DEPARTMENT: DepartmentRole.DEPARTMENT_MANAGER.value,
    Level.TEAM: TeamRole.TEAM_LEAD.value,
}


async def resolve_tenant_context(
    principal: Principal,
    declared: DeclaredScope,
    *,
    entities: EntityStore,
    memberships: MembershipStore,
) -> TenantContext:
    """Resolve declared scope ids into a verified context with roles.

    A missing membership at some level leaves that role unset; deciding
    whether that is enough is the authorizer's job.

    Raises:
        EntityNotFound: a declared id does not exist, or a platform owner
            declared an account it does not own.
        ScopeMismatch: a declared parent id disagrees with the stored one.
    """
    context = TenantContext()
    if declared.is_empty():
        return context

    chain = await resolve_containment(entities, declared)

    if principal.is_platform_owner:
        if chain.owner_id != principal.id:
            logger.warning(
                "platform_owner_account_not_owned",
                principal_id=principal.id,
                account_id=chain.account_id,
            )
            raise EntityNotFound(Level.ACCOUNT.value, chain.account_id or "")
        for level in chain.resolved_levels():
            context.set_level(level, chain.get(level), _OWNER_ROLES[level])
        return context

    for level in chain.resolved_levels():
        entity_id = chain.get(level)
        membership = await memberships.find_active(principal.id, entity_id, level)
        context.set_level(level, entity_id, membership.role if membership else None)

    logger.debug(
        "tenant_context_resolved",
        principal_id=principal.id,
        account_role=context.account_role,
        workspace_role=context.workspace_role,
        department_role=context.department_role,
        team_role=context.team_role,
    )
    return context
