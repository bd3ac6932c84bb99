"""Unit tests for scope merging, containment and tenant context resolution."""

from __future__ import annotations

import pytest
from factories import (
    ACCOUNT_ID,
    DEPT_ID,
    INVITED_ID,
    MEMBER_ID,
    OTHER_ACCOUNT_ID,
    OTHER_DEPT_ID,
    OTHER_OWNER_ID,
    OTHER_WORKSPACE_ID,
    OUTSIDER_ID,
    OWNER_ID,
    TEAM_ID,
    WORKSPACE_ID,
    WS_ADMIN_ID,
    World,
)

from supportdesk.exceptions import EntityNotFound, ScopeMismatch
from supportdesk.models.domain import Principal
from supportdesk.tenancy.containment import resolve_containment
from supportdesk.tenancy.context import DeclaredScope, TenantContext
from supportdesk.tenancy.resolver import resolve_tenant_context
from supportdesk.types import Level, PrincipalKind


def _user(user_id: str) -> Principal:
    return Principal(id=user_id, kind=PrincipalKind.USER, email=f"{user_id}@example.com")


def _owner(owner_id: str) -> Principal:
    return Principal(id=owner_id, kind=PrincipalKind.PLATFORM_OWNER, email="owner@example.com")


async def _resolve(world: World, principal: Principal, declared: DeclaredScope) -> TenantContext:
    return await resolve_tenant_context(
        principal, declared, entities=world.entities, memberships=world.memberships
    )


@pytest.mark.unit
class TestDeclaredScope:
    def test_deepest_level(self) -> None:
        assert DeclaredScope().deepest_level() is None
        assert DeclaredScope(account_id="a").deepest_level() == Level.ACCOUNT
        assert DeclaredScope(account_id="a", department_id="d").deepest_level() == Level.DEPARTMENT
        assert DeclaredScope(team_id="t").deepest_level() == Level.TEAM

    def test_is_empty(self) -> None:
        assert DeclaredScope().is_empty()
        assert not DeclaredScope(workspace_id="w").is_empty()

    def test_merge_earlier_sources_win(self) -> None:
        verified = DeclaredScope(account_id="acct-verified", workspace_id="ws-verified")
        path = DeclaredScope(workspace_id="ws-path")
        query = DeclaredScope(account_id="acct-query", department_id="dept-query")
        body = DeclaredScope(department_id="dept-body", team_id="team-body")

        merged = DeclaredScope.merge(verified, path, query, body)

        assert merged == DeclaredScope(
            account_id="acct-verified",
            workspace_id="ws-verified",
            department_id="dept-query",
            team_id="team-body",
        )

    def test_merge_skips_empty_strings(self) -> None:
        merged = DeclaredScope.merge(DeclaredScope(workspace_id=""), DeclaredScope(workspace_id="w"))
        assert merged.workspace_id == "w"


@pytest.mark.unit
class TestResolveContainment:
    async def test_walks_up_from_team(self, world: World) -> None:
        chain = await resolve_containment(world.entities, DeclaredScope(team_id=TEAM_ID))
        assert chain.team_id == TEAM_ID
        assert chain.department_id == DEPT_ID
        assert chain.workspace_id == WORKSPACE_ID
        assert chain.account_id == ACCOUNT_ID
        assert chain.owner_id == OWNER_ID
        assert chain.resolved_levels() == [
            Level.ACCOUNT,
            Level.WORKSPACE,
            Level.DEPARTMENT,
            Level.TEAM,
        ]

    async def test_empty_scope(self, world: World) -> None:
        chain = await resolve_containment(world.entities, DeclaredScope())
        assert chain.resolved_levels() == []

    async def test_unknown_id(self, world: World) -> None:
        with pytest.raises(EntityNotFound) as exc_info:
            await resolve_containment(world.entities, DeclaredScope(workspace_id="ws-missing"))
        assert exc_info.value.kind == "workspace"

    async def test_mismatched_account(self, world: World) -> None:
        declared = DeclaredScope(account_id=OTHER_ACCOUNT_ID, workspace_id=WORKSPACE_ID)
        with pytest.raises(ScopeMismatch) as exc_info:
            await resolve_containment(world.entities, declared)
        assert exc_info.value.level == "account"
        assert exc_info.value.actual_id == ACCOUNT_ID

    async def test_department_from_other_workspace(self, world: World) -> None:
        declared = DeclaredScope(workspace_id=WORKSPACE_ID, department_id=OTHER_DEPT_ID)
        with pytest.raises(ScopeMismatch):
            await resolve_containment(world.entities, declared)

    async def test_declared_parent_never_trusted(self, world: World) -> None:
        # Child-derived parent wins; an account the workspace is not in is a mismatch
        declared = DeclaredScope(account_id=ACCOUNT_ID, workspace_id=OTHER_WORKSPACE_ID)
        with pytest.raises(ScopeMismatch):
            await resolve_containment(world.entities, declared)


@pytest.mark.unit
class TestResolveTenantContext:
    async def test_empty_scope_gives_empty_context(self, world: World) -> None:
        context = await _resolve(world, _user(MEMBER_ID), DeclaredScope())
        assert context == TenantContext()

    async def test_user_roles_per_level(self, world: World) -> None:
        context = await _resolve(world, _user(MEMBER_ID), DeclaredScope(team_id=TEAM_ID))
        assert context.account_id == ACCOUNT_ID
        assert context.account_role is None
        assert context.workspace_role == "MEMBER"
        assert context.department_id == DEPT_ID
        assert context.department_role == "MEMBER"
        assert context.team_role == "MEMBER"

    async def test_workspace_admin(self, world: World) -> None:
        context = await _resolve(
            world, _user(WS_ADMIN_ID), DeclaredScope(workspace_id=WORKSPACE_ID)
        )
        assert context.workspace_role == "ADMIN"
        assert context.department_id is None

    async def test_missing_membership_leaves_role_unset(self, world: World) -> None:
        context = await _resolve(
            world, _user(OUTSIDER_ID), DeclaredScope(department_id=DEPT_ID)
        )
        assert context.workspace_id == WORKSPACE_ID
        assert context.workspace_role is None
        assert context.department_role is None

    async def test_invited_membership_is_not_active(self, world: World) -> None:
        context = await _resolve(
            world, _user(INVITED_ID), DeclaredScope(workspace_id=WORKSPACE_ID)
        )
        assert context.workspace_role is None

    async def test_platform_owner_gets_virtual_roles(self, world: World) -> None:
        context = await _resolve(world, _owner(OWNER_ID), DeclaredScope(team_id=TEAM_ID))
        assert context.account_role == "ADMIN"
        assert context.workspace_role == "ADMIN"
        assert context.department_role == "DEPARTMENT_MANAGER"
        assert context.team_role == "TEAM_LEAD"

    async def test_platform_owner_of_other_account_sees_not_found(self, world: World) -> None:
        with pytest.raises(EntityNotFound) as exc_info:
            await _resolve(
                world, _owner(OTHER_OWNER_ID), DeclaredScope(workspace_id=WORKSPACE_ID)
            )
        assert exc_info.value.kind == "account"

    async def test_scope_mismatch_propagates(self, world: World) -> None:
        declared = DeclaredScope(account_id=OTHER_ACCOUNT_ID, workspace_id=WORKSPACE_ID)
        with pytest.raises(ScopeMismatch):
            await _resolve(world, _user(WS_ADMIN_ID), declared)

    def test_as_declared_round_trip(self) -> None:
        context = TenantContext()
        context.set_level(Level.WORKSPACE, WORKSPACE_ID, "ADMIN")
        assert context.as_declared() == DeclaredScope(workspace_id=WORKSPACE_ID)
