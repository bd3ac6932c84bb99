"""Role-based authorization over a resolved TenantContext.

Rules are evaluated in a fixed order and the first match wins. A required
role set has OR semantics: holding any one of them is enough.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from supportdesk.exceptions import InsufficientPermissions
from supportdesk.types import DEPARTMENT_ROLES, MEMBER_ROLES, DepartmentRole, Role, TeamRole

if TYPE_CHECKING:
    from supportdesk.models.domain import Principal
    from supportdesk.tenancy.context import TenantContext

logger = structlog.get_logger(__name__)

_ADMIN = "ADMIN"


@dataclass(frozen=True, slots=True)
class AuthDecision:
    allowed: bool
    reason: str
    rule: str


def _allow(rule: str, reason: str) -> AuthDecision:
    return AuthDecision(allowed=True, reason=reason, rule=rule)


def authorize(
    principal: Principal, context: TenantContext, required: Iterable[Role | str]
) -> AuthDecision:
    """Decide whether ``principal`` holds any of the ``required`` roles.

    An empty requirement set is denied.
    """
    req = frozenset(Role(r) for r in required)
    if not req:
        return AuthDecision(allowed=False, reason="no roles declared", rule="deny")

    # Membership-only gates need an owned account in the resolved context
    if principal.is_platform_owner and (
        Role.ACCOUNT_ADMIN in req
        or Role.PLATFORM_OWNER in req
        or (req <= MEMBER_ROLES and context.account_id is not None)
    ):
        return _allow("platform_owner", "platform owner bypass")

    if context.account_role == _ADMIN and Role.ACCOUNT_ADMIN in req:
        return _allow("account_admin", "account admin")
    if context.account_role and Role.ACCOUNT_MEMBER in req:
        return _allow("account_member", "account member")

    if context.workspace_role == _ADMIN and Role.WORKSPACE_ADMIN in req:
        return _allow("workspace_admin", "workspace admin")
    if context.workspace_role and Role.WORKSPACE_MEMBER in req:
        return _allow("workspace_member", "workspace member")

    if req & DEPARTMENT_ROLES and _ADMIN in (context.workspace_role, context.account_role):
        return _allow("admin_elevation", "admin satisfies department role")

    dept_role = context.department_role
    if dept_role:
        if Role.DEPARTMENT_MANAGER in req and dept_role == DepartmentRole.DEPARTMENT_MANAGER:
            return _allow("department_manager", "department manager")
        if Role.HUMAN_SUPPORT in req and dept_role in (
            DepartmentRole.HUMAN_SUPPORT,
            DepartmentRole.DEPARTMENT_MANAGER,
        ):
            return _allow("human_support", f"department role {dept_role}")
        if Role.DEPARTMENT_MEMBER in req:
            return _allow("department_member", f"department role {dept_role}")

    team_role = context.team_role
    if team_role:
        if Role.TEAM_LEAD in req and team_role == TeamRole.TEAM_LEAD:
            return _allow("team_lead", "team lead")
        if Role.TEAM_MEMBER in req:
            return _allow("team_member", f"team role {team_role}")

    return AuthDecision(allowed=False, reason="no matching role", rule="deny")


def ensure_authorized(
    principal: Principal, context: TenantContext, required: Iterable[Role | str]
) -> AuthDecision:
    """Like ``authorize`` but raises ``InsufficientPermissions`` on deny."""
    required = list(required)
    decision = authorize(principal, context, required)
    if not decision.allowed:
        logger.warning(
            "authorization_denied",
            principal_id=principal.id,
            required=sorted(str(r) for r in required),
            reason=decision.reason,
        )
        raise InsufficientPermissions(decision.reason)
    logger.debug("authorization_granted", principal_id=principal.id, rule=decision.rule)
    return decision
