"""FastAPI dependency injection: collaborators, principal and role gates."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any

import structlog
from fastapi import Depends, Request

from supportdesk.collaborators import Collaborators, create_collaborators
from supportdesk.exceptions import InvalidToken, ScopeMismatch
from supportdesk.models.domain import Principal
from supportdesk.tenancy.authorizer import ensure_authorized
from supportdesk.tenancy.context import DeclaredScope, TenantContext
from supportdesk.tenancy.resolver import resolve_tenant_context
from supportdesk.types import Level, Role
from supportdesk.web.auth.tokens import authenticate

logger = structlog.get_logger(__name__)

# Query string and JSON body field names for each level
_SCOPE_PARAMS: dict[Level, str] = {
    Level.ACCOUNT: "accountId",
    Level.WORKSPACE: "workspaceId",
    Level.DEPARTMENT: "departmentId",
    Level.TEAM: "teamId",
}

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@lru_cache
def get_collaborators() -> Collaborators:
    """Shared stores for the process; overridden in tests."""
    return create_collaborators()


async def get_principal(
    request: Request,
    collaborators: Collaborators = Depends(get_collaborators),
) -> Principal:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        raise InvalidToken("Missing Bearer token")
    return await authenticate(auth_header[7:], collaborators.entities)


@dataclass(frozen=True, slots=True)
class ScopeDescriptor:
    """Which path parameters name which containment level for a route.

    ``conversation`` names the path parameter holding a conversation id; the
    department level is then taken from the stored conversation.
    """

    path: Mapping[str, Level] = field(default_factory=dict)
    conversation: str | None = None


@dataclass(frozen=True, slots=True)
class RequestScope:
    """What a role gate hands to the route: who is calling and where."""

    principal: Principal
    context: TenantContext

    @property
    def declared(self) -> DeclaredScope:
        return self.context.as_declared()


def _scope_from_mapping(values: Mapping[str, Any]) -> DeclaredScope:
    ids: dict[str, str | None] = {}
    for level, name in _SCOPE_PARAMS.items():
        value = values.get(name)
        ids[f"{level.value}_id"] = value if isinstance(value, str) and value else None
    return DeclaredScope(**ids)


async def _body_scope(request: Request) -> DeclaredScope:
    if request.method not in _BODY_METHODS:
        return DeclaredScope()
    if not request.headers.get("content-type", "").startswith("application/json"):
        return DeclaredScope()
    try:
        body = await request.json()
    except ValueError:
        return DeclaredScope()
    return _scope_from_mapping(body) if isinstance(body, dict) else DeclaredScope()


async def _pin_conversation_department(
    declared: DeclaredScope, conversation_id: str | None, collaborators: Collaborators
) -> DeclaredScope:
    """Replace the department level with the conversation's own department.

    A missing conversation, or one outside the declared workspace, is left
    for the route to report as not found.

    Raises:
        ScopeMismatch: a declared department differs from the conversation's.
    """
    if not conversation_id:
        return declared
    conversation = await collaborators.conversations.get(conversation_id)
    if conversation is None or conversation.workspace_id != declared.workspace_id:
        return declared
    if declared.department_id and declared.department_id != conversation.department_id:
        logger.warning(
            "declared_department_mismatch",
            conversation_id=conversation_id,
            declared_department_id=declared.department_id,
        )
        raise ScopeMismatch(
            "department", declared.department_id, conversation.department_id or ""
        )
    return replace(declared, department_id=conversation.department_id)


async def declared_scope_for(
    request: Request, descriptor: ScopeDescriptor, collaborators: Collaborators
) -> DeclaredScope:
    """Merge scope ids: verified context > path > query > body."""
    sources: list[DeclaredScope] = []
    verified: TenantContext | None = getattr(request.state, "tenant_context", None)
    if verified is not None:
        sources.append(verified.as_declared())

    path_ids = {
        f"{level.value}_id": request.path_params.get(param)
        for param, level in descriptor.path.items()
    }
    sources.append(DeclaredScope(**path_ids))
    sources.append(_scope_from_mapping(request.query_params))
    sources.append(await _body_scope(request))
    declared = DeclaredScope.merge(*sources)
    if descriptor.conversation is None:
        return declared
    return await _pin_conversation_department(
        declared, request.path_params.get(descriptor.conversation), collaborators
    )


def require_roles(
    *roles: Role, scope: ScopeDescriptor | None = None
) -> Callable[..., Awaitable[RequestScope]]:
    """Build a dependency that resolves the tenant context and checks ``roles``.

    Holding any one of ``roles`` is enough.
    """
    if not roles:
        msg = "require_roles needs at least one role"
        raise ValueError(msg)
    descriptor = scope or ScopeDescriptor()

    async def dependency(
        request: Request,
        principal: Principal = Depends(get_principal),
        collaborators: Collaborators = Depends(get_collaborators),
    ) -> RequestScope:
        declared = await declared_scope_for(request, descriptor, collaborators)
        context = await resolve_tenant_context(
            principal,
            declared,
            entities=collaborators.entities,
            memberships=collaborators.memberships,
        )
        ensure_authorized(principal, context, roles)
        request.state.tenant_context = context
        return RequestScope(principal=principal, context=context)

    return dependency
