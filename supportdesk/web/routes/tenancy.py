"""Resolved tenant context for the caller."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from supportdesk.types import MEMBER_ROLES
from supportdesk.web.dependencies import RequestScope, require_roles

router = APIRouter(prefix="/api", tags=["tenancy"])


class TenantContextResponse(BaseModel):
    principal_id: str
    principal_kind: str
    account_id: str | None = None
    account_role: str | None = None
    workspace_id: str | None = None
    workspace_role: str | None = None
    department_id: str | None = None
    department_role: str | None = None
    team_id: str | None = None
    team_role: str | None = None


@router.get("/tenant-context", response_model=TenantContextResponse)
async def get_tenant_context(
    auth: RequestScope = Depends(require_roles(*sorted(MEMBER_ROLES))),
) -> TenantContextResponse:
    """Scope ids come from ``accountId``/``workspaceId``/``departmentId``/``teamId`` query params."""
    ctx = auth.context
    return TenantContextResponse(
        principal_id=auth.principal.id,
        principal_kind=auth.principal.kind,
        account_id=ctx.account_id,
        account_role=ctx.account_role,
        workspace_id=ctx.workspace_id,
        workspace_role=ctx.workspace_role,
        department_id=ctx.department_id,
        department_role=ctx.department_role,
        team_id=ctx.team_id,
        team_role=ctx.team_role,
    )
