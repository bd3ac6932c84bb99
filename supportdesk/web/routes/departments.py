"""Department membership API routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field

from supportdesk.collaborators import Collaborators
from supportdesk.models.domain import DepartmentUser, Membership
from supportdesk.tenancy import department_authority
from supportdesk.types import DepartmentRole, Level, Role
from supportdesk.web.dependencies import (
    RequestScope,
    ScopeDescriptor,
    get_collaborators,
    require_roles,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/departments/{department_id}/members", tags=["departments"])

_DEPARTMENT = ScopeDescriptor(path={"department_id": Level.DEPARTMENT})

_member = require_roles(Role.DEPARTMENT_MEMBER, scope=_DEPARTMENT)
_manager = require_roles(Role.WORKSPACE_ADMIN, Role.DEPARTMENT_MANAGER, scope=_DEPARTMENT)


class AddMemberRequest(BaseModel):
    user_id: str = Field(min_length=1)
    role: DepartmentRole


class UpdateRoleRequest(BaseModel):
    role: DepartmentRole


@router.get("", response_model=list[DepartmentUser])
async def list_members(
    department_id: str,
    role: DepartmentRole | None = None,
    auth: RequestScope = Depends(_member),
    collaborators: Collaborators = Depends(get_collaborators),
) -> list[DepartmentUser]:
    return await department_authority.get_department_users(
        department_id, auth.declared, role, collaborators=collaborators
    )


@router.post("", status_code=201, response_model=Membership)
async def add_member(
    department_id: str,
    body: AddMemberRequest,
    auth: RequestScope = Depends(_manager),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Membership:
    return await department_authority.add_department_member(
        department_id, body.user_id, body.role, auth.declared, collaborators=collaborators
    )


@router.patch("/{user_id}", response_model=Membership)
async def update_member_role(
    department_id: str,
    user_id: str,
    body: UpdateRoleRequest,
    auth: RequestScope = Depends(_manager),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Membership:
    return await department_authority.update_department_member_role(
        department_id, user_id, body.role, auth.declared, collaborators=collaborators
    )


@router.delete("/{user_id}")
async def remove_member(
    department_id: str,
    user_id: str,
    auth: RequestScope = Depends(_manager),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Response:
    await department_authority.remove_department_member(
        department_id, user_id, auth.declared, collaborators=collaborators
    )
    return Response(status_code=204)
