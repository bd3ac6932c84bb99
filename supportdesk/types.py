"""Enums shared across the tenancy and conversation layers."""

from enum import StrEnum


class PrincipalKind(StrEnum):
    PLATFORM_OWNER = "platform_owner"
    USER = "user"


class Level(StrEnum):
    """Containment levels, top to bottom."""

    ACCOUNT = "account"
    WORKSPACE = "workspace"
    DEPARTMENT = "department"
    TEAM = "team"


class MembershipStatus(StrEnum):
    ACTIVE = "ACTIVE"
    INVITED = "INVITED"


class AccountRole(StrEnum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class WorkspaceRole(StrEnum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class DepartmentRole(StrEnum):
    DEPARTMENT_MANAGER = "DEPARTMENT_MANAGER"
    HUMAN_SUPPORT = "HUMAN_SUPPORT"
    MEMBER = "MEMBER"


class TeamRole(StrEnum):
    TEAM_LEAD = "TEAM_LEAD"
    MEMBER = "MEMBER"


class Role(StrEnum):
    """Roles an operation can require (OR semantics within a set)."""

    PLATFORM_OWNER = "PLATFORM_OWNER"
    ACCOUNT_ADMIN = "ACCOUNT_ADMIN"
    ACCOUNT_MEMBER = "ACCOUNT_MEMBER"
    WORKSPACE_ADMIN = "WORKSPACE_ADMIN"
    WORKSPACE_MEMBER = "WORKSPACE_MEMBER"
    DEPARTMENT_MANAGER = "DEPARTMENT_MANAGER"
    HUMAN_SUPPORT = "HUMAN_SUPPORT"
    DEPARTMENT_MEMBER = "DEPARTMENT_MEMBER"
    TEAM_LEAD = "TEAM_LEAD"
    TEAM_MEMBER = "TEAM_MEMBER"


DEPARTMENT_ROLES = frozenset({Role.DEPARTMENT_MANAGER, Role.HUMAN_SUPPORT, Role.DEPARTMENT_MEMBER})
MEMBER_ROLES = frozenset(
    {Role.ACCOUNT_MEMBER, Role.WORKSPACE_MEMBER, Role.DEPARTMENT_MEMBER, Role.TEAM_MEMBER}
)


class ConversationStatus(StrEnum):
    TODO = "TODO"
    ASSIGNED = "ASSIGNED"
    ESCALATED = "ESCALATED"
    CLOSED = "CLOSED"


class InboxKind(StrEnum):
    UNASSIGNED = "unassigned"
    ASSIGNED_TO_ME = "assigned-to-me"
    ESCALATED = "escalated"
    CLOSED = "closed"


class VisibilityType(StrEnum):
    USER_ASSIGNED = "USER_ASSIGNED"
    DEPARTMENT = "DEPARTMENT"
