"""Inter-module data contracts (not persisted directly)."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from supportdesk.types import Level, MembershipStatus, PrincipalKind, VisibilityType


class Principal(BaseModel):
    """The authenticated caller."""

    id: str
    kind: PrincipalKind
    email: str

    @property
    def is_platform_owner(self) -> bool:
        return self.kind == PrincipalKind.PLATFORM_OWNER


class Membership(BaseModel):
    subject_id: str
    entity_id: str
    level: Level
    role: str
    status: MembershipStatus


class UserSummary(BaseModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True


class DepartmentUser(UserSummary):
    department_role: str
    joined_at: datetime | None = None


class ConversationState(BaseModel):
    status: str
    status_updated_at: datetime


class AssignmentDetails(BaseModel):
    user: UserSummary | None
    assigned_at: datetime


class VisibilityScope(BaseModel):
    department_id: str | None
    assigned_user_id: str | None
    visibility_type: VisibilityType


class InboundMessage(BaseModel):
    """An externally originated message (email, chat widget) for a workspace."""

    from_email: str
    from_name: str | None = None
    to_email: str | None = None
    subject: str | None = None
    body: str
    department_id: str | None = None  # routing hint for new conversations


class ConversationSummary(BaseModel):
    """Read view of a conversation, safe to cache as JSON."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    department_id: str | None = None
    contact_id: str | None = None
    subject: str | None = None
    status: str
    status_updated_at: datetime
    assigned_user_id: str | None = None
    assigned_at: datetime | None = None
    last_message_at: datetime | None = None
    created_at: datetime
