"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from supportdesk.types import ConversationStatus, MembershipStatus


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


class PlatformOwner(SQLModel, table=True):
    __tablename__ = "platform_owners"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: str = ""
    created_at: datetime = Field(default_factory=_utc_now)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    email: str = Field(unique=True, index=True)
    first_name: str = ""
    last_name: str = ""
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Containment hierarchy (parent ids are immutable once created)
# ---------------------------------------------------------------------------


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    owner_id: str = Field(foreign_key="platform_owners.id", index=True)
    name: str
    created_at: datetime = Field(default_factory=_utc_now)


class Workspace(SQLModel, table=True):
    __tablename__ = "workspaces"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    account_id: str = Field(foreign_key="accounts.id", index=True)
    name: str
    created_at: datetime = Field(default_factory=_utc_now)


class Department(SQLModel, table=True):
    __tablename__ = "departments"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    workspace_id: str = Field(foreign_key="workspaces.id", index=True)
    name: str
    created_at: datetime = Field(default_factory=_utc_now)


class Team(SQLModel, table=True):
    __tablename__ = "teams"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    department_id: str = Field(foreign_key="departments.id", index=True)
    name: str
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Memberships (one table per level)
# ---------------------------------------------------------------------------


class MembershipFields(SQLModel):
    id: str = Field(default_factory=_new_uuid, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    role: str
    status: str = Field(default=MembershipStatus.ACTIVE.value)
    created_at: datetime = Field(default_factory=_utc_now)


class AccountMembership(MembershipFields, table=True):
    __tablename__ = "account_users"
    __table_args__ = (UniqueConstraint("user_id", "account_id"),)

    account_id: str = Field(foreign_key="accounts.id", index=True)


class WorkspaceMembership(MembershipFields, table=True):
    __tablename__ = "workspace_users"
    __table_args__ = (UniqueConstraint("user_id", "workspace_id"),)

    workspace_id: str = Field(foreign_key="workspaces.id", index=True)


class DepartmentMembership(MembershipFields, table=True):
    __tablename__ = "department_users"
    __table_args__ = (UniqueConstraint("user_id", "department_id"),)

    department_id: str = Field(foreign_key="departments.id", index=True)


class TeamMembership(MembershipFields, table=True):
    __tablename__ = "team_users"
    __table_args__ = (UniqueConstraint("user_id", "team_id"),)

    team_id: str = Field(foreign_key="teams.id", index=True)


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class Contact(SQLModel, table=True):
    __tablename__ = "contacts"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    workspace_id: str = Field(foreign_key="workspaces.id", index=True)
    department_id: str | None = Field(default=None, foreign_key="departments.id", index=True)
    contact_id: str | None = Field(default=None, foreign_key="contacts.id", index=True)
    subject: str | None = None
    # Stored as plain text so unexpected legacy values survive a read
    status: str = Field(default=ConversationStatus.TODO.value, index=True)
    status_updated_at: datetime = Field(default_factory=_utc_now)
    assigned_user_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    assigned_at: datetime | None = None
    last_message_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    conversation_id: str = Field(foreign_key="conversations.id", index=True)
    from_email: str
    from_name: str | None = None
    to_email: str | None = None
    subject: str | None = None
    body: str
    is_internal: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utc_now)
