"""Entity store: containment edges and principal lookup.

CRUD for accounts, workspaces, departments and teams belongs to another
service; this store only reads the edges the tenancy layer re-derives on
every request. The in-memory variant exposes ``add_*`` helpers for dev
seeding and tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from supportdesk.models.database import (
    Account,
    Department,
    PlatformOwner,
    Team,
    User,
    Workspace,
)
from supportdesk.models.domain import Principal, UserSummary
from supportdesk.types import Level, PrincipalKind

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

# Child table and the column holding its parent id. An account's parent is
# its owning platform owner.
_PARENT_COLUMNS = {
    Level.ACCOUNT: (Account, "owner_id"),
    Level.WORKSPACE: (Workspace, "account_id"),
    Level.DEPARTMENT: (Department, "workspace_id"),
    Level.TEAM: (Team, "department_id"),
}


def _user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_active=user.is_active,
    )


class EntityStore(Protocol):
    async def get_parent_id(self, entity_id: str, level: Level) -> str | None:
        """Return the parent id stored on the entity, or None if it does not exist."""
        ...

    async def find_principal(self, subject_id: str) -> Principal | None: ...

    async def get_user(self, user_id: str) -> UserSummary | None: ...


class DatabaseEntityRepository:
    """PostgreSQL-backed entity store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_parent_id(self, entity_id: str, level: Level) -> str | None:
        model, column = _PARENT_COLUMNS[level]
        async with AsyncSession(self._engine) as session:
            stmt = select(getattr(model, column)).where(col(model.id) == entity_id)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def find_principal(self, subject_id: str) -> Principal | None:
        async with AsyncSession(self._engine) as session:
            owner_result = await session.execute(
                select(PlatformOwner).where(col(PlatformOwner.id) == subject_id)
            )
            owner = owner_result.scalars().first()
            if owner:
                return Principal(id=owner.id, kind=PrincipalKind.PLATFORM_OWNER, email=owner.email)

            user_result = await session.execute(
                select(User).where(col(User.id) == subject_id, col(User.is_active).is_(True))
            )
            user = user_result.scalars().first()
            if user:
                return Principal(id=user.id, kind=PrincipalKind.USER, email=user.email)
        return None

    async def get_user(self, user_id: str) -> UserSummary | None:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(select(User).where(col(User.id) == user_id))
            user = result.scalars().first()
            return _user_summary(user) if user else None


class InMemoryEntityStore:
    """In-memory entity store for dev/testing without a database."""

    def __init__(self) -> None:
        self._owners: dict[str, PlatformOwner] = {}
        self._users: dict[str, User] = {}
        # level -> entity id -> parent id
        self._parents: dict[Level, dict[str, str]] = {level: {} for level in Level}

    def add_platform_owner(self, email: str, owner_id: str | None = None) -> PlatformOwner:
        owner = PlatformOwner(email=email)
        if owner_id is not None:
            owner.id = owner_id
        self._owners[owner.id] = owner
        return owner

    def add_user(self, email: str, user_id: str | None = None, is_active: bool = True) -> User:
        user = User(email=email, is_active=is_active)
        if user_id is not None:
            user.id = user_id
        self._users[user.id] = user
        return user

    def add_account(self, owner_id: str, account_id: str) -> str:
        self._parents[Level.ACCOUNT][account_id] = owner_id
        return account_id

    def add_workspace(self, account_id: str, workspace_id: str) -> str:
        self._parents[Level.WORKSPACE][workspace_id] = account_id
        return workspace_id

    def add_department(self, workspace_id: str, department_id: str) -> str:
        self._parents[Level.DEPARTMENT][department_id] = workspace_id
        return department_id

    def add_team(self, department_id: str, team_id: str) -> str:
        self._parents[Level.TEAM][team_id] = department_id
        return team_id

    def departments_in_workspace(self, workspace_id: str) -> set[str]:
        return {d for d, ws in self._parents[Level.DEPARTMENT].items() if ws == workspace_id}

    async def get_parent_id(self, entity_id: str, level: Level) -> str | None:
        return self._parents[level].get(entity_id)

    async def find_principal(self, subject_id: str) -> Principal | None:
        owner = self._owners.get(subject_id)
        if owner:
            return Principal(id=owner.id, kind=PrincipalKind.PLATFORM_OWNER, email=owner.email)
        user = self._users.get(subject_id)
        if user and user.is_active:
            return Principal(id=user.id, kind=PrincipalKind.USER, email=user.email)
        return None

    async def get_user(self, user_id: str) -> UserSummary | None:
        user = self._users.get(user_id)
        return _user_summary(user) if user else None
