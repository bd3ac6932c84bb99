"""Membership store: one table per containment level."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from supportdesk.models.database import (
    AccountMembership,
    Department,
    DepartmentMembership,
    MembershipFields,
    TeamMembership,
    User,
    WorkspaceMembership,
    _utc_now,
)
from supportdesk.models.domain import DepartmentUser, Membership
from supportdesk.types import Level, MembershipStatus

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from supportdesk.storage.repositories.entities import InMemoryEntityStore

logger = structlog.get_logger(__name__)

_TABLES: dict[Level, tuple[type[MembershipFields], str]] = {
    Level.ACCOUNT: (AccountMembership, "account_id"),
    Level.WORKSPACE: (WorkspaceMembership, "workspace_id"),
    Level.DEPARTMENT: (DepartmentMembership, "department_id"),
    Level.TEAM: (TeamMembership, "team_id"),
}


def _to_membership(row: MembershipFields, level: Level) -> Membership:
    _, column = _TABLES[level]
    return Membership(
        subject_id=row.user_id,
        entity_id=getattr(row, column),
        level=level,
        role=row.role,
        status=MembershipStatus(row.status),
    )


class MembershipStore(Protocol):
    async def find_active(self, subject_id: str, entity_id: str, level: Level) -> Membership | None:
        """Return the ACTIVE membership row, or None. INVITED rows never match."""
        ...

    async def list_department_users(
        self, department_id: str, roles: Collection[str] | None = None
    ) -> list[DepartmentUser]: ...

    async def list_user_department_ids(
        self, user_id: str, workspace_id: str, roles: Collection[str] | None = None
    ) -> list[str]: ...

    async def upsert(
        self,
        subject_id: str,
        entity_id: str,
        level: Level,
        role: str,
        status: MembershipStatus = MembershipStatus.ACTIVE,
    ) -> Membership: ...

    async def remove(self, subject_id: str, entity_id: str, level: Level) -> bool: ...


class DatabaseMembershipRepository:
    """PostgreSQL-backed membership store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def _get_row(
        self, session: AsyncSession, subject_id: str, entity_id: str, level: Level
    ) -> MembershipFields | None:
        model, column = _TABLES[level]
        result = await session.execute(
            select(model).where(
                col(model.user_id) == subject_id,
                col(getattr(model, column)) == entity_id,
            )
        )
        return result.scalars().first()

    async def find_active(self, subject_id: str, entity_id: str, level: Level) -> Membership | None:
        async with AsyncSession(self._engine) as session:
            row = await self._get_row(session, subject_id, entity_id, level)
            if row is None or row.status != MembershipStatus.ACTIVE:
                return None
            return _to_membership(row, level)

    async def list_department_users(
        self, department_id: str, roles: Collection[str] | None = None
    ) -> list[DepartmentUser]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(DepartmentMembership, User)
                .join(User, col(User.id) == col(DepartmentMembership.user_id))
                .where(
                    col(DepartmentMembership.department_id) == department_id,
                    col(DepartmentMembership.status) == MembershipStatus.ACTIVE.value,
                )
                .order_by(col(DepartmentMembership.created_at))
            )
            if roles is not None:
                stmt = stmt.where(col(DepartmentMembership.role).in_(list(roles)))
            result = await session.execute(stmt)
            return [
                DepartmentUser(
                    id=user.id,
                    email=user.email,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    is_active=user.is_active,
                    department_role=membership.role,
                    joined_at=membership.created_at,
                )
                for membership, user in result.all()
            ]

    async def list_user_department_ids(
        self, user_id: str, workspace_id: str, roles: Collection[str] | None = None
    ) -> list[str]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(DepartmentMembership.department_id)
                .join(Department, col(Department.id) == col(DepartmentMembership.department_id))
                .where(
                    col(DepartmentMembership.user_id) == user_id,
                    col(DepartmentMembership.status) == MembershipStatus.ACTIVE.value,
                    col(Department.workspace_id) == workspace_id,
                )
            )
            if roles is not None:
                stmt = stmt.where(col(DepartmentMembership.role).in_(list(roles)))
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def upsert(
        self,
        subject_id: str,
        entity_id: str,
        level: Level,
        role: str,
        status: MembershipStatus = MembershipStatus.ACTIVE,
    ) -> Membership:
        model, column = _TABLES[level]
        async with AsyncSession(self._engine) as session:
            row = await self._get_row(session, subject_id, entity_id, level)
            if row is None:
                row = model(user_id=subject_id, role=role, status=status.value, **{column: entity_id})
            else:
                row.role = role
                row.status = status.value
            session.add(row)
            await session.commit()
            await session.refresh(row)
            logger.info("membership_upserted", level=level.value, entity_id=entity_id, role=role)
            return _to_membership(row, level)

    async def remove(self, subject_id: str, entity_id: str, level: Level) -> bool:
        async with AsyncSession(self._engine) as session:
            row = await self._get_row(session, subject_id, entity_id, level)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            logger.info("membership_removed", level=level.value, entity_id=entity_id)
            return True


class InMemoryMembershipStore:
    """In-memory membership store for dev/testing without a database.

    Reads user and department records from the paired entity store so that
    joined listings behave like the database variant.
    """

    def __init__(self, entities: InMemoryEntityStore) -> None:
        self._entities = entities
        # (level, subject_id, entity_id) -> (role, status, created_at)
        self._rows: dict[tuple[Level, str, str], tuple[str, MembershipStatus, datetime]] = {}

    def add(
        self,
        subject_id: str,
        entity_id: str,
        level: Level,
        role: str,
        status: MembershipStatus = MembershipStatus.ACTIVE,
    ) -> None:
        """Seed a membership row synchronously."""
        self._rows[(level, subject_id, entity_id)] = (role, status, _utc_now())

    async def find_active(self, subject_id: str, entity_id: str, level: Level) -> Membership | None:
        row = self._rows.get((level, subject_id, entity_id))
        if row is None or row[1] != MembershipStatus.ACTIVE:
            return None
        return Membership(
            subject_id=subject_id, entity_id=entity_id, level=level, role=row[0], status=row[1]
        )

    async def list_department_users(
        self, department_id: str, roles: Collection[str] | None = None
    ) -> list[DepartmentUser]:
        users: list[DepartmentUser] = []
        for (level, subject_id, entity_id), (role, status, created_at) in self._rows.items():
            if level != Level.DEPARTMENT or entity_id != department_id:
                continue
            if status != MembershipStatus.ACTIVE or (roles is not None and role not in roles):
                continue
            summary = await self._entities.get_user(subject_id)
            if summary is None:
                continue
            users.append(
                DepartmentUser(**summary.model_dump(), department_role=role, joined_at=created_at)
            )
        return users

    async def list_user_department_ids(
        self, user_id: str, workspace_id: str, roles: Collection[str] | None = None
    ) -> list[str]:
        in_workspace = self._entities.departments_in_workspace(workspace_id)
        return [
            entity_id
            for (level, subject_id, entity_id), (role, status, _) in self._rows.items()
            if level == Level.DEPARTMENT
            and subject_id == user_id
            and entity_id in in_workspace
            and status == MembershipStatus.ACTIVE
            and (roles is None or role in roles)
        ]

    async def upsert(
        self,
        subject_id: str,
        entity_id: str,
        level: Level,
        role: str,
        status: MembershipStatus = MembershipStatus.ACTIVE,
    ) -> Membership:
        existing = self._rows.get((level, subject_id, entity_id))
        created_at = existing[2] if existing else _utc_now()
        self._rows[(level, subject_id, entity_id)] = (role, status, created_at)
        logger.info("membership_upserted", level=level.value, entity_id=entity_id, role=role)
        return Membership(
            subject_id=subject_id, entity_id=entity_id, level=level, role=role, status=status
        )

    async def remove(self, subject_id: str, entity_id: str, level: Level) -> bool:
        removed = self._rows.pop((level, subject_id, entity_id), None) is not None
        if removed:
            logger.info("membership_removed", level=level.value, entity_id=entity_id)
        return removed
