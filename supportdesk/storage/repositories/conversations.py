"""Conversation, contact and message persistence.

Status writes are conditional: ``update_status`` and ``claim`` only apply
when the stored status still equals the caller's expected value and return
``None`` when another writer got there first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog
from sqlalchemy import update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from supportdesk.models.database import Contact, Conversation, Message
from supportdesk.types import ConversationStatus

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class ConversationRepository(Protocol):
    async def get(self, conversation_id: str) -> Conversation | None: ...

    async def update_status(
        self, conversation_id: str, expected: str, new: str, updated_at: datetime
    ) -> Conversation | None: ...

    async def set_assignment(
        self, conversation_id: str, user_id: str | None, assigned_at: datetime | None
    ) -> Conversation | None: ...

    async def claim(
        self, conversation_id: str, user_id: str, expected: str, at: datetime
    ) -> Conversation | None: ...

    async def list_by_status(
        self, workspace_id: str, status: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Conversation]: ...

    async def list_for_inbox(
        self,
        workspace_id: str,
        *,
        status: str | None = None,
        exclude_status: str | None = None,
        assigned_user_id: str | None = None,
        unassigned: bool = False,
        department_ids: Collection[str] | None = None,
    ) -> list[Conversation]: ...

    async def find_or_create_contact(self, email: str, name: str | None = None) -> Contact: ...

    async def find_latest_for_contact(
        self, workspace_id: str, contact_id: str
    ) -> Conversation | None: ...

    async def create(self, conversation: Conversation) -> Conversation: ...

    async def add_message(self, message: Message) -> Message: ...

    async def touch_last_message(self, conversation_id: str, at: datetime) -> None: ...


class DatabaseConversationRepository:
    """PostgreSQL-backed conversation repository."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, conversation_id: str) -> Conversation | None:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                select(Conversation).where(col(Conversation.id) == conversation_id)
            )
            return result.scalars().first()

    async def update_status(
        self, conversation_id: str, expected: str, new: str, updated_at: datetime
    ) -> Conversation | None:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                update(Conversation)
                .where(
                    col(Conversation.id) == conversation_id,
                    col(Conversation.status) == expected,
                )
                .values(status=new, status_updated_at=updated_at)
            )
            await session.commit()
        if result.rowcount == 0:
            return None
        return await self.get(conversation_id)

    async def set_assignment(
        self, conversation_id: str, user_id: str | None, assigned_at: datetime | None
    ) -> Conversation | None:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                update(Conversation)
                .where(col(Conversation.id) == conversation_id)
                .values(assigned_user_id=user_id, assigned_at=assigned_at)
            )
            await session.commit()
        if result.rowcount == 0:
            return None
        return await self.get(conversation_id)

    async def claim(
        self, conversation_id: str, user_id: str, expected: str, at: datetime
    ) -> Conversation | None:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                update(Conversation)
                .where(
                    col(Conversation.id) == conversation_id,
                    col(Conversation.status) == expected,
                )
                .values(
                    status=ConversationStatus.ASSIGNED.value,
                    status_updated_at=at,
                    assigned_user_id=user_id,
                    assigned_at=at,
                )
            )
            await session.commit()
        if result.rowcount == 0:
            return None
        return await self.get(conversation_id)

    async def list_by_status(
        self, workspace_id: str, status: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Conversation]:
        async with AsyncSession(self._engine) as session:
            stmt = select(Conversation).where(col(Conversation.workspace_id) == workspace_id)
            if status is not None:
                stmt = stmt.where(col(Conversation.status) == status)
            stmt = (
                stmt.order_by(col(Conversation.status_updated_at).desc())
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_for_inbox(
        self,
        workspace_id: str,
        *,
        status: str | None = None,
        exclude_status: str | None = None,
        assigned_user_id: str | None = None,
        unassigned: bool = False,
        department_ids: Collection[str] | None = None,
    ) -> list[Conversation]:
        async with AsyncSession(self._engine) as session:
            stmt = select(Conversation).where(col(Conversation.workspace_id) == workspace_id)
            if status is not None:
                stmt = stmt.where(col(Conversation.status) == status)
            if exclude_status is not None:
                stmt = stmt.where(col(Conversation.status) != exclude_status)
            if assigned_user_id is not None:
                stmt = stmt.where(col(Conversation.assigned_user_id) == assigned_user_id)
            if unassigned:
                stmt = stmt.where(col(Conversation.assigned_user_id).is_(None))
            if department_ids is not None:
                stmt = stmt.where(col(Conversation.department_id).in_(list(department_ids)))
            stmt = stmt.order_by(col(Conversation.status_updated_at).desc())
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_or_create_contact(self, email: str, name: str | None = None) -> Contact:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(select(Contact).where(col(Contact.email) == email))
            contact = result.scalars().first()
            if contact:
                return contact
            contact = Contact(email=email, name=name)
            session.add(contact)
            await session.commit()
            await session.refresh(contact)
            logger.info("contact_created", contact_id=contact.id)
            return contact

    async def find_latest_for_contact(
        self, workspace_id: str, contact_id: str
    ) -> Conversation | None:
        async with AsyncSession(self._engine) as session:
            result = await session.execute(
                select(Conversation)
                .where(
                    col(Conversation.workspace_id) == workspace_id,
                    col(Conversation.contact_id) == contact_id,
                )
                .order_by(col(Conversation.created_at).desc())
            )
            return result.scalars().first()

    async def create(self, conversation: Conversation) -> Conversation:
        async with AsyncSession(self._engine) as session:
            session.add(conversation)
            await session.commit()
            await session.refresh(conversation)
            return conversation

    async def add_message(self, message: Message) -> Message:
        async with AsyncSession(self._engine) as session:
            session.add(message)
            await session.commit()
            await session.refresh(message)
            return message

    async def touch_last_message(self, conversation_id: str, at: datetime) -> None:
        async with AsyncSession(self._engine) as session:
            await session.execute(
                update(Conversation)
                .where(col(Conversation.id) == conversation_id)
                .values(last_message_at=at)
            )
            await session.commit()


def _snapshot(conversation: Conversation) -> Conversation:
    """Detached copy, so callers never mutate stored state."""
    return Conversation(**conversation.model_dump())


class InMemoryConversationRepository:
    """In-memory conversation repository for dev/testing without a database.

    Every read returns a snapshot, matching the database variant where two
    readers see the row as it was at read time.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._contacts: dict[str, Contact] = {}
        self._messages: dict[str, list[Message]] = {}

    def add(self, conversation: Conversation) -> Conversation:
        """Seed a conversation synchronously."""
        self._conversations[conversation.id] = _snapshot(conversation)
        return conversation

    def messages_for(self, conversation_id: str) -> list[Message]:
        return list(self._messages.get(conversation_id, []))

    async def get(self, conversation_id: str) -> Conversation | None:
        stored = self._conversations.get(conversation_id)
        return _snapshot(stored) if stored else None

    async def update_status(
        self, conversation_id: str, expected: str, new: str, updated_at: datetime
    ) -> Conversation | None:
        stored = self._conversations.get(conversation_id)
        if stored is None or stored.status != expected:
            return None
        stored.status = new
        stored.status_updated_at = updated_at
        return _snapshot(stored)

    async def set_assignment(
        self, conversation_id: str, user_id: str | None, assigned_at: datetime | None
    ) -> Conversation | None:
        stored = self._conversations.get(conversation_id)
        if stored is None:
            return None
        stored.assigned_user_id = user_id
        stored.assigned_at = assigned_at
        return _snapshot(stored)

    async def claim(
        self, conversation_id: str, user_id: str, expected: str, at: datetime
    ) -> Conversation | None:
        stored = self._conversations.get(conversation_id)
        if stored is None or stored.status != expected:
            return None
        stored.status = ConversationStatus.ASSIGNED.value
        stored.status_updated_at = at
        stored.assigned_user_id = user_id
        stored.assigned_at = at
        return _snapshot(stored)

    async def list_by_status(
        self, workspace_id: str, status: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Conversation]:
        matches = [
            c
            for c in self._conversations.values()
            if c.workspace_id == workspace_id and (status is None or c.status == status)
        ]
        matches.sort(key=lambda c: c.status_updated_at, reverse=True)
        return [_snapshot(c) for c in matches[offset : offset + limit]]

    async def list_for_inbox(
        self,
        workspace_id: str,
        *,
        status: str | None = None,
        exclude_status: str | None = None,
        assigned_user_id: str | None = None,
        unassigned: bool = False,
        department_ids: Collection[str] | None = None,
    ) -> list[Conversation]:
        matches = []
        for c in self._conversations.values():
            if c.workspace_id != workspace_id:
                continue
            if status is not None and c.status != status:
                continue
            if exclude_status is not None and c.status == exclude_status:
                continue
            if assigned_user_id is not None and c.assigned_user_id != assigned_user_id:
                continue
            if unassigned and c.assigned_user_id is not None:
                continue
            if department_ids is not None and c.department_id not in department_ids:
                continue
            matches.append(c)
        matches.sort(key=lambda c: c.status_updated_at, reverse=True)
        return [_snapshot(c) for c in matches]

    async def find_or_create_contact(self, email: str, name: str | None = None) -> Contact:
        for contact in self._contacts.values():
            if contact.email == email:
                return contact
        contact = Contact(email=email, name=name)
        self._contacts[contact.id] = contact
        logger.info("contact_created", contact_id=contact.id)
        return contact

    async def find_latest_for_contact(
        self, workspace_id: str, contact_id: str
    ) -> Conversation | None:
        matches = [
            c
            for c in self._conversations.values()
            if c.workspace_id == workspace_id and c.contact_id == contact_id
        ]
        if not matches:
            return None
        return _snapshot(max(matches, key=lambda c: c.created_at))

    async def create(self, conversation: Conversation) -> Conversation:
        self._conversations[conversation.id] = _snapshot(conversation)
        return conversation

    async def add_message(self, message: Message) -> Message:
        self._messages.setdefault(message.conversation_id, []).append(message)
        return message

    async def touch_last_message(self, conversation_id: str, at: datetime) -> None:
        stored = self._conversations.get(conversation_id)
        if stored is not None:
            stored.last_message_at = at
