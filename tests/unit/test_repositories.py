"""Database repositories against an in-memory SQLite engine."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from supportdesk.models.database import (
    Account,
    Conversation,
    Department,
    Message,
    PlatformOwner,
    Team,
    User,
    Workspace,
    _utc_now,
)
from supportdesk.storage.repositories.conversations import DatabaseConversationRepository
from supportdesk.storage.repositories.entities import DatabaseEntityRepository
from supportdesk.storage.repositories.memberships import DatabaseMembershipRepository
from supportdesk.types import ConversationStatus, Level, MembershipStatus, PrincipalKind

S = ConversationStatus


async def _seed(engine: AsyncEngine, *rows: SQLModel) -> None:
    async with AsyncSession(engine) as session:
        for row in rows:
            session.add(row)
        await session.commit()


@pytest.fixture()
async def hierarchy(async_engine: AsyncEngine) -> AsyncEngine:
    await _seed(
        async_engine,
        PlatformOwner(id="owner-1", email="owner@example.com"),
        User(id="u1", email="u1@example.com", first_name="Uma"),
        User(id="u2", email="u2@example.com"),
        User(id="u-off", email="off@example.com", is_active=False),
        Account(id="acct-1", owner_id="owner-1", name="Acme"),
        Workspace(id="ws-1", account_id="acct-1", name="Support"),
        Workspace(id="ws-2", account_id="acct-1", name="Sales"),
        Department(id="dept-1", workspace_id="ws-1", name="Billing"),
        Department(id="dept-2", workspace_id="ws-2", name="Leads"),
        Team(id="team-1", department_id="dept-1", name="Refunds"),
    )
    return async_engine


@pytest.mark.unit
class TestDatabaseEntityRepository:
    async def test_parent_ids(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseEntityRepository(hierarchy)
        assert await repo.get_parent_id("acct-1", Level.ACCOUNT) == "owner-1"
        assert await repo.get_parent_id("ws-1", Level.WORKSPACE) == "acct-1"
        assert await repo.get_parent_id("dept-1", Level.DEPARTMENT) == "ws-1"
        assert await repo.get_parent_id("team-1", Level.TEAM) == "dept-1"
        assert await repo.get_parent_id("missing", Level.WORKSPACE) is None

    async def test_find_principal(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseEntityRepository(hierarchy)
        owner = await repo.find_principal("owner-1")
        user = await repo.find_principal("u1")
        assert owner is not None
        assert owner.kind == PrincipalKind.PLATFORM_OWNER
        assert user is not None
        assert user.kind == PrincipalKind.USER
        assert await repo.find_principal("u-off") is None
        assert await repo.find_principal("nobody") is None

    async def test_get_user(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseEntityRepository(hierarchy)
        user = await repo.get_user("u1")
        assert user is not None
        assert user.first_name == "Uma"
        assert await repo.get_user("nobody") is None


@pytest.mark.unit
class TestDatabaseMembershipRepository:
    async def test_upsert_and_find(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseMembershipRepository(hierarchy)
        created = await repo.upsert("u1", "ws-1", Level.WORKSPACE, "MEMBER")
        assert created.status == MembershipStatus.ACTIVE

        updated = await repo.upsert("u1", "ws-1", Level.WORKSPACE, "ADMIN")
        found = await repo.find_active("u1", "ws-1", Level.WORKSPACE)

        assert updated.role == "ADMIN"
        assert found is not None
        assert found.role == "ADMIN"
        assert found.entity_id == "ws-1"

    async def test_invited_is_not_active(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseMembershipRepository(hierarchy)
        await repo.upsert("u1", "acct-1", Level.ACCOUNT, "MEMBER", MembershipStatus.INVITED)
        assert await repo.find_active("u1", "acct-1", Level.ACCOUNT) is None

    async def test_department_listing(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseMembershipRepository(hierarchy)
        await repo.upsert("u1", "dept-1", Level.DEPARTMENT, "DEPARTMENT_MANAGER")
        await repo.upsert("u2", "dept-1", Level.DEPARTMENT, "HUMAN_SUPPORT")
        await repo.upsert("u2", "dept-2", Level.DEPARTMENT, "MEMBER")

        everyone = await repo.list_department_users("dept-1")
        managers = await repo.list_department_users("dept-1", ["DEPARTMENT_MANAGER"])

        assert {u.id for u in everyone} == {"u1", "u2"}
        assert [(u.id, u.department_role) for u in managers] == [("u1", "DEPARTMENT_MANAGER")]
        assert managers[0].joined_at is not None

    async def test_user_department_ids_scoped_to_workspace(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseMembershipRepository(hierarchy)
        await repo.upsert("u2", "dept-1", Level.DEPARTMENT, "HUMAN_SUPPORT")
        await repo.upsert("u2", "dept-2", Level.DEPARTMENT, "MEMBER")

        assert await repo.list_user_department_ids("u2", "ws-1") == ["dept-1"]
        assert await repo.list_user_department_ids("u2", "ws-2", ["HUMAN_SUPPORT"]) == []

    async def test_remove(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseMembershipRepository(hierarchy)
        await repo.upsert("u1", "team-1", Level.TEAM, "TEAM_LEAD")
        assert await repo.remove("u1", "team-1", Level.TEAM) is True
        assert await repo.remove("u1", "team-1", Level.TEAM) is False
        assert await repo.find_active("u1", "team-1", Level.TEAM) is None


@pytest.mark.unit
class TestDatabaseConversationRepository:
    async def test_conditional_status_update(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseConversationRepository(hierarchy)
        conversation = await repo.create(Conversation(workspace_id="ws-1", status=S.ASSIGNED))
        now = _utc_now()

        won = await repo.update_status(conversation.id, S.ASSIGNED, S.CLOSED, now)
        lost = await repo.update_status(conversation.id, S.ASSIGNED, S.CLOSED, now)

        assert won is not None
        assert won.status == S.CLOSED
        assert lost is None

    async def test_claim(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseConversationRepository(hierarchy)
        conversation = await repo.create(Conversation(workspace_id="ws-1"))

        claimed = await repo.claim(conversation.id, "u1", S.TODO, _utc_now())
        again = await repo.claim(conversation.id, "u2", S.TODO, _utc_now())

        assert claimed is not None
        assert claimed.status == S.ASSIGNED
        assert claimed.assigned_user_id == "u1"
        assert again is None

    async def test_naive_utc_timestamps_round_trip(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseConversationRepository(hierarchy)
        conversation = await repo.create(Conversation(workspace_id="ws-1"))
        now = _utc_now()
        assert now.tzinfo is None

        await repo.set_assignment(conversation.id, "u1", now)
        stored = await repo.get(conversation.id)

        assert stored is not None
        assert stored.assigned_at == now
        assert stored.status_updated_at.tzinfo is None

    async def test_set_assignment(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseConversationRepository(hierarchy)
        conversation = await repo.create(Conversation(workspace_id="ws-1"))

        assigned = await repo.set_assignment(conversation.id, "u1", _utc_now())
        cleared = await repo.set_assignment(conversation.id, None, None)

        assert assigned is not None
        assert assigned.assigned_user_id == "u1"
        assert cleared is not None
        assert cleared.assigned_user_id is None
        assert await repo.set_assignment("missing", "u1", _utc_now()) is None

    async def test_list_by_status_orders_and_pages(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseConversationRepository(hierarchy)
        base = _utc_now()
        for i in range(3):
            await repo.create(
                Conversation(
                    id=f"c{i}",
                    workspace_id="ws-1",
                    status_updated_at=base + timedelta(minutes=i),
                )
            )
        await repo.create(Conversation(workspace_id="ws-1", status=S.CLOSED))
        await repo.create(Conversation(workspace_id="ws-2"))

        todo = await repo.list_by_status("ws-1", S.TODO)
        page = await repo.list_by_status("ws-1", S.TODO, limit=1, offset=1)

        assert [c.id for c in todo] == ["c2", "c1", "c0"]
        assert [c.id for c in page] == ["c1"]
        assert len(await repo.list_by_status("ws-1")) == 4

    async def test_list_for_inbox_filters(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseConversationRepository(hierarchy)
        await repo.create(Conversation(id="a", workspace_id="ws-1", department_id="dept-1"))
        await repo.create(
            Conversation(
                id="b",
                workspace_id="ws-1",
                department_id="dept-1",
                status=S.ASSIGNED,
                assigned_user_id="u1",
            )
        )
        await repo.create(
            Conversation(id="c", workspace_id="ws-1", department_id="dept-1", status=S.CLOSED)
        )
        await repo.create(Conversation(id="d", workspace_id="ws-1"))

        unassigned = await repo.list_for_inbox(
            "ws-1", exclude_status=S.CLOSED, unassigned=True, department_ids=["dept-1"]
        )
        mine = await repo.list_for_inbox("ws-1", assigned_user_id="u1")
        closed = await repo.list_for_inbox("ws-1", status=S.CLOSED, department_ids=["dept-1"])

        assert [c.id for c in unassigned] == ["a"]
        assert [c.id for c in mine] == ["b"]
        assert [c.id for c in closed] == ["c"]

    async def test_contacts_and_messages(self, hierarchy: AsyncEngine) -> None:
        repo = DatabaseConversationRepository(hierarchy)
        contact = await repo.find_or_create_contact("casey@example.net", "Casey")
        same = await repo.find_or_create_contact("casey@example.net")
        assert same.id == contact.id

        assert await repo.find_latest_for_contact("ws-1", contact.id) is None
        conversation = await repo.create(Conversation(workspace_id="ws-1", contact_id=contact.id))
        latest = await repo.find_latest_for_contact("ws-1", contact.id)
        assert latest is not None
        assert latest.id == conversation.id

        message = await repo.add_message(
            Message(conversation_id=conversation.id, from_email=contact.email, body="hi")
        )
        assert message.id
        now = _utc_now()
        await repo.touch_last_message(conversation.id, now)
        stored = await repo.get(conversation.id)
        assert stored is not None
        assert stored.last_message_at == now
