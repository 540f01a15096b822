"""Tests for the SQLite agent and message stores."""

from datetime import timedelta

import pytest
import pytest_asyncio

from craizy.errors import StoreError
from craizy.models import Agent, AgentStatus, Message, MessageType, utcnow
from craizy.store import Database, SqliteAgentStore, SqliteMessageStore


@pytest_asyncio.fixture
async def agents(sqlite_db):
    return SqliteAgentStore(sqlite_db)


@pytest_asyncio.fixture
async def messages(sqlite_db):
    return SqliteMessageStore(sqlite_db)


def _make_agent(
    agent_id: str = "craizy-demo-claude-task1",
    status: AgentStatus = AgentStatus.ACTIVE,
    **kwargs,
) -> Agent:
    kwargs.setdefault("project", "demo")
    kwargs.setdefault("agent_type", "claude")
    kwargs.setdefault("name", "task1")
    kwargs.setdefault("work_dir", "/repo/.craizy/worktrees/" + agent_id)
    return Agent(id=agent_id, status=status, **kwargs)


class TestDatabase:
    async def test_conn_requires_initialize(self, tmp_path):
        db = Database(str(tmp_path / "x.db"))
        with pytest.raises(RuntimeError):
            db.conn

    async def test_initialize_is_idempotent(self, tmp_path):
        path = str(tmp_path / "x.db")
        for _ in range(2):
            db = Database(path)
            await db.initialize()
            await db.close()


class TestAgentStore:
    async def test_round_trip(self, agents):
        agent = _make_agent(command="echo hi", branch="craizy-demo-claude-task1", base_branch="main")
        await agents.add(agent)

        fetched = await agents.get(agent.id)
        assert fetched == agent

    async def test_optional_fields_round_trip_as_none(self, agents):
        agent = _make_agent(work_dir="/repo")
        await agents.add(agent)

        fetched = await agents.get(agent.id)
        assert fetched.branch is None
        assert fetched.base_branch is None
        assert fetched.terminated_at is None
        assert fetched.command == ""

    async def test_duplicate_add_raises(self, agents):
        await agents.add(_make_agent())
        with pytest.raises(StoreError):
            await agents.add(_make_agent())

    async def test_get_nonexistent(self, agents):
        assert await agents.get("nope") is None

    async def test_exists_and_remove(self, agents):
        await agents.add(_make_agent())
        assert await agents.exists("craizy-demo-claude-task1")

        await agents.remove("craizy-demo-claude-task1")
        assert not await agents.exists("craizy-demo-claude-task1")

    async def test_remove_nonexistent_is_fine(self, agents):
        await agents.remove("nope")

    async def test_list(self, agents):
        await agents.add(_make_agent("a"))
        await agents.add(_make_agent("b", status=AgentStatus.TERMINATED))

        listed = await agents.list()
        assert {a.id for a in listed} == {"a", "b"}

    async def test_update_status_sets_and_clears_terminated_at(self, agents):
        await agents.add(_make_agent())

        await agents.update_status("craizy-demo-claude-task1", AgentStatus.TERMINATED)
        fetched = await agents.get("craizy-demo-claude-task1")
        assert fetched.status == AgentStatus.TERMINATED
        assert fetched.terminated_at is not None

        await agents.update_status("craizy-demo-claude-task1", AgentStatus.ACTIVE)
        fetched = await agents.get("craizy-demo-claude-task1")
        assert fetched.status == AgentStatus.ACTIVE
        assert fetched.terminated_at is None

    async def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "persist.db")
        db = Database(path)
        await db.initialize()
        await SqliteAgentStore(db).add(_make_agent())
        await db.close()

        db = Database(path)
        await db.initialize()
        try:
            assert await SqliteAgentStore(db).exists("craizy-demo-claude-task1")
        finally:
            await db.close()


class TestMessageStore:
    async def test_save_and_get(self, messages):
        message = Message(
            sender="craizy-demo-claude-a",
            recipient="human",
            type=MessageType.QUESTION,
            content="Which branch?",
            related_work="task1",
        )
        await messages.save(message)

        fetched = await messages.get(message.id)
        assert fetched == message

    async def test_get_unknown(self, messages):
        assert await messages.get("nope") is None

    async def test_unread_and_mark_read(self, messages):
        now = utcnow()
        first = Message(sender="a", recipient="human", type=MessageType.INFO, content="1", created_at=now)
        second = Message(
            sender="b",
            recipient="human",
            type=MessageType.INFO,
            content="2",
            created_at=now + timedelta(seconds=1),
        )
        other = Message(sender="a", recipient="b", type=MessageType.INFO, content="3")
        for m in (first, second, other):
            await messages.save(m)

        assert await messages.unread_count("human") == 2
        assert [m.id for m in await messages.list_unread("human")] == [first.id, second.id]

        await messages.mark_read(first.id)

        assert await messages.unread_count("human") == 1
        fetched = await messages.get(first.id)
        assert fetched.read is True
        assert fetched.read_at is not None

    async def test_list_newest_first_with_limit(self, messages):
        now = utcnow()
        for i in range(3):
            await messages.save(
                Message(
                    sender="a",
                    recipient="human",
                    type=MessageType.STATUS,
                    content=str(i),
                    created_at=now + timedelta(seconds=i),
                )
            )

        listed = await messages.list("human")
        assert [m.content for m in listed] == ["2", "1", "0"]

        limited = await messages.list("human", limit=2)
        assert [m.content for m in limited] == ["2", "1"]
