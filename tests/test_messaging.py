"""Tests for inter-agent messaging."""

import pytest

from craizy.backends.fakes import FakeSessionBackend, MemoryAgentStore, MemoryMessageStore
from craizy.errors import MessageNotFoundError, SessionBackendError
from craizy.messaging import MessageService, format_notification
from craizy.models import Agent, Message, MessageType

AGENT_ID = "craizy-demo-claude-task1"


@pytest.fixture
def parts():
    sessions = FakeSessionBackend()
    agents = MemoryAgentStore()
    store = MemoryMessageStore()
    return MessageService(store, sessions, agents), sessions, agents, store


async def _add_live_agent(sessions, agents, agent_id: str = AGENT_ID) -> None:
    await agents.add(
        Agent(id=agent_id, project="demo", agent_type="claude", name="task1", work_dir="/tmp")
    )
    sessions.add_session(agent_id)


class TestSend:
    async def test_live_recipient_gets_keys_and_message_is_read(self, parts):
        service, sessions, agents, store = parts
        await _add_live_agent(sessions, agents)

        message = await service.send("human", AGENT_ID, "assignment", "Write the tests")

        assert sessions.sent_keys == [
            (AGENT_ID, "\n[MESSAGE from human (assignment)]: Write the tests\n")
        ]
        assert message.read is True
        assert (await store.get(message.id)).read is True

    async def test_human_is_never_delivered(self, parts):
        service, sessions, agents, store = parts
        sessions.add_session("human")

        message = await service.send(AGENT_ID, "human", MessageType.QUESTION, "Which branch?")

        assert sessions.sent_keys == []
        assert message.read is False
        assert await service.unread_count("human") == 1

    async def test_recipient_without_record_is_queued(self, parts):
        service, sessions, agents, store = parts
        sessions.add_session(AGENT_ID)

        await service.send("human", AGENT_ID, "info", "hello")

        assert sessions.sent_keys == []
        assert await service.unread_count(AGENT_ID) == 1

    async def test_recipient_without_session_is_queued(self, parts):
        service, sessions, agents, store = parts
        await _add_live_agent(sessions, agents)
        del sessions.sessions[AGENT_ID]

        await service.send("human", AGENT_ID, "info", "hello")

        assert sessions.sent_keys == []
        assert await service.unread_count(AGENT_ID) == 1

    async def test_delivery_failure_leaves_message_unread(self, parts):
        service, sessions, agents, store = parts
        await _add_live_agent(sessions, agents)
        sessions.failures["send_keys"] = SessionBackendError("tmux send-keys", AGENT_ID)

        message = await service.send("human", AGENT_ID, "info", "hello")

        assert message.read is False
        assert await service.unread_count(AGENT_ID) == 1

    async def test_invalid_type(self, parts):
        service, *_ = parts
        with pytest.raises(ValueError):
            await service.send("human", AGENT_ID, "gossip", "psst")


class TestRead:
    async def test_read_marks_read(self, parts):
        service, *_ = parts
        sent = await service.send(AGENT_ID, "human", "completion", "Done")

        message = await service.read(sent.id)

        assert message.content == "Done"
        assert message.read is True
        assert await service.unread_count("human") == 0
        assert await service.list_unread("human") == []

    async def test_read_unknown(self, parts):
        service, *_ = parts
        with pytest.raises(MessageNotFoundError):
            await service.read("missing")

    async def test_list_and_mark_read(self, parts):
        service, *_ = parts
        first = await service.send(AGENT_ID, "human", "status", "50%")
        await service.send(AGENT_ID, "human", "status", "90%")

        assert len(await service.list("human")) == 2
        assert len(await service.list("human", limit=1)) == 1

        await service.mark_read(first.id)
        assert [m.content for m in await service.list_unread("human")] == ["90%"]


def test_format_notification():
    message = Message(sender="a", recipient="b", type=MessageType.ANSWER, content="yes")
    assert format_notification(message) == "\n[MESSAGE from a (answer)]: yes\n"
