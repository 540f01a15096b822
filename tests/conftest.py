"""Shared fixtures: an agent service wired to in-memory backends."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest
import pytest_asyncio

from craizy.adapters import LifecycleAdapters, wire_adapters
from craizy.backends.fakes import FakeGitClient, FakeSessionBackend, MemoryAgentStore
from craizy.dispatcher import EventDispatcher
from craizy.events import EventType
from craizy.service import AgentService
from craizy.store import Database


@dataclass
class Harness:
    service: AgentService
    sessions: FakeSessionBackend
    git: FakeGitClient | None
    store: MemoryAgentStore
    dispatcher: EventDispatcher
    adapters: LifecycleAdapters
    events: list
    work_dir: Path


def _build(work_dir: Path, with_git: bool) -> Harness:
    sessions = FakeSessionBackend()
    git = FakeGitClient(repo_root=work_dir) if with_git else None
    store = MemoryAgentStore()
    dispatcher = EventDispatcher()

    # Recorder subscribed first, so it sees every event before the adapters act
    events: list = []

    async def record(event):
        events.append(event)

    dispatcher.subscribe(EventType.AGENT_CREATED, record)
    dispatcher.subscribe(EventType.AGENT_KILLED, record)

    adapters = wire_adapters(dispatcher, store, sessions, git)
    service = AgentService(sessions, store, dispatcher, git, "demo", work_dir)
    return Harness(service, sessions, git, store, dispatcher, adapters, events, work_dir)


@pytest.fixture
def harness(tmp_path) -> Harness:
    return _build(tmp_path, with_git=True)


@pytest.fixture
def harness_no_git(tmp_path) -> Harness:
    return _build(tmp_path, with_git=False)


@pytest_asyncio.fixture
async def sqlite_db(tmp_path):
    db = Database(str(tmp_path / "craizy.db"))
    await db.initialize()
    yield db
    await db.close()
