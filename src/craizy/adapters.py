"""Side-effect adapters: the handlers that turn lifecycle events into tmux,
git and store operations.

``wire_adapters`` is called once by the composition root.  After that, the
adapters are the only code that creates or kills agent sessions; the agent
service just publishes events.

Creation is a saga (see ``craizy.saga``): the worktree the service already
made, the tmux session, and the store record.  If any step fails, every
earlier step is undone, so a failed creation leaves no session, no worktree
and no branch behind.  Kill is a straight best-effort sequence ending in the
store update.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from craizy.errors import SagaFailed, SessionBackendError
from craizy.events import AgentCreated, AgentKilled, EventType
from craizy.models import Agent, AgentStatus
from craizy.saga import Saga

if TYPE_CHECKING:
    from craizy.backends.base import AgentStore, SessionBackend, VersionControl
    from craizy.dispatcher import EventDispatcher


class LifecycleAdapters:
    """Handlers for ``agent.created`` and ``agent.killed``."""

    def __init__(
        self,
        store: AgentStore,
        sessions: SessionBackend,
        git: VersionControl | None = None,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.sessions = sessions
        self.git = git
        self._logger = logger or logging.getLogger(__name__)

    # ── agent.created ────────────────────────────────────────────────────

    def creation_saga(self, agent: Agent) -> Saga:
        saga = Saga(f"create {agent.id}", self._logger)

        if self.git is not None and agent.branch:
            git = self.git
            saga.add_completed("worktree", lambda: self._remove_worktree(git, agent))

        async def create_session() -> None:
            await self.sessions.create_session(agent.id, agent.command, agent.work_dir)

        async def kill_session() -> None:
            await self.sessions.kill_session(agent.id)

        async def persist() -> None:
            await self.store.add(agent)

        saga.add_step("session", create_session, compensate=kill_session)
        saga.add_step("persist", persist)
        return saga

    async def on_agent_created(self, event: AgentCreated) -> None:
        agent = event.agent
        self._logger.info("Handling agent.created for %s", agent.id)
        try:
            await self.creation_saga(agent).run()
        except SagaFailed as exc:
            self._logger.error("Creation of %s rolled back: %s", agent.id, exc)
            return
        self._logger.info("Agent %s started in %s", agent.id, agent.work_dir)

    # ── agent.killed ─────────────────────────────────────────────────────

    async def on_agent_killed(self, event: AgentKilled) -> None:
        agent_id = event.agent_id
        self._logger.info("Handling agent.killed for %s", agent_id)

        try:
            await self.sessions.kill_session(agent_id)
        except SessionBackendError as exc:
            # Already gone is fine
            self._logger.warning("Could not kill session %s: %s", agent_id, exc)

        agent = await self.store.get(agent_id)
        if agent is not None and agent.branch and self.git is not None:
            await self._remove_worktree(self.git, agent)

        await self.store.update_status(agent_id, AgentStatus.TERMINATED)
        self._logger.info("Agent %s terminated", agent_id)

    # ── helpers ──────────────────────────────────────────────────────────

    async def _remove_worktree(self, git: VersionControl, agent: Agent) -> None:
        """Remove the agent's worktree and branch; each half is best-effort."""
        try:
            await git.remove_worktree(agent.work_dir)
        except Exception as exc:
            self._logger.warning("Failed to remove worktree %s: %s", agent.work_dir, exc)
        try:
            await git.delete_branch(agent.branch)
        except Exception as exc:
            self._logger.warning("Failed to delete branch %s: %s", agent.branch, exc)


def wire_adapters(
    dispatcher: EventDispatcher,
    store: AgentStore,
    sessions: SessionBackend,
    git: VersionControl | None = None,
    logger: logging.Logger | None = None,
) -> LifecycleAdapters:
    """Subscribe the lifecycle adapters to ``dispatcher``. Call once at startup."""
    adapters = LifecycleAdapters(store, sessions, git, logger)
    dispatcher.subscribe(EventType.AGENT_CREATED, adapters.on_agent_created)
    dispatcher.subscribe(EventType.AGENT_KILLED, adapters.on_agent_killed)
    return adapters
