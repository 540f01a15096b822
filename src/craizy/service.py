"""Agent service: the orchestrator behind every user-facing operation.

Responsible for:
- Computing agent ids and validating preconditions (duplicate session,
  stale branch) before anything happens
- Cutting the per-agent git worktree
- Publishing lifecycle events; the adapters wired in ``craizy.adapters``
  start/kill tmux sessions and write the store
- Merging an agent's branch back, protecting local changes with a stash
- Reconciling the store with live tmux sessions at startup

Create and kill are fire-and-forget with respect to the adapters: the
dispatcher swallows handler failures, so a successful return means the
event was delivered, not that the session exists.  ``reconcile`` is the
backstop that repairs any divergence later.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from craizy.errors import (
    AgentNotFoundError,
    BranchConflictError,
    DuplicateSessionError,
    NoBranchError,
    SessionBackendError,
    StoreError,
    VersionControlError,
    VersionControlUnavailableError,
)
from craizy.events import AgentCreated, AgentKilled
from craizy.models import (
    Agent,
    AgentDetached,
    AgentStatus,
    MergeResult,
    ReconcileReport,
    utcnow,
)
from craizy.naming import build_id, project_prefix

if TYPE_CHECKING:
    from craizy.backends.base import AgentStore, SessionBackend, VersionControl
    from craizy.dispatcher import EventDispatcher

# Relative to the host work dir.
DEFAULT_WORKTREES_DIR = ".craizy/worktrees"


class AgentService:
    """Creates, kills, merges and reconciles the agents of one project."""

    def __init__(
        self,
        sessions: SessionBackend,
        store: AgentStore,
        dispatcher: EventDispatcher,
        git: VersionControl | None,
        project: str,
        work_dir: str | Path,
        *,
        worktrees_dir: str = DEFAULT_WORKTREES_DIR,
        logger: logging.Logger | None = None,
    ):
        self.sessions = sessions
        self.store = store
        self.dispatcher = dispatcher
        self.git = git
        self.project = project
        self.work_dir = Path(work_dir)
        self.worktrees_dir = worktrees_dir
        self._logger = logger or logging.getLogger(__name__)

    def worktree_path(self, agent_id: str) -> Path:
        return self.work_dir / self.worktrees_dir / agent_id

    # ── Create / Kill ────────────────────────────────────────────────────

    async def create(self, agent_type: str, name: str, command: str) -> Agent:
        """Validate, cut the worktree and publish ``AgentCreated``.

        Raises ``DuplicateSessionError`` if an active agent has the same id,
        ``BranchConflictError`` if a leftover branch is in the way, and
        ``VersionControlError`` if the worktree cannot be created.  Nothing
        is published when any of these are raised.
        """
        agent_id = build_id(self.project, agent_type, name)
        self._logger.debug("create %s (type=%s, name=%r)", agent_id, agent_type, name)

        existing = await self.store.get(agent_id)
        if existing is not None:
            if existing.status == AgentStatus.ACTIVE:
                raise DuplicateSessionError(agent_id)
            # Terminated record: the id is free again
            await self.store.remove(agent_id)
            self._logger.info("Removed terminated record %s before re-creating it", agent_id)

        work_dir = str(self.work_dir)
        branch: str | None = None
        base_branch: str | None = None

        if self.git is not None:
            branch = agent_id
            if await self.git.branch_exists(branch):
                raise BranchConflictError(branch)
            base_branch = await self.git.current_branch(self.work_dir)
            worktree = self.worktree_path(agent_id)
            await self.git.create_worktree(worktree, branch, base_branch)
            work_dir = str(worktree)

        agent = Agent(
            id=agent_id,
            project=self.project,
            agent_type=agent_type,
            name=name,
            command=command,
            work_dir=work_dir,
            status=AgentStatus.ACTIVE,
            created_at=utcnow(),
            branch=branch,
            base_branch=base_branch,
        )

        await self.dispatcher.publish(AgentCreated(agent=agent))
        self._logger.info("Agent %s created (branch=%s, base=%s)", agent_id, branch, base_branch)
        return agent

    async def kill(self, agent_id: str) -> None:
        """Publish ``AgentKilled``. Always succeeds from the caller's point of view."""
        await self.dispatcher.publish(AgentKilled(agent_id=agent_id))
        self._logger.info("Kill published for %s", agent_id)

    async def check_kill(self, agent_id: str) -> bool:
        """True if killing ``agent_id`` would lose uncommitted worktree changes."""
        if self.git is None:
            return False
        agent = await self.store.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        if not agent.branch:
            return False
        return await self.git.has_uncommitted_changes(agent.work_dir)

    async def force_kill(self, agent_id: str, discard_changes: bool) -> None:
        """Kill, stashing uncommitted worktree changes first unless discarding."""
        if self.git is not None and not discard_changes:
            agent = await self.store.get(agent_id)
            if (
                agent is not None
                and agent.branch
                and await self.git.has_uncommitted_changes(agent.work_dir)
            ):
                self._logger.info("Stashing changes in %s before kill", agent.work_dir)
                try:
                    await self.git.stash(agent.work_dir)
                except VersionControlError as exc:
                    self._logger.warning("Stash before kill failed for %s: %s", agent_id, exc)
        await self.kill(agent_id)

    # ── Merge ────────────────────────────────────────────────────────────

    async def merge_agent(self, agent_id: str) -> MergeResult:
        """Merge the agent's branch into the branch checked out in the main work dir.

        Local changes in the main work dir are stashed first and popped
        afterwards, on success *and* on conflict.  A conflict is reported in
        the result, not raised; the repository is left mid-merge with the
        stash reapplied for the user to resolve (or ``abort_merge``).
        """
        if self.git is None:
            raise VersionControlUnavailableError()
        agent = await self.store.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        if not agent.branch:
            raise NoBranchError(agent_id)

        result = MergeResult()

        if await self.git.has_uncommitted_changes(self.work_dir):
            self._logger.info("Stashing uncommitted changes in %s before merge", self.work_dir)
            await self.git.stash(self.work_dir)
            result.stashed = True

        try:
            await self.git.merge(agent.branch)
        except VersionControlError as exc:
            self._logger.error("Merge of %s failed (conflict?): %s", agent.branch, exc)
            result.conflict_error = str(exc)
        else:
            result.success = True
            self._logger.info("Merged %s into the main work dir", agent.branch)

        if result.stashed:
            await self._pop_stash()
        return result

    async def abort_merge(self) -> None:
        """Abort an in-progress merge in the main work dir."""
        if self.git is None:
            raise VersionControlUnavailableError()
        await self.git.merge_abort()

    async def _pop_stash(self) -> None:
        try:
            await self.git.stash_pop(self.work_dir)
        except VersionControlError as exc:
            self._logger.warning("Stash pop in %s failed: %s", self.work_dir, exc)

    # ── Queries ──────────────────────────────────────────────────────────

    async def list(self) -> list[Agent]:
        """Active agents of this project."""
        agents = await self.store.list()
        return [
            a for a in agents if a.status == AgentStatus.ACTIVE and a.project == self.project
        ]

    async def exists(self, agent_id: str) -> bool:
        return await self.store.exists(agent_id)

    def attach(self, agent_id: str) -> asyncio.Task[AgentDetached]:
        """Hand the terminal to the agent's session.

        Returns a task that resolves to a single ``AgentDetached`` once the
        user detaches.  Failures are reported in ``AgentDetached.error``.
        """

        async def _attach() -> AgentDetached:
            try:
                await self.sessions.attach(agent_id)
            except SessionBackendError as exc:
                self._logger.error("Attach to %s failed: %s", agent_id, exc)
                return AgentDetached(session_id=agent_id, error=str(exc))
            return AgentDetached(session_id=agent_id)

        return asyncio.create_task(_attach(), name=f"attach-{agent_id}")

    async def capture_output(self, agent_id: str, lines: int) -> str:
        """Last ``lines`` lines of the agent's pane."""
        return await self.sessions.capture_pane(agent_id, lines)

    # ── Reconciliation ───────────────────────────────────────────────────

    async def reconcile(self) -> ReconcileReport:
        """Bring the store and tmux back in line. Safe to run at any time.

        1. Every stored, non-terminated agent whose session is gone is
           marked terminated.
        2. Every live session carrying this project's prefix with no store
           record is killed as an orphan.  If tmux cannot list sessions
           (e.g. no server running) this sweep is skipped.
        """
        report = ReconcileReport()

        for agent in await self.store.list():
            if agent.status == AgentStatus.TERMINATED:
                continue
            if not await self.sessions.session_exists(agent.id):
                self._logger.info("Session for %s is gone, marking terminated", agent.id)
                try:
                    await self.store.update_status(agent.id, AgentStatus.TERMINATED)
                except StoreError as exc:
                    self._logger.warning("Failed to mark %s terminated: %s", agent.id, exc)
                    continue
                report.terminated.append(agent.id)

        try:
            live = await self.sessions.list_sessions()
        except SessionBackendError as exc:
            self._logger.debug("tmux list-sessions failed (server may not be running): %s", exc)
            report.listing_failed = True
            return report

        prefix = project_prefix(self.project)
        for session_id in live:
            if not session_id.startswith(prefix):
                continue
            if await self.store.exists(session_id):
                continue
            self._logger.info("Killing orphaned session %s", session_id)
            try:
                await self.sessions.kill_session(session_id)
            except SessionBackendError as exc:
                self._logger.warning("Failed to kill orphaned session %s: %s", session_id, exc)
                continue
            report.killed.append(session_id)

        self._logger.info(
            "Reconcile complete (terminated=%d, killed=%d)", len(report.terminated), len(report.killed)
        )
        return report
