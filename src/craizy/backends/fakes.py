"""In-memory implementations of the backend protocols.

Used by the test suite in place of tmux, git and SQLite.  Each fake records
the calls it receives in ``calls`` and can be told to fail a given operation
by putting an exception in ``failures``::

    sessions = FakeSessionBackend()
    sessions.failures["create_session"] = SessionBackendError("tmux new-session")

Methods never await anything, so every call is atomic with respect to the
event loop.
"""

from __future__ import annotations

from pathlib import Path

from craizy.backends.base import PathLike
from craizy.errors import SessionBackendError, StoreError, VersionControlError
from craizy.models import Agent, AgentStatus, Message, utcnow


class _Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}

    def _record(self, op: str, *args: object) -> None:
        self.calls.append((op, *args))
        exc = self.failures.get(op)
        if exc is not None:
            raise exc

    def called(self, op: str) -> list[tuple]:
        """Argument tuples of every recorded call to ``op``."""
        return [call[1:] for call in self.calls if call[0] == op]


# ── Session backend ──────────────────────────────────────────────────────────


class FakeSessionBackend(_Recorder):
    def __init__(self, sessions: dict[str, tuple[str, str]] | None = None):
        super().__init__()
        # session id -> (command, work_dir)
        self.sessions: dict[str, tuple[str, str]] = dict(sessions or {})
        self.pane_output: dict[str, str] = {}
        self.sent_keys: list[tuple[str, str]] = []

    def add_session(self, session_id: str, command: str = "", work_dir: str = "/tmp") -> None:
        """Simulate a session started outside craizy."""
        self.sessions[session_id] = (command, work_dir)

    async def create_session(self, session_id: str, command: str, work_dir: PathLike) -> None:
        self._record("create_session", session_id, command, str(work_dir))
        if session_id in self.sessions:
            raise SessionBackendError("tmux new-session", session_id, "duplicate session")
        self.sessions[session_id] = (command, str(work_dir))

    async def kill_session(self, session_id: str) -> None:
        self._record("kill_session", session_id)
        if session_id not in self.sessions:
            raise SessionBackendError("tmux kill-session", session_id, "session not found")
        del self.sessions[session_id]

    async def list_sessions(self) -> list[str]:
        self._record("list_sessions")
        return list(self.sessions)

    async def session_exists(self, session_id: str) -> bool:
        self._record("session_exists", session_id)
        return session_id in self.sessions

    async def capture_pane(self, session_id: str, lines: int) -> str:
        self._record("capture_pane", session_id, lines)
        if session_id not in self.sessions:
            raise SessionBackendError("tmux capture-pane", session_id, "session not found")
        output = self.pane_output.get(session_id, "")
        return "\n".join(output.splitlines()[-lines:]) if lines > 0 else output

    async def attach(self, session_id: str) -> None:
        self._record("attach", session_id)
        if session_id not in self.sessions:
            raise SessionBackendError("tmux attach", session_id, "session not found")

    async def send_keys(self, session_id: str, text: str) -> None:
        self._record("send_keys", session_id, text)
        if session_id not in self.sessions:
            raise SessionBackendError("tmux send-keys", session_id, "session not found")
        self.sent_keys.append((session_id, text))


# ── Version control ──────────────────────────────────────────────────────────


class FakeGitClient(_Recorder):
    """A single repository with worktrees, tracked purely as sets and dicts."""

    def __init__(self, repo_root: PathLike = "/repo", current: str = "main"):
        super().__init__()
        self.repo_root = str(repo_root)
        self.repos: set[str] = {self.repo_root}
        self.branches: set[str] = {current}
        self.checked_out: dict[str, str] = {self.repo_root: current}
        self.worktrees: dict[str, str] = {}  # path -> branch
        self.dirty: set[str] = set()
        self.stashes: dict[str, int] = {}
        self.merged: list[str] = []
        self.merging = False
        self.commits: list[tuple[str, str]] = []

    @staticmethod
    def _key(path: PathLike) -> str:
        return str(Path(path))

    async def is_repo(self, path: PathLike) -> bool:
        self._record("is_repo", self._key(path))
        return self._key(path) in self.repos

    async def init(self, path: PathLike) -> None:
        self._record("init", self._key(path))
        self.repos.add(self._key(path))

    async def current_branch(self, path: PathLike) -> str:
        self._record("current_branch", self._key(path))
        try:
            return self.checked_out[self._key(path)]
        except KeyError:
            raise VersionControlError("git rev-parse", self._key(path), "not a git repository") from None

    async def branch_exists(self, branch: str) -> bool:
        self._record("branch_exists", branch)
        return branch in self.branches

    async def create_worktree(self, path: PathLike, branch: str, base_branch: str) -> None:
        key = self._key(path)
        self._record("create_worktree", key, branch, base_branch)
        if key in self.worktrees:
            raise VersionControlError("git worktree add", key, "already exists")
        if branch not in self.branches:
            if base_branch not in self.branches:
                raise VersionControlError("git worktree add", key, f"invalid reference: {base_branch}")
            self.branches.add(branch)
        self.worktrees[key] = branch
        self.checked_out[key] = branch

    async def remove_worktree(self, path: PathLike) -> None:
        key = self._key(path)
        self._record("remove_worktree", key)
        if key not in self.worktrees:
            raise VersionControlError("git worktree remove", key, "not a working tree")
        del self.worktrees[key]
        self.checked_out.pop(key, None)
        self.dirty.discard(key)

    async def delete_branch(self, branch: str) -> None:
        self._record("delete_branch", branch)
        if branch not in self.branches:
            raise VersionControlError("git branch -D", branch, "branch not found")
        self.branches.discard(branch)

    async def has_uncommitted_changes(self, path: PathLike) -> bool:
        self._record("has_uncommitted_changes", self._key(path))
        return self._key(path) in self.dirty

    async def discard_changes(self, path: PathLike) -> None:
        self._record("discard_changes", self._key(path))
        self.dirty.discard(self._key(path))

    async def stash(self, path: PathLike) -> None:
        key = self._key(path)
        self._record("stash", key)
        self.dirty.discard(key)
        self.stashes[key] = self.stashes.get(key, 0) + 1

    async def stash_pop(self, path: PathLike) -> None:
        key = self._key(path)
        self._record("stash_pop", key)
        if not self.stashes.get(key):
            raise VersionControlError("git stash pop", key, "no stash entries found")
        self.stashes[key] -= 1
        self.dirty.add(key)

    async def merge(self, branch: str) -> None:
        self._record("merge", branch)
        if branch not in self.branches:
            raise VersionControlError("git merge", branch, "not something we can merge")
        self.merged.append(branch)

    async def merge_abort(self) -> None:
        self._record("merge_abort")
        if not self.merging:
            raise VersionControlError("git merge --abort", self.repo_root, "no merge in progress")
        self.merging = False

    async def commit_all(self, path: PathLike, message: str) -> None:
        key = self._key(path)
        self._record("commit_all", key, message)
        if key not in self.repos:
            raise VersionControlError("git commit", key, "not a git repository")
        self.commits.append((key, message))
        self.dirty.discard(key)


# ── Stores ───────────────────────────────────────────────────────────────────


class MemoryAgentStore:
    """Dict-backed AgentStore; hands out copies so callers cannot mutate state."""

    def __init__(self, agents: list[Agent] | None = None):
        self._agents: dict[str, Agent] = {a.id: a.model_copy(deep=True) for a in agents or []}
        self.failures: dict[str, Exception] = {}

    def _maybe_fail(self, op: str) -> None:
        exc = self.failures.get(op)
        if exc is not None:
            raise exc

    async def add(self, agent: Agent) -> None:
        self._maybe_fail("add")
        if agent.id in self._agents:
            raise StoreError(f"agent {agent.id!r} already stored")
        self._agents[agent.id] = agent.model_copy(deep=True)

    async def remove(self, agent_id: str) -> None:
        self._maybe_fail("remove")
        self._agents.pop(agent_id, None)

    async def get(self, agent_id: str) -> Agent | None:
        agent = self._agents.get(agent_id)
        return agent.model_copy(deep=True) if agent else None

    async def list(self) -> list[Agent]:
        return [a.model_copy(deep=True) for a in self._agents.values()]

    async def exists(self, agent_id: str) -> bool:
        return agent_id in self._agents

    async def update_status(self, agent_id: str, status: AgentStatus) -> None:
        self._maybe_fail("update_status")
        agent = self._agents.get(agent_id)
        if agent is not None:
            self._agents[agent_id] = agent.with_status(status)


class MemoryMessageStore:
    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}

    async def save(self, message: Message) -> None:
        self._messages[message.id] = message.model_copy()

    async def mark_read(self, message_id: str) -> None:
        message = self._messages.get(message_id)
        if message is not None:
            self._messages[message_id] = message.model_copy(update={"read": True, "read_at": utcnow()})

    async def list_unread(self, recipient: str) -> list[Message]:
        unread = [m for m in self._messages.values() if m.recipient == recipient and not m.read]
        return sorted(unread, key=lambda m: m.created_at)

    async def list(self, recipient: str, limit: int = 0) -> list[Message]:
        messages = sorted(
            (m for m in self._messages.values() if m.recipient == recipient),
            key=lambda m: m.created_at,
            reverse=True,
        )
        return messages[:limit] if limit > 0 else messages

    async def get(self, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        return message.model_copy() if message else None

    async def unread_count(self, recipient: str) -> int:
        return len(await self.list_unread(recipient))
