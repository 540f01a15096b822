"""Capability protocols for the collaborators the agent service drives.

Only the composition root (``craizy.__main__``) names concrete
implementations; everything else is typed against these protocols.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from craizy.models import Agent, AgentStatus, Message

PathLike = str | Path


@runtime_checkable
class SessionBackend(Protocol):
    """Hosts named, persistent interactive terminal sessions (tmux).

    Failures raise ``SessionBackendError``.
    """

    async def create_session(self, session_id: str, command: str, work_dir: PathLike) -> None: ...

    async def kill_session(self, session_id: str) -> None: ...

    async def list_sessions(self) -> list[str]: ...

    async def session_exists(self, session_id: str) -> bool: ...

    async def capture_pane(self, session_id: str, lines: int) -> str: ...

    async def attach(self, session_id: str) -> None:
        """Hand the terminal to the session; returns when the user detaches."""
        ...

    async def send_keys(self, session_id: str, text: str) -> None: ...


@runtime_checkable
class VersionControl(Protocol):
    """Git operations on the host repository and its worktrees.

    Failures raise ``VersionControlError``.
    """

    async def is_repo(self, path: PathLike) -> bool: ...

    async def init(self, path: PathLike) -> None: ...

    async def current_branch(self, path: PathLike) -> str: ...

    async def branch_exists(self, branch: str) -> bool: ...

    async def create_worktree(self, path: PathLike, branch: str, base_branch: str) -> None:
        """Create ``branch`` from ``base_branch`` if absent, otherwise reuse it."""
        ...

    async def remove_worktree(self, path: PathLike) -> None: ...

    async def delete_branch(self, branch: str) -> None: ...

    async def has_uncommitted_changes(self, path: PathLike) -> bool: ...

    async def discard_changes(self, path: PathLike) -> None: ...

    async def stash(self, path: PathLike) -> None: ...

    async def stash_pop(self, path: PathLike) -> None: ...

    async def merge(self, branch: str) -> None: ...

    async def merge_abort(self) -> None: ...

    async def commit_all(self, path: PathLike, message: str) -> None:
        """Stage everything under ``path`` and commit (an empty commit is allowed)."""
        ...


@runtime_checkable
class AgentStore(Protocol):
    """Persistence for agent records; the source of truth once written."""

    async def add(self, agent: Agent) -> None:
        """Insert; raises ``StoreError`` if the id is already present."""
        ...

    async def remove(self, agent_id: str) -> None: ...

    async def get(self, agent_id: str) -> Agent | None: ...

    async def list(self) -> list[Agent]: ...

    async def exists(self, agent_id: str) -> bool: ...

    async def update_status(self, agent_id: str, status: AgentStatus) -> None:
        """Set status; ``terminated_at`` is stamped for TERMINATED and cleared otherwise."""
        ...


@runtime_checkable
class MessageStore(Protocol):
    async def save(self, message: Message) -> None: ...

    async def mark_read(self, message_id: str) -> None: ...

    async def list_unread(self, recipient: str) -> list[Message]: ...

    async def list(self, recipient: str, limit: int = 0) -> list[Message]: ...

    async def get(self, message_id: str) -> Message | None: ...

    async def unread_count(self, recipient: str) -> int: ...
