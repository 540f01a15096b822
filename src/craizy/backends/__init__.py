"""Backends the agent service drives: tmux sessions, git, and the fakes for tests."""

from .base import AgentStore, MessageStore, SessionBackend, VersionControl
from .git import GitClient
from .tmux import TmuxClient

__all__ = [
    "AgentStore",
    "GitClient",
    "MessageStore",
    "SessionBackend",
    "TmuxClient",
    "VersionControl",
]
