"""Core data models for craizy."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Agent Status ─────────────────────────────────────────────────────────────


class AgentStatus(str, enum.Enum):
    """Agent lifecycle states.

    ``PENDING`` is reserved; agents are created directly ``ACTIVE`` and only
    ever move to ``TERMINATED`` (via kill or reconciliation).
    """

    PENDING = "pending"
    ACTIVE = "active"
    TERMINATED = "terminated"


# ── Agent Record ─────────────────────────────────────────────────────────────


class Agent(BaseModel):
    """A managed agent: one tmux session plus (optionally) one git worktree."""

    id: str = Field(description="Session name, e.g. 'craizy-demo-claude-task1'")
    project: str
    agent_type: str
    name: str
    command: str = ""
    work_dir: str = Field(description="Worktree path when git is enabled, else the host work dir")
    status: AgentStatus = AgentStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    terminated_at: datetime | None = None
    branch: str | None = Field(default=None, description="Worktree branch (equals id)")
    base_branch: str | None = Field(default=None, description="Branch the worktree was cut from")

    @model_validator(mode="after")
    def _terminated_at_tracks_status(self) -> "Agent":
        if self.status == AgentStatus.TERMINATED:
            if self.terminated_at is None:
                self.terminated_at = utcnow()
        elif self.terminated_at is not None:
            self.terminated_at = None
        return self

    def with_status(self, status: AgentStatus) -> "Agent":
        """Copy of this record moved to ``status`` (``terminated_at`` follows)."""
        data = self.model_dump()
        data["status"] = status
        data["terminated_at"] = None
        return Agent(**data)


# ── Orchestrator results ─────────────────────────────────────────────────────


class MergeResult(BaseModel):
    success: bool = False
    stashed: bool = False
    conflict_error: str | None = None


class AgentDetached(BaseModel):
    """Emitted once when an attached tmux client returns control."""

    session_id: str
    error: str | None = None


class ReconcileReport(BaseModel):
    terminated: list[str] = Field(default_factory=list)
    killed: list[str] = Field(default_factory=list)
    listing_failed: bool = False


# ── Messages ─────────────────────────────────────────────────────────────────

# Reserved participant id for the human operator.
HUMAN_PARTICIPANT_ID = "human"


class MessageType(str, enum.Enum):
    QUESTION = "question"
    ANSWER = "answer"
    ASSIGNMENT = "assignment"
    COMPLETION = "completion"
    STATUS = "status"
    INFO = "info"


class Message(BaseModel):
    """A message between agents, or between an agent and the human."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender: str
    recipient: str
    type: MessageType
    content: str
    related_work: str | None = None
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    read_at: datetime | None = None
