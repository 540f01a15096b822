"""Lifecycle events published by the agent service.

The set of events is closed: ``AgentEvent`` is a discriminated union over the
``event_type`` tag, and the dispatcher refuses subscriptions to any other tag.
Event payloads are frozen.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from craizy.models import Agent, AgentStatus, utcnow


class EventType(str, enum.Enum):
    AGENT_CREATED = "agent.created"
    AGENT_KILLED = "agent.killed"
    AGENT_STATUS_CHANGED = "agent.status_changed"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)


class AgentCreated(_Event):
    """Published after validation and worktree setup; adapters start the session and persist."""

    event_type: Literal[EventType.AGENT_CREATED] = EventType.AGENT_CREATED
    agent: Agent


class AgentKilled(_Event):
    event_type: Literal[EventType.AGENT_KILLED] = EventType.AGENT_KILLED
    agent_id: str


class AgentStatusChanged(_Event):
    event_type: Literal[EventType.AGENT_STATUS_CHANGED] = EventType.AGENT_STATUS_CHANGED
    agent_id: str
    old_status: AgentStatus
    new_status: AgentStatus


AgentEvent = Annotated[
    Union[AgentCreated, AgentKilled, AgentStatusChanged],
    Field(discriminator="event_type"),
]

EVENT_CLASSES: dict[EventType, type[_Event]] = {
    EventType.AGENT_CREATED: AgentCreated,
    EventType.AGENT_KILLED: AgentKilled,
    EventType.AGENT_STATUS_CHANGED: AgentStatusChanged,
}

