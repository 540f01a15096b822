"""Error taxonomy for craizy.

Validation errors are raised by the orchestrator before anything is
published.  External-tool errors wrap a failed tmux/git invocation with the
operation and target that failed.  Errors raised inside event handlers never
reach the publisher; they are logged at the dispatcher boundary.
"""

from __future__ import annotations


class CraizyError(Exception):
    """Base class for all craizy errors."""


# ── Validation ───────────────────────────────────────────────────────────────


class ValidationError(CraizyError):
    """A precondition of an orchestrator operation does not hold."""


class DuplicateSessionError(ValidationError):
    def __init__(self, agent_id: str):
        super().__init__(f"agent session {agent_id!r} already exists")
        self.agent_id = agent_id


class BranchConflictError(ValidationError):
    def __init__(self, branch: str):
        super().__init__(f"branch {branch!r} already exists")
        self.branch = branch


class AgentNotFoundError(ValidationError):
    def __init__(self, agent_id: str):
        super().__init__(f"agent {agent_id!r} not found")
        self.agent_id = agent_id


class NoBranchError(ValidationError):
    def __init__(self, agent_id: str):
        super().__init__(f"agent {agent_id!r} has no branch to merge")
        self.agent_id = agent_id


class VersionControlUnavailableError(ValidationError):
    def __init__(self) -> None:
        super().__init__("git integration is not enabled")


# ── External tools ───────────────────────────────────────────────────────────


class ExternalToolError(CraizyError):
    """A tmux or git command exited non-zero (or could not be run)."""

    def __init__(self, operation: str, target: str = "", detail: str = ""):
        message = operation
        if target:
            message += f" {target}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.operation = operation
        self.target = target
        self.detail = detail


class SessionBackendError(ExternalToolError):
    """tmux failure."""


class VersionControlError(ExternalToolError):
    """git failure."""


# ── Persistence / misc ───────────────────────────────────────────────────────


class StoreError(CraizyError):
    """Persistence failure (e.g. duplicate agent id on insert)."""


class MessageNotFoundError(CraizyError):
    def __init__(self, message_id: str):
        super().__init__(f"message not found: {message_id}")
        self.message_id = message_id


class SagaFailed(CraizyError):
    """A saga step failed; compensations for earlier steps have already run."""

    def __init__(self, saga: str, step: str, cause: BaseException):
        super().__init__(f"{saga}: step {step!r} failed: {cause}")
        self.saga = saga
        self.step = step
        self.cause = cause
