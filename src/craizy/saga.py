"""Compensating-step runner.

A saga is an ordered list of steps.  Each step may register a compensation;
steps run forward and, on the first failure, the compensations of every step
that already succeeded are played back newest-first.  Compensations are
best-effort: a failing compensation is logged and the rollback carries on.

Usage::

    saga = Saga("create craizy-demo-claude-x", logger)
    saga.add_completed("worktree", remove_worktree)
    saga.add_step("session", create_session, compensate=kill_session)
    saga.add_step("persist", persist)
    await saga.run()   # raises SagaFailed after rolling back
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from craizy.errors import SagaFailed

Action = Callable[[], Awaitable[object]]


@dataclass
class SagaStep:
    name: str
    action: Action | None
    compensate: Action | None = None


class Saga:
    def __init__(self, name: str, logger: logging.Logger | None = None):
        self.name = name
        self._logger = logger or logging.getLogger(__name__)
        self._steps: list[SagaStep] = []
        self._undo: list[SagaStep] = []

    def add_step(self, name: str, action: Action, compensate: Action | None = None) -> "Saga":
        self._steps.append(SagaStep(name, action, compensate))
        return self

    def add_completed(self, name: str, compensate: Action) -> "Saga":
        """Register the undo for work done before the saga was built."""
        self._steps.append(SagaStep(name, None, compensate))
        return self

    @property
    def undo_stack(self) -> list[str]:
        """Names of steps whose compensation is pending, oldest first."""
        return [step.name for step in self._undo]

    async def run(self) -> None:
        self._undo.clear()
        for step in self._steps:
            if step.action is not None:
                try:
                    await step.action()
                except Exception as exc:
                    self._logger.error("%s: step %r failed: %s", self.name, step.name, exc)
                    await self.rollback()
                    raise SagaFailed(self.name, step.name, exc) from exc
            if step.compensate is not None:
                self._undo.append(step)

    async def rollback(self) -> None:
        while self._undo:
            step = self._undo.pop()
            try:
                await step.compensate()
                self._logger.info("%s: compensated %r", self.name, step.name)
            except Exception:
                self._logger.warning(
                    "%s: compensation for %r failed", self.name, step.name, exc_info=True
                )
