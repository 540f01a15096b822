"""Tests for the compensating-step runner."""

import pytest

from craizy.errors import SagaFailed
from craizy.saga import Saga


def _step(log: list, name: str, fail: bool = False):
    async def action():
        log.append(f"do {name}")
        if fail:
            raise RuntimeError(f"{name} failed")

    return action


def _undo(log: list, name: str, fail: bool = False):
    async def compensate():
        log.append(f"undo {name}")
        if fail:
            raise RuntimeError(f"undo {name} failed")

    return compensate


class TestRun:
    async def test_all_steps_succeed(self):
        log = []
        saga = Saga("test")
        saga.add_step("a", _step(log, "a"), _undo(log, "a"))
        saga.add_step("b", _step(log, "b"))

        await saga.run()

        assert log == ["do a", "do b"]
        assert saga.undo_stack == ["a"]

    async def test_failure_rolls_back_in_reverse(self):
        log = []
        saga = Saga("test")
        saga.add_completed("pre", _undo(log, "pre"))
        saga.add_step("a", _step(log, "a"), _undo(log, "a"))
        saga.add_step("b", _step(log, "b"), _undo(log, "b"))
        saga.add_step("c", _step(log, "c", fail=True), _undo(log, "c"))

        with pytest.raises(SagaFailed) as exc_info:
            await saga.run()

        assert log == ["do a", "do b", "do c", "undo b", "undo a", "undo pre"]
        assert exc_info.value.step == "c"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert saga.undo_stack == []

    async def test_first_step_failure_runs_only_prior_completed(self):
        log = []
        saga = Saga("test")
        saga.add_completed("pre", _undo(log, "pre"))
        saga.add_step("a", _step(log, "a", fail=True), _undo(log, "a"))

        with pytest.raises(SagaFailed):
            await saga.run()

        assert log == ["do a", "undo pre"]

    async def test_compensation_failure_does_not_mask_original(self, caplog):
        log = []
        saga = Saga("test")
        saga.add_step("a", _step(log, "a"), _undo(log, "a"))
        saga.add_step("b", _step(log, "b"), _undo(log, "b", fail=True))
        saga.add_step("c", _step(log, "c", fail=True))

        with pytest.raises(SagaFailed) as exc_info:
            await saga.run()

        # Rollback carried on past the failing compensation
        assert log == ["do a", "do b", "do c", "undo b", "undo a"]
        assert exc_info.value.step == "c"
        assert "compensation for 'b' failed" in caplog.text

    async def test_cause_is_chained(self):
        saga = Saga("test")
        saga.add_step("a", _step([], "a", fail=True))

        with pytest.raises(SagaFailed) as exc_info:
            await saga.run()

        assert exc_info.value.__cause__ is exc_info.value.cause
