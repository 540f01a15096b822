"""Tests for TmuxClient command construction and error mapping."""

import shutil
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from craizy.adapters import LifecycleAdapters
from craizy.backends.fakes import MemoryAgentStore
from craizy.backends.process import run
from craizy.backends.tmux import TmuxClient
from craizy.errors import SessionBackendError
from craizy.events import AgentKilled


@pytest.fixture
def run_mock():
    with patch("craizy.backends.tmux.run", new_callable=AsyncMock) as mock:
        mock.return_value = (0, "", "")
        yield mock


class TestCreateSession:
    async def test_new_session_then_options(self, run_mock):
        await TmuxClient().create_session("craizy-demo-claude-x", "claude", "/work")

        first = run_mock.await_args_list[0].args
        assert first == (
            "tmux", "new-session", "-d", "-s", "craizy-demo-claude-x", "-c", "/work", "claude"
        )
        option_calls = [c.args for c in run_mock.await_args_list[1:]]
        assert ("tmux", "set-option", "-t", "=craizy-demo-claude-x", "mouse", "on") in option_calls

    async def test_empty_command_uses_default_shell(self, run_mock):
        await TmuxClient().create_session("s", "", "/work")
        assert run_mock.await_args_list[0].args[-1] == "/work"

    async def test_failure_raises(self, run_mock):
        run_mock.return_value = (1, "", "duplicate session: s")

        with pytest.raises(SessionBackendError, match="duplicate session"):
            await TmuxClient().create_session("s", "claude", "/work")

    async def test_option_failure_is_ignored(self, run_mock):
        run_mock.side_effect = [(0, "", "")] + [(1, "", "invalid option")] * 20

        await TmuxClient().create_session("s", "claude", "/work")


class TestQueries:
    async def test_list_sessions(self, run_mock):
        run_mock.return_value = (0, "craizy-demo-a\nother\n\n", "")

        assert await TmuxClient().list_sessions() == ["craizy-demo-a", "other"]

    async def test_list_sessions_no_server(self, run_mock):
        run_mock.return_value = (1, "", "no server running on /tmp/tmux-0/default")

        with pytest.raises(SessionBackendError):
            await TmuxClient().list_sessions()

    async def test_session_exists_uses_exact_match(self, run_mock):
        assert await TmuxClient().session_exists("s") is True
        run_mock.assert_awaited_with("tmux", "has-session", "-t", "=s")

        run_mock.return_value = (1, "", "can't find session")
        assert await TmuxClient().session_exists("s") is False

    async def test_capture_pane(self, run_mock):
        run_mock.return_value = (0, "line\n", "")

        assert await TmuxClient().capture_pane("s", 50) == "line\n"
        run_mock.assert_awaited_with("tmux", "capture-pane", "-t", "=s:", "-p", "-S", "-50")


class TestKeys:
    async def test_send_keys_literal_then_enter(self, run_mock):
        await TmuxClient().send_keys("s", "hello")

        assert [c.args for c in run_mock.await_args_list] == [
            ("tmux", "send-keys", "-l", "-t", "=s:", "hello"),
            ("tmux", "send-keys", "-t", "=s:", "C-m"),
        ]

    async def test_kill_failure_raises(self, run_mock):
        run_mock.return_value = (1, "", "can't find session: s")

        with pytest.raises(SessionBackendError) as exc_info:
            await TmuxClient().kill_session("s")

        assert exc_info.value.operation == "tmux kill-session"
        assert exc_info.value.target == "s"

    async def test_kill_targets_exact_session(self, run_mock):
        await TmuxClient().kill_session("craizy-demo-claude-task1")
        run_mock.assert_awaited_with("tmux", "kill-session", "-t", "=craizy-demo-claude-task1")

    async def test_attach_targets_exact_session(self):
        proc = AsyncMock()
        proc.wait.return_value = 0
        with patch(
            "craizy.backends.tmux.asyncio.create_subprocess_exec", new_callable=AsyncMock
        ) as exec_mock:
            exec_mock.return_value = proc
            await TmuxClient().attach("craizy-demo-claude-task1")

        exec_mock.assert_awaited_once_with("tmux", "attach-session", "-t", "=craizy-demo-claude-task1")


@pytest.mark.skipif(shutil.which("tmux") is None, reason="tmux not installed")
class TestExactTargetsAgainstTmux:
    """A dead agent's id must never resolve to a live session it prefixes."""

    @pytest_asyncio.fixture
    async def neighbour(self, tmp_path: Path, monkeypatch):
        # Private server so the test never touches the user's sessions
        monkeypatch.setenv("TMUX_TMPDIR", str(tmp_path))
        monkeypatch.delenv("TMUX", raising=False)
        client = TmuxClient()
        await client.create_session("craizy-demo-claude-task10", "", tmp_path)
        yield client
        await run("tmux", "kill-server")

    async def test_kill_of_dead_agent_spares_neighbour(self, neighbour: TmuxClient):
        assert await neighbour.session_exists("craizy-demo-claude-task1") is False

        with pytest.raises(SessionBackendError):
            await neighbour.kill_session("craizy-demo-claude-task1")

        assert await neighbour.session_exists("craizy-demo-claude-task10") is True

    async def test_capture_of_dead_agent_raises(self, neighbour: TmuxClient):
        with pytest.raises(SessionBackendError):
            await neighbour.capture_pane("craizy-demo-claude-task1", 5)

    async def test_send_keys_to_dead_agent_raises(self, neighbour: TmuxClient):
        with pytest.raises(SessionBackendError):
            await neighbour.send_keys("craizy-demo-claude-task1", "hello")

    async def test_killed_handler_spares_neighbour(self, neighbour: TmuxClient):
        adapters = LifecycleAdapters(MemoryAgentStore(), neighbour)

        await adapters.on_agent_killed(AgentKilled(agent_id="craizy-demo-claude-task1"))

        assert await neighbour.session_exists("craizy-demo-claude-task10") is True
