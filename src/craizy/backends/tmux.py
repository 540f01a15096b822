"""tmux-backed session backend."""

from __future__ import annotations

import asyncio
import logging

from craizy.backends.base import PathLike
from craizy.backends.process import run
from craizy.errors import SessionBackendError

# Status bar colours (Nord palette).
_STATUS_BG = "#3b4252"
_STATUS_FG = "#d8dee9"
_BRAND = "#88c0d0"
_ACCENT = "#81a1c1"
_MUTED = "#4c566a"
_SEPARATOR = "#434c5e"


class TmuxClient:
    """Drives tmux through its CLI. One instance per process is enough.

    Every target is written as ``=name`` (``=name:`` where tmux wants a pane)
    so it only matches that exact session; a bare name also matches any
    session whose name starts with it.
    """

    def __init__(self, tmux_exe: str = "tmux", logger: logging.Logger | None = None):
        self.tmux_exe = tmux_exe
        self._logger = logger or logging.getLogger(__name__)

    async def _tmux(self, *args: str) -> tuple[int, str, str]:
        return await run(self.tmux_exe, *args)

    async def create_session(self, session_id: str, command: str, work_dir: PathLike) -> None:
        args = ["new-session", "-d", "-s", session_id, "-c", str(work_dir)]
        if command:
            args.append(command)
        rc, _, stderr = await self._tmux(*args)
        if rc != 0:
            raise SessionBackendError("tmux new-session", session_id, stderr.strip())
        await self._configure_status_bar(session_id)
        self._logger.info("tmux session created: %s (cwd=%s)", session_id, work_dir)

    async def _configure_status_bar(self, session_id: str) -> None:
        """Mouse support plus a branded status bar; failures are cosmetic and ignored."""
        options = [
            ("mouse", "on"),
            ("status-style", f"bg={_STATUS_BG},fg={_STATUS_FG}"),
            (
                "status-left",
                f"#[fg={_BRAND},bold] crAIzy #[fg={_SEPARATOR}]│ #[fg={_ACCENT}]#{{session_name}} ",
            ),
            ("status-left-length", "50"),
            (
                "status-right",
                f"#[fg={_MUTED}]Detach: Ctrl+B, D #[fg={_SEPARATOR}]│ #[fg={_ACCENT}]%H:%M ",
            ),
            ("status-right-length", "40"),
            ("status-justify", "centre"),
            ("window-status-format", f"#[fg={_MUTED}] #W "),
            ("window-status-current-format", f"#[fg={_ACCENT},bold] #W "),
        ]
        for name, value in options:
            rc, _, stderr = await self._tmux("set-option", "-t", f"={session_id}", name, value)
            if rc != 0:
                self._logger.debug("tmux set-option %s failed for %s: %s", name, session_id, stderr)

    async def kill_session(self, session_id: str) -> None:
        rc, _, stderr = await self._tmux("kill-session", "-t", f"={session_id}")
        if rc != 0:
            raise SessionBackendError("tmux kill-session", session_id, stderr.strip())
        self._logger.info("tmux session killed: %s", session_id)

    async def list_sessions(self) -> list[str]:
        rc, stdout, stderr = await self._tmux("list-sessions", "-F", "#{session_name}")
        if rc != 0:
            # Also the "no server running" case
            raise SessionBackendError("tmux list-sessions", detail=stderr.strip())
        sessions = [line for line in stdout.splitlines() if line.strip()]
        self._logger.debug("Listed %d tmux sessions", len(sessions))
        return sessions

    async def session_exists(self, session_id: str) -> bool:
        rc, _, _ = await self._tmux("has-session", "-t", f"={session_id}")
        return rc == 0

    async def capture_pane(self, session_id: str, lines: int) -> str:
        rc, stdout, stderr = await self._tmux(
            "capture-pane", "-t", f"={session_id}:", "-p", "-S", f"-{lines}"
        )
        if rc != 0:
            raise SessionBackendError("tmux capture-pane", session_id, stderr.strip())
        return stdout

    async def attach(self, session_id: str) -> None:
        """Attach with the caller's terminal; blocks until the user detaches."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.tmux_exe, "attach-session", "-t", f"={session_id}"
            )
        except OSError as exc:
            raise SessionBackendError("tmux attach", session_id, str(exc)) from exc
        rc = await proc.wait()
        if rc != 0:
            raise SessionBackendError("tmux attach", session_id, f"exit status {rc}")

    async def send_keys(self, session_id: str, text: str) -> None:
        """Type ``text`` literally, then press Enter as a separate keystroke."""
        rc, _, stderr = await self._tmux("send-keys", "-l", "-t", f"={session_id}:", text)
        if rc != 0:
            raise SessionBackendError("tmux send-keys", session_id, stderr.strip())
        rc, _, stderr = await self._tmux("send-keys", "-t", f"={session_id}:", "C-m")
        if rc != 0:
            raise SessionBackendError("tmux send-keys", session_id, stderr.strip())
        self._logger.debug("Sent %d chars to %s", len(text), session_id)
