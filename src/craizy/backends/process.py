"""Async subprocess helper shared by the tmux and git clients."""

from __future__ import annotations

import asyncio
from pathlib import Path


async def run(*cmd: str, cwd: str | Path | None = None) -> tuple[int, str, str]:
    """Run a command without blocking the event loop.

    Returns (returncode, stdout, stderr).  A missing executable is reported
    as returncode 127 with the OS error on stderr rather than raised.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return 127, "", str(exc)
    stdout_bytes, stderr_bytes = await proc.communicate()
    return (
        proc.returncode or 0,
        (stdout_bytes or b"").decode(errors="replace"),
        (stderr_bytes or b"").decode(errors="replace"),
    )
