"""git-backed version control client.

Repository-wide commands (branches, worktrees, merge) run against
``repo_root``; per-checkout commands (status, stash, reset) run against the
path they are given, which may be a worktree.
"""

from __future__ import annotations

import logging
from pathlib import Path

from craizy.backends.base import PathLike
from craizy.backends.process import run
from craizy.errors import VersionControlError

STASH_MESSAGE = "craizy-auto-stash"


class GitClient:
    def __init__(
        self,
        repo_root: PathLike,
        git_exe: str = "git",
        logger: logging.Logger | None = None,
    ):
        self.repo_root = Path(repo_root)
        self.git_exe = git_exe
        self._logger = logger or logging.getLogger(__name__)

    async def _git_in(self, cwd: PathLike, *args: str) -> tuple[int, str, str]:
        """Run a git command in a specific directory (e.g. inside a worktree)."""
        return await run(self.git_exe, "-C", str(cwd), *args)

    async def _git(self, *args: str) -> tuple[int, str, str]:
        return await self._git_in(self.repo_root, *args)

    def _check(self, operation: str, target: str, result: tuple[int, str, str]) -> str:
        rc, stdout, stderr = result
        if rc != 0:
            raise VersionControlError(operation, target, stderr.strip() or f"exit status {rc}")
        return stdout

    # ── Repository ───────────────────────────────────────────────────────

    async def is_repo(self, path: PathLike) -> bool:
        rc, _, _ = await self._git_in(path, "rev-parse", "--git-dir")
        return rc == 0

    async def init(self, path: PathLike) -> None:
        self._check("git init", str(path), await run(self.git_exe, "init", str(path)))
        self._logger.info("Initialized git repository at %s", path)

    async def current_branch(self, path: PathLike) -> str:
        out = self._check(
            "git rev-parse", str(path), await self._git_in(path, "rev-parse", "--abbrev-ref", "HEAD")
        )
        return out.strip()

    # ── Branches & worktrees ─────────────────────────────────────────────

    async def branch_exists(self, branch: str) -> bool:
        rc, _, _ = await self._git("show-ref", "--verify", "--quiet", f"refs/heads/{branch}")
        return rc == 0

    async def create_worktree(self, path: PathLike, branch: str, base_branch: str) -> None:
        abs_path = str(Path(path).resolve())
        if await self.branch_exists(branch):
            self._check(
                "git worktree add", abs_path, await self._git("worktree", "add", abs_path, branch)
            )
            self._logger.info("Created worktree %s on existing branch %s", abs_path, branch)
            return

        self._check(
            "git worktree add",
            abs_path,
            await self._git("worktree", "add", "-b", branch, abs_path, base_branch),
        )
        self._logger.info("Created worktree %s on new branch %s (from %s)", abs_path, branch, base_branch)

    async def remove_worktree(self, path: PathLike) -> None:
        abs_path = str(Path(path).resolve())
        self._check(
            "git worktree remove",
            abs_path,
            await self._git("worktree", "remove", "--force", abs_path),
        )
        self._logger.info("Removed worktree %s", abs_path)

    async def delete_branch(self, branch: str) -> None:
        self._check("git branch -D", branch, await self._git("branch", "-D", branch))
        self._logger.info("Deleted branch %s", branch)

    # ── Working tree state ───────────────────────────────────────────────

    async def has_uncommitted_changes(self, path: PathLike) -> bool:
        rc, stdout, stderr = await self._git_in(path, "status", "--porcelain")
        if rc != 0:
            self._logger.warning("git status failed in %s: %s", path, stderr.strip())
            return False
        return bool(stdout.strip())

    async def discard_changes(self, path: PathLike) -> None:
        self._check("git reset --hard", str(path), await self._git_in(path, "reset", "--hard", "HEAD"))
        self._check("git clean", str(path), await self._git_in(path, "clean", "-fd"))
        self._logger.info("Discarded changes in %s", path)

    async def stash(self, path: PathLike) -> None:
        self._check(
            "git stash push",
            str(path),
            await self._git_in(path, "stash", "push", "-u", "-m", STASH_MESSAGE),
        )
        self._logger.info("Stashed changes in %s", path)

    async def stash_pop(self, path: PathLike) -> None:
        self._check("git stash pop", str(path), await self._git_in(path, "stash", "pop"))
        self._logger.info("Popped stash in %s", path)

    # ── Merge ────────────────────────────────────────────────────────────

    async def merge(self, branch: str) -> None:
        self._check("git merge", branch, await self._git("merge", branch, "--no-edit"))
        self._logger.info("Merged %s", branch)

    async def merge_abort(self) -> None:
        self._check("git merge --abort", str(self.repo_root), await self._git("merge", "--abort"))
        self._logger.info("Aborted merge in %s", self.repo_root)

    async def commit_all(self, path: PathLike, message: str) -> None:
        self._check("git add", str(path), await self._git_in(path, "add", "-A"))
        self._check(
            "git commit",
            str(path),
            await self._git_in(path, "commit", "--allow-empty", "-m", message),
        )
        self._logger.info("Committed %s: %s", path, message)
