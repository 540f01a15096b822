"""craizy CLI entry point and composition root.

This is the only module that names concrete backends (tmux, git, SQLite);
everything below it is typed against the protocols in ``craizy.backends.base``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shutil
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from craizy.adapters import wire_adapters
from craizy.backends.base import VersionControl
from craizy.backends.git import GitClient
from craizy.backends.tmux import TmuxClient
from craizy.config import (
    AGENTS_FILE,
    CONFIG_FILE,
    CRAIZY_DIR,
    DEFAULT_AGENTS_YAML,
    DEFAULT_CONFIG_YAML,
    AgentTypeConfig,
    CraizyConfig,
    load_agents,
    load_config,
)
from craizy.dispatcher import EventDispatcher
from craizy.errors import CraizyError
from craizy.logging_setup import configure_logging
from craizy.messaging import MessageService
from craizy.models import HUMAN_PARTICIPANT_ID, MessageType
from craizy.service import AgentService
from craizy.store import Database, SqliteAgentStore, SqliteMessageStore

logger = logging.getLogger("craizy")

GITIGNORE_ENTRY = ".craizy/"


# ── `craizy init` ────────────────────────────────────────────────────────────


async def init_project(
    repo_root: Path,
    git: VersionControl,
    confirm: Callable[[str], str] = input,
) -> bool:
    """Scaffold a craizy project in ``repo_root``.

    Offers to ``git init`` when the directory is not a repository (declining
    leaves git integration off), adds ``.craizy/`` to .gitignore, writes the
    default AGENTS.yml and config.yaml, and makes an initial commit in a
    freshly initialized repository so worktrees have a base to branch from.
    Existing files are left alone.

    Returns True when the directory is (now) a git repository.
    """
    craizy_dir = repo_root / CRAIZY_DIR
    fresh_repo = False

    is_repo = await git.is_repo(repo_root)
    if not is_repo:
        answer = confirm(f"{repo_root} is not a git repository. Initialize one? [y/N] ")
        if answer.strip().lower() in ("y", "yes"):
            await git.init(repo_root)
            is_repo = fresh_repo = True
        else:
            print("Skipping git init; agents will share the work directory.")

    craizy_dir.mkdir(parents=True, exist_ok=True)

    gitignore = repo_root / ".gitignore"
    lines = gitignore.read_text().splitlines() if gitignore.exists() else []
    if GITIGNORE_ENTRY not in lines and CRAIZY_DIR not in lines:
        with open(gitignore, "a") as f:
            if lines and lines[-1] != "":
                f.write("\n")
            f.write(f"{GITIGNORE_ENTRY}\n")

    for filename, content in [(AGENTS_FILE, DEFAULT_AGENTS_YAML), (CONFIG_FILE, DEFAULT_CONFIG_YAML)]:
        path = craizy_dir / filename
        if not path.exists():
            path.write_text(content)

    if fresh_repo:
        await git.commit_all(repo_root, "Initial commit (craizy init)")

    print(f"Initialized craizy project at {craizy_dir}")
    print(f"  Agents: {craizy_dir / AGENTS_FILE}")
    print(f"  Git:    {'enabled' if is_repo else 'disabled'}")
    return is_repo


# ── Composition root ─────────────────────────────────────────────────────────


@dataclass
class Runtime:
    config: CraizyConfig
    agents: AgentService
    messages: MessageService
    agent_types: list[AgentTypeConfig]


@asynccontextmanager
async def open_runtime(repo_root: Path, config: CraizyConfig) -> AsyncIterator[Runtime]:
    """Wire real backends together, run startup reconciliation, and yield."""
    if not shutil.which("tmux"):
        raise CraizyError("tmux not found on PATH")

    db_path = config.runtime.resolved_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    database = Database(str(db_path))
    await database.initialize()
    try:
        store = SqliteAgentStore(database)
        sessions = TmuxClient()

        git: VersionControl | None = None
        if config.runtime.git_enabled:
            client = GitClient(repo_root)
            if await client.is_repo(repo_root):
                git = client
            else:
                logger.warning("%s is not a git repository; git integration disabled", repo_root)

        dispatcher = EventDispatcher()
        wire_adapters(dispatcher, store, sessions, git)
        service = AgentService(
            sessions,
            store,
            dispatcher,
            git,
            config.project.name,
            repo_root,
            worktrees_dir=config.runtime.worktrees_dir,
        )
        messages = MessageService(SqliteMessageStore(database), sessions, store)

        agents_path = repo_root / CRAIZY_DIR / AGENTS_FILE
        agent_types = load_agents(agents_path) if agents_path.exists() else []

        await service.reconcile()
        yield Runtime(config, service, messages, agent_types)
    finally:
        await database.close()


# ── Commands ─────────────────────────────────────────────────────────────────


async def _cmd_agents(rt: Runtime, args) -> int:
    if not rt.agent_types:
        print(f"No agent types configured (see {CRAIZY_DIR}/{AGENTS_FILE})")
        return 0
    for agent_type in rt.agent_types:
        print(f"{agent_type.name:<16} {agent_type.command}")
    return 0


async def _cmd_list(rt: Runtime, args) -> int:
    agents = await rt.agents.list()
    if not agents:
        print("No active agents.")
        return 0
    for agent in agents:
        created = agent.created_at.strftime("%Y-%m-%d %H:%M")
        branch = agent.branch or "-"
        print(f"{agent.id:<40} {agent.agent_type:<12} {branch:<40} {created}")
    return 0


async def _cmd_new(rt: Runtime, args) -> int:
    command = args.agent_command
    if command is None:
        match = next((t for t in rt.agent_types if t.name == args.agent_type), None)
        if match is None:
            print(
                f"Error: unknown agent type {args.agent_type!r}; pass --command or add it "
                f"to {CRAIZY_DIR}/{AGENTS_FILE}",
                file=sys.stderr,
            )
            return 1
        command = match.command

    agent = await rt.agents.create(args.agent_type, args.name, command)
    if not await rt.agents.exists(agent.id):
        print(f"Error: agent {agent.id} failed to start (see log)", file=sys.stderr)
        return 1
    print(f"Started {agent.id}")
    print(f"  Work dir: {agent.work_dir}")
    if agent.branch:
        print(f"  Branch:   {agent.branch} (from {agent.base_branch})")
    return 0


async def _cmd_kill(rt: Runtime, args) -> int:
    dirty = await rt.agents.check_kill(args.id)
    if dirty and not args.force:
        print(
            f"Agent {args.id} has uncommitted changes. Re-run with --force to stash them "
            "(or --force --discard to drop them).",
            file=sys.stderr,
        )
        return 1
    if args.force:
        await rt.agents.force_kill(args.id, discard_changes=args.discard)
    else:
        await rt.agents.kill(args.id)
    print(f"Killed {args.id}")
    return 0


async def _cmd_merge(rt: Runtime, args) -> int:
    result = await rt.agents.merge_agent(args.id)
    if result.success:
        print(f"Merged {args.id}")
        if result.stashed:
            print("  Local changes were stashed and reapplied.")
        return 0
    print(f"Merge of {args.id} failed: {result.conflict_error}", file=sys.stderr)
    print("Resolve the conflicts and commit, or run 'craizy merge-abort'.", file=sys.stderr)
    return 1


async def _cmd_merge_abort(rt: Runtime, args) -> int:
    await rt.agents.abort_merge()
    print("Merge aborted.")
    return 0


async def _cmd_attach(rt: Runtime, args) -> int:
    detached = await rt.agents.attach(args.id)
    if detached.error:
        print(f"Error: {detached.error}", file=sys.stderr)
        return 1
    return 0


async def _cmd_capture(rt: Runtime, args) -> int:
    lines = args.lines or rt.config.runtime.capture_lines
    print(await rt.agents.capture_output(args.id, lines), end="")
    return 0


async def _cmd_reconcile(rt: Runtime, args) -> int:
    # open_runtime already reconciled; a second pass reports a clean slate
    # unless something changed in between.
    report = await rt.agents.reconcile()
    print(f"Terminated: {', '.join(report.terminated) or '-'}")
    print(f"Orphans killed: {', '.join(report.killed) or '-'}")
    if report.listing_failed:
        print("tmux server not running; orphan sweep skipped.")
    return 0


async def _cmd_msg(rt: Runtime, args) -> int:
    if args.msg_command == "send":
        message = await rt.messages.send(
            args.sender, args.recipient, args.type, args.content, args.related_work
        )
        state = "delivered" if message.read else "queued"
        print(f"Message {message.id} {state}")
        return 0

    if args.msg_command == "list":
        for message in await rt.messages.list(args.recipient, args.limit):
            marker = " " if message.read else "*"
            print(f"{marker} {message.id}  {message.sender:<24} {message.type.value:<10} {message.content}")
        return 0

    if args.msg_command == "read":
        message = await rt.messages.read(args.message_id)
        print(f"From:    {message.sender}")
        print(f"To:      {message.recipient}")
        print(f"Type:    {message.type.value}")
        if message.related_work:
            print(f"Related: {message.related_work}")
        print()
        print(message.content)
        return 0

    # unread
    print(await rt.messages.unread_count(args.recipient))
    return 0


_COMMANDS = {
    "agents": _cmd_agents,
    "list": _cmd_list,
    "new": _cmd_new,
    "kill": _cmd_kill,
    "merge": _cmd_merge,
    "merge-abort": _cmd_merge_abort,
    "attach": _cmd_attach,
    "capture": _cmd_capture,
    "reconcile": _cmd_reconcile,
    "msg": _cmd_msg,
}


async def run_command(args, config: CraizyConfig) -> int:
    repo_root: Path = args.repo_root.resolve()
    async with open_runtime(repo_root, config) as rt:
        return await _COMMANDS[args.command](rt, args)


# ── Argument parsing ─────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="craizy",
        description="craizy — run coding agents side by side in tmux sessions and git worktrees",
    )
    parser.add_argument(
        "--repo-root",
        type=Path,
        default=Path.cwd(),
        help="Path to the project directory (default: current directory)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console logging level (default: WARNING); the log file always gets DEBUG",
    )

    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init", help="Initialize craizy in a project directory")
    init_parser.add_argument(
        "-y", "--yes", action="store_true", help="Answer yes to the git init prompt"
    )

    subparsers.add_parser("agents", help="List configured agent types")
    subparsers.add_parser("list", help="List active agents")

    new_parser = subparsers.add_parser("new", help="Start a new agent")
    new_parser.add_argument("agent_type", help="Agent type from AGENTS.yml")
    new_parser.add_argument("name", help="Agent name, e.g. a task label")
    new_parser.add_argument(
        "--command", dest="agent_command", help="Command to run (default: from AGENTS.yml)"
    )

    kill_parser = subparsers.add_parser("kill", help="Kill an agent and remove its worktree")
    kill_parser.add_argument("id", help="Agent id")
    kill_parser.add_argument(
        "--force", action="store_true", help="Kill even with uncommitted changes (stashes them)"
    )
    kill_parser.add_argument(
        "--discard", action="store_true", help="With --force, drop uncommitted changes instead"
    )

    merge_parser = subparsers.add_parser("merge", help="Merge an agent's branch into the current branch")
    merge_parser.add_argument("id", help="Agent id")

    subparsers.add_parser("merge-abort", help="Abort an in-progress merge")

    attach_parser = subparsers.add_parser("attach", help="Attach to an agent's tmux session")
    attach_parser.add_argument("id", help="Agent id")

    capture_parser = subparsers.add_parser("capture", help="Print an agent's recent output")
    capture_parser.add_argument("id", help="Agent id")
    capture_parser.add_argument(
        "--lines", type=int, default=0, help="Number of lines (default: runtime.capture_lines)"
    )

    subparsers.add_parser("reconcile", help="Repair drift between the store and tmux")

    msg_parser = subparsers.add_parser("msg", help="Send and read inter-agent messages")
    msg_sub = msg_parser.add_subparsers(dest="msg_command", required=True)

    send_parser = msg_sub.add_parser("send", help="Send a message")
    send_parser.add_argument("recipient", help=f"Agent id or '{HUMAN_PARTICIPANT_ID}'")
    send_parser.add_argument("type", choices=[t.value for t in MessageType])
    send_parser.add_argument("content")
    send_parser.add_argument("--from", dest="sender", default=HUMAN_PARTICIPANT_ID)
    send_parser.add_argument("--related-work", default=None)

    list_parser = msg_sub.add_parser("list", help="List messages for a recipient, newest first")
    list_parser.add_argument("recipient", nargs="?", default=HUMAN_PARTICIPANT_ID)
    list_parser.add_argument("--limit", type=int, default=20)

    read_parser = msg_sub.add_parser("read", help="Show a message and mark it read")
    read_parser.add_argument("message_id")

    unread_parser = msg_sub.add_parser("unread", help="Count unread messages")
    unread_parser.add_argument("recipient", nargs="?", default=HUMAN_PARTICIPANT_ID)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    repo_root: Path = args.repo_root.resolve()

    if args.command == "init":
        configure_logging(None, args.log_level)
        confirm = (lambda _prompt: "y") if args.yes else input
        try:
            asyncio.run(init_project(repo_root, GitClient(repo_root), confirm))
        except CraizyError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        return

    craizy_dir = repo_root / CRAIZY_DIR
    if not craizy_dir.exists():
        print(f"Error: {CRAIZY_DIR}/ directory not found at {craizy_dir}", file=sys.stderr)
        print("Run 'craizy init' to create one, or specify --repo-root", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_config(craizy_dir, repo_root)
        configure_logging(repo_root / config.runtime.log_dir, args.log_level)
        exit_code = asyncio.run(run_command(args, config))
    except (CraizyError, FileNotFoundError, ValueError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
