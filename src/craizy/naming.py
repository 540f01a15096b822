"""Session identifiers.

Every agent is addressed by a tmux-safe session name built from the project,
agent type and user-supplied name.  The same string doubles as the agent's
store key and, when git integration is on, its branch name.
"""

from __future__ import annotations

import re

SESSION_PREFIX = "craizy"

_DISALLOWED_RE = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUN_RE = re.compile(r"-{2,}")


def sanitize(name: str) -> str:
    """Normalise a free-form name into a tmux/git-safe slug.

    Lowercases, drops ``.`` and ``:``, turns spaces into hyphens, removes
    anything outside ``[a-z0-9-]``, collapses hyphen runs and trims hyphens
    from both ends.  Input with nothing usable left yields ``""``.
    """
    name = name.lower()
    name = name.replace(".", "").replace(":", "")
    name = name.replace(" ", "-")
    name = _DISALLOWED_RE.sub("", name)
    name = _HYPHEN_RUN_RE.sub("-", name)
    return name.strip("-")


def build_id(project: str, agent_type: str, name: str) -> str:
    """e.g. ``build_id("demo", "Claude", "task 1") == "craizy-demo-claude-task-1"``."""
    return "-".join(
        (SESSION_PREFIX, sanitize(project), sanitize(agent_type), sanitize(name))
    )


def project_prefix(project: str) -> str:
    """Prefix shared by every session belonging to ``project``."""
    return f"{SESSION_PREFIX}-{sanitize(project)}-"
