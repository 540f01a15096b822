"""Configuration loading for craizy.

Reads ``.craizy/config.yaml`` (optional) and the agent-type catalogue in
``.craizy/AGENTS.yml``.  Pydantic models validate both files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CRAIZY_DIR = ".craizy"
CONFIG_FILE = "config.yaml"
AGENTS_FILE = "AGENTS.yml"


# ── Config Models ────────────────────────────────────────────────────────────


class ProjectConfig(BaseModel):
    name: str


class RuntimeConfig(BaseModel):
    worktrees_dir: str = ".craizy/worktrees"  # relative to the work dir
    db_path: str = "~/.craizy/craizy.db"
    log_dir: str = ".craizy"  # daily log files land here
    capture_lines: int = 200
    git_enabled: bool = True

    @field_validator("capture_lines")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"capture_lines must be positive, got {v}")
        return v

    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()


class CraizyConfig(BaseModel):
    project: ProjectConfig
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)


class AgentTypeConfig(BaseModel):
    """One entry of AGENTS.yml: a named command that can be launched as an agent."""

    name: str
    command: str

    @field_validator("name", "command")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


# ── Defaults written by `craizy init` ────────────────────────────────────────

DEFAULT_AGENTS_YAML = """\
# Agent types available to `craizy new <type> <name>`.
agents:
  - name: claude
    command: claude
  - name: aider
    command: aider
  - name: shell
    command: bash
"""

DEFAULT_CONFIG_YAML = """\
# craizy configuration. Every key is optional.
# project:
#   name: my-project
runtime:
  worktrees_dir: .craizy/worktrees
  db_path: ~/.craizy/craizy.db
  log_dir: .craizy
  capture_lines: 200
  git_enabled: true
"""


# ── Loaders ──────────────────────────────────────────────────────────────────


def load_config(craizy_dir: Path, work_dir: Path) -> CraizyConfig:
    """Load craizy configuration from a .craizy/ directory.

    A missing config.yaml is not an error: every setting has a default and the
    project name defaults to the basename of ``work_dir``.

    Raises:
        ValueError: If config validation fails.
    """
    raw: dict = {}
    config_path = craizy_dir / CONFIG_FILE
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.debug("No %s in %s; using defaults", CONFIG_FILE, craizy_dir)
    if not isinstance(raw, dict):
        raise ValueError(f"{CONFIG_FILE}: expected a mapping at the top level")

    project = raw.get("project") or {}
    if not isinstance(project, dict):
        raise ValueError(f"{CONFIG_FILE}: 'project' must be a mapping, got {type(project).__name__}")
    if not project.get("name"):
        project = {**project, "name": Path(work_dir).resolve().name}
    raw["project"] = project

    config = CraizyConfig(**raw)

    # Environment variable override, mostly for tests and sandboxes
    db_path = os.environ.get("CRAIZY_DB_PATH")
    if db_path:
        config.runtime.db_path = db_path

    logger.info("Loaded craizy config: project=%s", config.project.name)
    return config


def load_agents(path: Path) -> list[AgentTypeConfig]:
    """Load the agent-type catalogue from an AGENTS.yml file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If an entry is malformed or a name is repeated.
    """
    if not path.exists():
        raise FileNotFoundError(f"Agent catalogue not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    agents = [AgentTypeConfig(**entry) for entry in raw.get("agents") or []]
    seen: set[str] = set()
    for agent in agents:
        if agent.name in seen:
            raise ValueError(f"Duplicate agent type in {path}: {agent.name!r}")
        seen.add(agent.name)

    logger.debug("Loaded %d agent types from %s", len(agents), path)
    return agents
