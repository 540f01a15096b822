"""craizy — tmux-hosted agent sessions on isolated git worktrees."""

__version__ = "0.1.0"
