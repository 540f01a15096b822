"""SQLite-backed agent and message stores.

One database file per user (``~/.craizy/craizy.db`` by default) holds the
agents of every project; queries filter by project where it matters.  The
DB is expected to live on local disk, not a network filesystem.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

import aiosqlite

from craizy.errors import StoreError
from craizy.models import Agent, AgentStatus, Message, MessageType

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    project TEXT NOT NULL,
    agent_type TEXT NOT NULL,
    name TEXT NOT NULL,
    command TEXT NOT NULL,
    work_dir TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    terminated_at TEXT,
    branch TEXT,
    base_branch TEXT
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    sender TEXT NOT NULL,
    recipient TEXT NOT NULL,
    type TEXT NOT NULL,
    content TEXT NOT NULL,
    related_work TEXT,
    read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    read_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_agents_project ON agents(project);
CREATE INDEX IF NOT EXISTS idx_agents_status ON agents(status);
CREATE INDEX IF NOT EXISTS idx_messages_recipient_unread ON messages(recipient, read);
CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages(recipient, created_at);
"""

_AGENT_COLUMNS = (
    "id, project, agent_type, name, command, work_dir, status, "
    "created_at, terminated_at, branch, base_branch"
)
_MESSAGE_COLUMNS = "id, sender, recipient, type, content, related_work, read, created_at, read_at"


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Database:
    """Owns the aiosqlite connection shared by both stores."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open database and create tables."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA)
        await self._db.commit()
        logger.info("Database initialized: %s", self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Database not initialized — call initialize() first")
        return self._db


class SqliteAgentStore:
    """AgentStore on top of the ``agents`` table."""

    def __init__(self, database: Database):
        self._database = database

    @property
    def db(self) -> aiosqlite.Connection:
        return self._database.conn

    async def add(self, agent: Agent) -> None:
        try:
            await self.db.execute(
                f"INSERT INTO agents ({_AGENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    agent.id,
                    agent.project,
                    agent.agent_type,
                    agent.name,
                    agent.command,
                    agent.work_dir,
                    agent.status.value,
                    _ts(agent.created_at),
                    _ts(agent.terminated_at),
                    agent.branch,
                    agent.base_branch,
                ),
            )
            await self.db.commit()
        except sqlite3.IntegrityError as exc:
            raise StoreError(f"failed to insert agent {agent.id!r}: {exc}") from exc
        logger.info("Stored agent %s (status=%s)", agent.id, agent.status.value)

    async def remove(self, agent_id: str) -> None:
        await self.db.execute("DELETE FROM agents WHERE id = ?", (agent_id,))
        await self.db.commit()
        logger.info("Removed agent record %s", agent_id)

    async def get(self, agent_id: str) -> Agent | None:
        cursor = await self.db.execute(
            f"SELECT {_AGENT_COLUMNS} FROM agents WHERE id = ?", (agent_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_agent(row) if row else None

    async def list(self) -> list[Agent]:
        cursor = await self.db.execute(
            f"SELECT {_AGENT_COLUMNS} FROM agents ORDER BY created_at DESC"
        )
        rows = await cursor.fetchall()
        return [self._row_to_agent(row) for row in rows]

    async def exists(self, agent_id: str) -> bool:
        cursor = await self.db.execute("SELECT 1 FROM agents WHERE id = ?", (agent_id,))
        return await cursor.fetchone() is not None

    async def update_status(self, agent_id: str, status: AgentStatus) -> None:
        terminated_at = (
            datetime.now(timezone.utc).isoformat() if status == AgentStatus.TERMINATED else None
        )
        try:
            await self.db.execute(
                "UPDATE agents SET status = ?, terminated_at = ? WHERE id = ?",
                (status.value, terminated_at, agent_id),
            )
            await self.db.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"failed to update agent {agent_id!r}: {exc}") from exc
        logger.info("Agent %s -> %s", agent_id, status.value)

    @staticmethod
    def _row_to_agent(row: aiosqlite.Row) -> Agent:
        return Agent(
            id=row["id"],
            project=row["project"],
            agent_type=row["agent_type"],
            name=row["name"],
            command=row["command"],
            work_dir=row["work_dir"],
            status=AgentStatus(row["status"]),
            created_at=_parse_ts(row["created_at"]),
            terminated_at=_parse_ts(row["terminated_at"]),
            branch=row["branch"],
            base_branch=row["base_branch"],
        )


class SqliteMessageStore:
    """MessageStore on top of the ``messages`` table."""

    def __init__(self, database: Database):
        self._database = database

    @property
    def db(self) -> aiosqlite.Connection:
        return self._database.conn

    async def save(self, message: Message) -> None:
        await self.db.execute(
            f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                message.id,
                message.sender,
                message.recipient,
                message.type.value,
                message.content,
                message.related_work,
                int(message.read),
                _ts(message.created_at),
                _ts(message.read_at),
            ),
        )
        await self.db.commit()
        logger.debug("Saved message %s (%s -> %s)", message.id, message.sender, message.recipient)

    async def mark_read(self, message_id: str) -> None:
        await self.db.execute(
            "UPDATE messages SET read = 1, read_at = ? WHERE id = ?",
            (datetime.now(timezone.utc).isoformat(), message_id),
        )
        await self.db.commit()

    async def list_unread(self, recipient: str) -> list[Message]:
        cursor = await self.db.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE recipient = ? AND read = 0 "
            "ORDER BY created_at ASC",
            (recipient,),
        )
        return [self._row_to_message(row) for row in await cursor.fetchall()]

    async def list(self, recipient: str, limit: int = 0) -> list[Message]:
        query = f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE recipient = ? ORDER BY created_at DESC"
        params: tuple = (recipient,)
        if limit > 0:
            query += " LIMIT ?"
            params = (recipient, limit)
        cursor = await self.db.execute(query, params)
        return [self._row_to_message(row) for row in await cursor.fetchall()]

    async def get(self, message_id: str) -> Message | None:
        cursor = await self.db.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", (message_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_message(row) if row else None

    async def unread_count(self, recipient: str) -> int:
        cursor = await self.db.execute(
            "SELECT COUNT(*) FROM messages WHERE recipient = ? AND read = 0", (recipient,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> Message:
        return Message(
            id=row["id"],
            sender=row["sender"],
            recipient=row["recipient"],
            type=MessageType(row["type"]),
            content=row["content"],
            related_work=row["related_work"],
            read=bool(row["read"]),
            created_at=_parse_ts(row["created_at"]),
            read_at=_parse_ts(row["read_at"]),
        )
