"""Inter-agent messaging.

Messages are always persisted.  When the recipient is a live agent they are
also typed straight into its tmux pane and marked read; otherwise they wait
in the store until the recipient asks for them.  The human operator uses the
reserved participant id ``"human"`` and is never delivered to.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from craizy.errors import MessageNotFoundError, SessionBackendError
from craizy.models import HUMAN_PARTICIPANT_ID, Message, MessageType

if TYPE_CHECKING:
    from craizy.backends.base import AgentStore, MessageStore, SessionBackend


def format_notification(message: Message) -> str:
    return f"\n[MESSAGE from {message.sender} ({message.type.value})]: {message.content}\n"


class MessageService:
    def __init__(
        self,
        store: MessageStore,
        sessions: SessionBackend,
        agents: AgentStore,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.sessions = sessions
        self.agents = agents
        self._logger = logger or logging.getLogger(__name__)

    async def send(
        self,
        sender: str,
        recipient: str,
        type: MessageType | str,
        content: str,
        related_work: str | None = None,
    ) -> Message:
        """Persist a message and push it to the recipient's pane if it is live.

        Raises ``ValueError`` for an unknown message type.
        """
        message = Message(
            sender=sender,
            recipient=recipient,
            type=MessageType(type),
            content=content,
            related_work=related_work,
        )
        await self.store.save(message)
        self._logger.info("Message %s: %s -> %s (%s)", message.id, sender, recipient, message.type.value)

        if await self._is_live(recipient):
            try:
                await self.sessions.send_keys(recipient, format_notification(message))
            except SessionBackendError as exc:
                self._logger.warning("Could not deliver message %s to %s: %s", message.id, recipient, exc)
            else:
                await self.store.mark_read(message.id)
                message.read = True
        return message

    async def _is_live(self, recipient: str) -> bool:
        if recipient == HUMAN_PARTICIPANT_ID:
            return False
        if not await self.agents.exists(recipient):
            return False
        return await self.sessions.session_exists(recipient)

    async def list_unread(self, recipient: str) -> list[Message]:
        return await self.store.list_unread(recipient)

    async def list(self, recipient: str, limit: int = 0) -> list[Message]:
        """Newest first; ``limit <= 0`` means no limit."""
        return await self.store.list(recipient, limit)

    async def read(self, message_id: str) -> Message:
        """Fetch a message and mark it read."""
        message = await self.store.get(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        if not message.read:
            await self.store.mark_read(message_id)
            message = await self.store.get(message_id) or message
        return message

    async def unread_count(self, recipient: str) -> int:
        return await self.store.unread_count(recipient)

    async def mark_read(self, message_id: str) -> None:
        await self.store.mark_read(message_id)
