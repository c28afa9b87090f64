from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devfusion.exceptions import PersistenceError
from devfusion.models.chat import ChatMessage, ChatSender, InboundChatMessage
from devfusion.repositories.message_repository import MessageRepository
from devfusion.tools.clock import Clock, utcnow

logger = logging.getLogger(__name__)

PROJECT_MESSAGE_EVENT = "project-message"
PROJECT_ACTIVITY_EVENT = "project-activity"


class RoomEmitter(Protocol):
    """Sends an event once to a room: no acknowledgment, no retry."""

    async def emit(
        self,
        event: str,
        data: Any = None,
        *,
        room: str | None = None,
        skip_sid: str | None = None,
    ) -> None: ...


class MessageRelay:
    """Re-broadcasts chat messages to a room and appends them to history.

    Broadcast and persistence are independent; a failed write never
    retracts a broadcast.
    """

    def __init__(
        self,
        emitter: RoomEmitter,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
    ):
        self.emitter = emitter
        self.session_factory = session_factory
        self.clock = clock

    async def broadcast(self, room: str, payload: dict[str, Any], *, skip_sid: str | None = None) -> None:
        await self.emitter.emit(PROJECT_MESSAGE_EVENT, payload, room=room, skip_sid=skip_sid)

    async def persist(
        self,
        project_id: str,
        sender: ChatSender,
        text: str,
        timestamp: datetime | None = None,
    ) -> ChatMessage | None:
        try:
            async with self.session_factory() as session:
                return await MessageRepository(session).append(
                    project_id,
                    sender,
                    text,
                    timestamp or self.clock(),
                )
        except (PersistenceError, SQLAlchemyError) as exc:
            logger.error("Failed to save message for project %s: %s", project_id, exc)
            return None

    async def relay(
        self,
        sid: str,
        room: str,
        project_id: str,
        payload: Any,
    ) -> InboundChatMessage | None:
        """Forward *payload* to everyone in *room* except *sid*, then store it."""
        try:
            message = InboundChatMessage.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Dropping malformed %s from %s: %s", PROJECT_MESSAGE_EVENT, sid, exc)
            return None

        try:
            await self.broadcast(room, payload, skip_sid=sid)
        except Exception:
            logger.exception("Failed to relay message in room %s", room)
        await self.persist(project_id, message.sender, message.message, message.timestamp)
        return message
