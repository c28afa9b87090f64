from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.exceptions import PersistenceError
from devfusion.models.chat import ChatMessage, ChatSender
from devfusion.models.message_db import ProjectMessageDB
from devfusion.tools.clock import as_utc


class MessageRepository:
    """Append-only store of project chat messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _message_db_to_model(self, message_db: ProjectMessageDB) -> ChatMessage:
        return ChatMessage(
            id=message_db.id,
            project_id=message_db.project_id,
            sender=ChatSender.model_validate(message_db.sender),
            message=message_db.message or "",
            timestamp=as_utc(message_db.timestamp),
        )

    async def append(
        self,
        project_id: str,
        sender: ChatSender,
        text: str,
        timestamp: datetime,
    ) -> ChatMessage:
        message_db = ProjectMessageDB(
            id=uuid4().hex,
            project_id=project_id,
            sender=sender.to_wire(),
            message=text,
            timestamp=as_utc(timestamp),
        )
        self.session.add(message_db)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to save message for project '{project_id}': {exc}") from exc
        await self.session.refresh(message_db)
        return self._message_db_to_model(message_db)

    async def list_by_project(self, project_id: str) -> list[ChatMessage]:
        result = await self.session.execute(
            select(ProjectMessageDB)
            .where(ProjectMessageDB.project_id == project_id)
            .order_by(ProjectMessageDB.timestamp.asc(), ProjectMessageDB.id.asc())
        )
        return [self._message_db_to_model(m) for m in result.scalars().all()]

    async def search(
        self,
        project_id: str,
        *,
        query: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ChatMessage]:
        statement = select(ProjectMessageDB).where(ProjectMessageDB.project_id == project_id)
        if query:
            statement = statement.where(
                func.lower(ProjectMessageDB.message).contains(query.lower(), autoescape=True)
            )
        if start is not None:
            statement = statement.where(ProjectMessageDB.timestamp >= as_utc(start))
        if end is not None:
            statement = statement.where(ProjectMessageDB.timestamp <= as_utc(end))
        result = await self.session.execute(statement.order_by(ProjectMessageDB.timestamp.desc()))
        return [self._message_db_to_model(m) for m in result.scalars().all()]
