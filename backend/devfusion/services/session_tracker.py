from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devfusion.exceptions import PersistenceError
from devfusion.models.chat import SessionRecord
from devfusion.repositories.session_repository import SessionRepository
from devfusion.tools.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class SessionTracker:
    """Records connect and disconnect times of realtime connections.

    Tracking is best effort: failures are logged and never reach the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    async def open(self, project_id: str, user_id: str) -> str | None:
        try:
            async with self.session_factory() as session:
                return await SessionRepository(session).open(project_id, user_id, self.clock())
        except (PersistenceError, SQLAlchemyError) as exc:
            logger.error("Failed to create session for user %s in project %s: %s", user_id, project_id, exc)
            return None

    async def close(self, session_id: str | None) -> SessionRecord | None:
        if not session_id:
            return None

        logout_time = self.clock()
        try:
            async with self.session_factory() as session:
                repo = SessionRepository(session)
                record = await repo.get(session_id)
                if record is None:
                    logger.warning("Session %s not found on disconnect", session_id)
                    return None
                duration = (logout_time - record.login_time).total_seconds()
                return await repo.close(session_id, logout_time, duration)
        except (PersistenceError, SQLAlchemyError) as exc:
            logger.error("Failed to update session %s on disconnect: %s", session_id, exc)
            return None
