from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.exceptions import PersistenceError
from devfusion.models.chat import SessionRecord
from devfusion.models.session_db import ProjectSessionDB
from devfusion.models.user import User
from devfusion.tools.clock import as_utc


class SessionRepository:
    """Store of connection sessions used for usage analytics."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _session_db_to_model(self, session_db: ProjectSessionDB) -> SessionRecord:
        return SessionRecord(
            id=session_db.id,
            project_id=session_db.project_id,
            user_id=session_db.user_id,
            login_time=as_utc(session_db.login_time),
            logout_time=as_utc(session_db.logout_time) if session_db.logout_time else None,
            duration=session_db.duration,
        )

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to {action}: {exc}") from exc

    async def open(self, project_id: str, user_id: str, login_time: datetime) -> str:
        session_db = ProjectSessionDB(
            id=uuid4().hex,
            project_id=project_id,
            user_id=user_id,
            login_time=as_utc(login_time),
        )
        self.session.add(session_db)
        await self._commit(f"open session for project '{project_id}'")
        return session_db.id

    async def get(self, session_id: str) -> SessionRecord | None:
        session_db = await self.session.get(ProjectSessionDB, session_id)
        return self._session_db_to_model(session_db) if session_db else None

    async def close(self, session_id: str, logout_time: datetime, duration: float) -> SessionRecord | None:
        session_db = await self.session.get(ProjectSessionDB, session_id)
        if session_db is None:
            return None
        session_db.logout_time = as_utc(logout_time)
        session_db.duration = duration
        await self._commit(f"close session '{session_id}'")
        return self._session_db_to_model(session_db)

    async def stats_by_email(self, project_id: str) -> dict[str, dict[str, float]]:
        """Aggregate login count and total seconds per user email.

        Sessions whose user no longer exists are skipped.
        """

        result = await self.session.execute(
            select(User.email, ProjectSessionDB.duration)
            .join(User, User.id == ProjectSessionDB.user_id)
            .where(ProjectSessionDB.project_id == project_id)
        )
        stats: dict[str, dict[str, float]] = {}
        for email, duration in result.all():
            entry = stats.setdefault(email, {"logins": 0, "totalDuration": 0.0})
            entry["logins"] += 1
            entry["totalDuration"] += duration or 0.0
        return stats
