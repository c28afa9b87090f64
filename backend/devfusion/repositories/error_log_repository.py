from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.models.error_log_db import ErrorLogDB


class ErrorLogRepository:
    """Memory of fix suggestions for previously seen error messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, error_message: str, language: str) -> ErrorLogDB | None:
        result = await self.session.execute(
            select(ErrorLogDB).where(
                ErrorLogDB.error_message == error_message,
                ErrorLogDB.language == language,
            )
        )
        return result.scalar_one_or_none()

    async def record_hit(self, entry: ErrorLogDB) -> ErrorLogDB:
        entry.frequency = (entry.frequency or 0) + 1
        entry.last_occurred = datetime.now(UTC)
        await self.session.commit()
        await self.session.refresh(entry)
        return entry

    async def create(self, error_message: str, language: str, fix_suggestion: str) -> ErrorLogDB:
        entry = ErrorLogDB(
            error_message=error_message,
            language=language,
            fix_suggestion=fix_suggestion,
            frequency=1,
        )
        self.session.add(entry)
        await self.session.commit()
        await self.session.refresh(entry)
        return entry
