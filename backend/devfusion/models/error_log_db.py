from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from devfusion.database import Base


class ErrorLogDB(Base):
    """Remembered fix suggestions keyed by error text and reply language."""

    __tablename__ = "error_logs"
    __table_args__ = (UniqueConstraint("error_message", "language", name="uq_error_logs_message_language"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    error_message = Column(Text, nullable=False, index=True)
    language = Column(String, nullable=False, default="English")
    fix_suggestion = Column(Text, nullable=False)
    frequency = Column(Integer, nullable=False, default=1)
    last_occurred = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
