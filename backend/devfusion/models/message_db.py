from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text

from devfusion.database import Base


class ProjectMessageDB(Base):
    """Database model for chat messages posted in a project room."""

    __tablename__ = "project_messages"

    id = Column(String, primary_key=True, index=True)
    project_id = Column(
        String,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender = Column(JSON, nullable=False)  # {"_id": ..., "email": ...}
    message = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True)
