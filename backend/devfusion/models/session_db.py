from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, String

from devfusion.database import Base


class ProjectSessionDB(Base):
    """One realtime connection lifetime inside a project room."""

    __tablename__ = "project_sessions"

    id = Column(String, primary_key=True, index=True)
    project_id = Column(
        String,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String, nullable=False, index=True)
    login_time = Column(DateTime(timezone=True), nullable=False)
    logout_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Float, nullable=True)  # seconds
