from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, String

from devfusion.database import Base


class User(Base):
    """User account with the AI preferences used to tailor prompts."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    preferred_stack = Column(String, nullable=False, default="React/Node")
    code_style = Column(String, nullable=False, default="Standard")
    language = Column(String, nullable=False, default="English")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
