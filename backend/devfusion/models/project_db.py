from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Table
from sqlalchemy.orm import relationship

from devfusion.database import Base
from devfusion.models.user import User

project_members = Table(
    "project_members",
    Base.metadata,
    Column("project_id", String, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

project_pending_members = Table(
    "project_pending_members",
    Base.metadata,
    Column("project_id", String, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class ProjectDB(Base):
    """Database model for collaborative projects."""

    __tablename__ = "projects"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    file_tree = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False)

    owner = relationship(User, foreign_keys=[owner_id], lazy="selectin")
    # Eager loading keeps attribute access safe under AsyncSession.
    members = relationship(User, secondary=project_members, lazy="selectin", order_by=User.email)
    pending_members = relationship(
        User,
        secondary=project_pending_members,
        lazy="selectin",
        order_by=User.email,
    )
