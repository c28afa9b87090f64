from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ProjectMember(BaseModel):
    id: str
    email: str


class Project(BaseModel):
    """Domain representation of a collaborative project."""

    id: str
    name: str
    owner_id: str
    users: list[ProjectMember] = Field(default_factory=list)
    pending_users: list[ProjectMember] = Field(default_factory=list)
    file_tree: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    def has_member(self, user_id: str) -> bool:
        return any(member.id == user_id for member in self.users)

