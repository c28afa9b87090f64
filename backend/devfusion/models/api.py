from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from devfusion.tools.file_tree import FileTreeValidationError, validate_file_tree

from .ai import AIReply
from .chat import ChatMessage, UserPreferences
from .project import Project


def _validated_tree(value: dict[str, Any]) -> dict[str, Any]:
    try:
        return validate_file_tree(value)
    except FileTreeValidationError as exc:
        raise ValueError(str(exc)) from exc


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ProjectListItem(BaseModel):
    """Summary information for a project in a list."""

    id: str
    name: str
    owner_id: str
    member_count: int
    created_at: datetime
    updated_at: datetime


class ProjectListResponse(BaseModel):
    projects: list[ProjectListItem] = Field(default_factory=list)


class ProjectDetailResponse(BaseModel):
    project: Project


class ProjectUsersAddRequest(BaseModel):
    users: list[str] = Field(..., min_length=1)


class JoinRequestDecision(BaseModel):
    action: Literal["accept", "reject"]


class FileTreeUpdateRequest(BaseModel):
    fileTree: dict[str, Any]

    @field_validator("fileTree")
    @classmethod
    def _check_tree(cls, value: dict[str, Any]) -> dict[str, Any]:
        return _validated_tree(value)


class ProjectMessagesResponse(BaseModel):
    project_id: str
    messages: list[ChatMessage] = Field(default_factory=list)


class SessionStats(BaseModel):
    logins: int = 0
    totalDuration: float = 0.0


class ProjectStatsResponse(BaseModel):
    stats: dict[str, SessionStats] = Field(default_factory=dict)


class FileSearchHit(BaseModel):
    name: str
    path: str
    type: Literal["file", "directory"]


class SearchResults(BaseModel):
    files: list[FileSearchHit] = Field(default_factory=list)
    chats: list[ChatMessage] = Field(default_factory=list)


class SearchResponse(BaseModel):
    results: SearchResults


class AIResultResponse(BaseModel):
    reply: AIReply


class CodeFeedbackRequest(BaseModel):
    code: str = Field(..., min_length=1)
    language: str | None = None


class FixErrorRequest(BaseModel):
    errorMessage: str = Field(..., min_length=1)
    language: str | None = None


class FixErrorResponse(BaseModel):
    fix: str
    source: Literal["memory", "ai"]
    frequency: int | None = None


class UserResponse(BaseModel):
    id: str
    email: str
    is_admin: bool
    preferences: UserPreferences


class PreferencesUpdateRequest(BaseModel):
    preferred_stack: str | None = Field(default=None, max_length=100)
    code_style: str | None = Field(default=None, max_length=100)
    language: str | None = Field(default=None, max_length=50)


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    database: Literal["connected", "disconnected"]
