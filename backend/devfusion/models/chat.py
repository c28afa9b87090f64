from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

AI_SENDER_ID = "ai"
AI_SENDER_EMAIL = "AI"


class Identity(BaseModel):
    """Decoded claims of an access token."""

    id: str
    email: str | None = None


class ChatSender(BaseModel):
    """Author of a chat message; ``_id`` on the wire."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    email: str | None = None

    @classmethod
    def ai(cls) -> ChatSender:
        return cls(id=AI_SENDER_ID, email=AI_SENDER_EMAIL)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class InboundChatMessage(BaseModel):
    """Payload of a ``project-message`` event sent by a client."""

    model_config = ConfigDict(extra="allow")

    message: str
    sender: ChatSender
    timestamp: datetime | None = None


class ChatMessage(BaseModel):
    """Persisted chat message."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    project_id: str = Field(alias="projectId")
    sender: ChatSender
    message: str
    timestamp: datetime


class ActivityEvent(BaseModel):
    """Payload of a ``project-activity`` event."""

    model_config = ConfigDict(extra="allow")

    userId: str
    email: str | None = None
    field: str
    value: Any = None


class SessionRecord(BaseModel):
    id: str
    project_id: str
    user_id: str
    login_time: datetime
    logout_time: datetime | None = None
    duration: float | None = None


class UserPreferences(BaseModel):
    preferred_stack: str = "React/Node"
    code_style: str = "Standard"
    language: str = "English"
