from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devfusion.tools.file_tree import FileTreeValidationError, validate_file_tree


class TextReply(BaseModel):
    kind: Literal["text"] = "text"
    body: str

    def to_wire(self) -> dict[str, Any]:
        return {"text": self.body}


class FileTreePatchReply(BaseModel):
    kind: Literal["fileTreePatch"] = "fileTreePatch"
    body: str
    tree: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {"text": self.body, "fileTree": self.tree}


AIReply = Annotated[TextReply | FileTreePatchReply, Field(discriminator="kind")]


class AssistantPayload(BaseModel):
    """JSON document the assistant is instructed to answer with."""

    model_config = ConfigDict(extra="ignore")

    text: str
    fileTree: dict[str, Any] | None = None

    @field_validator("fileTree")
    @classmethod
    def _check_tree(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if value is None:
            return None
        try:
            return validate_file_tree(value)
        except FileTreeValidationError as exc:
            raise ValueError(str(exc)) from exc

    def to_reply(self) -> TextReply | FileTreePatchReply:
        if self.fileTree:
            return FileTreePatchReply(body=self.text, tree=self.fileTree)
        return TextReply(body=self.text)


def encode_reply(reply: TextReply | FileTreePatchReply) -> str:
    """Serialize a reply into the ``message`` field of a chat event."""

    return json.dumps(reply.to_wire())


class CodeFeedback(BaseModel):
    rating: Literal["Beginner", "Intermediate", "Advanced"]
    tips: list[str] = Field(min_length=3, max_length=3)
