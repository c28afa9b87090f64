from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devfusion.exceptions import GenerationError, NotFoundError, PersistenceError, RateLimitError
from devfusion.models.ai import FileTreePatchReply, TextReply, encode_reply
from devfusion.models.chat import ChatSender, UserPreferences
from devfusion.repositories.project_repository import ProjectRepository
from devfusion.repositories.user_repository import UserRepository
from devfusion.services.ai_service import AIService
from devfusion.services.message_relay import MessageRelay
from devfusion.services.rate_limiter import AIRateLimiter
from devfusion.tools.clock import Clock, isoformat, utcnow
from devfusion.tools.file_tree import merge_file_trees, stamp_file_tree

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "AI is currently unavailable (Missing API Key or Error). Please contact Admin."
RATE_LIMITED_TEXT = "AI is busy. Please wait a moment before asking again."


class MentionOutcome(str, Enum):
    EMITTED = "emitted"
    FAILED = "failed"


class AIMentionInterceptor:
    """Answers chat messages that mention the assistant.

    The reply goes to the whole room, requester included, and is stored like
    any other message. Failures become a fallback chat message from the
    assistant and never propagate.
    """

    def __init__(
        self,
        ai_service: AIService,
        relay: MessageRelay,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        rate_limiter: AIRateLimiter | None = None,
        trigger: str = "@ai",
        apply_file_tree_patches: bool = True,
        clock: Clock = utcnow,
    ):
        self.ai_service = ai_service
        self.relay = relay
        self.session_factory = session_factory
        self.rate_limiter = rate_limiter
        self.trigger = trigger
        self.apply_file_tree_patches = apply_file_tree_patches
        self.clock = clock

    def extract_prompt(self, text: str) -> str | None:
        """Return the prompt of an AI-directed message, or None."""
        if self.trigger not in text:
            return None
        return text.replace(self.trigger, "", 1).strip()

    async def _load_preferences(self, user_id: str) -> UserPreferences | None:
        try:
            async with self.session_factory() as session:
                return await UserRepository(session).get_preferences(user_id)
        except SQLAlchemyError as exc:
            logger.warning("Could not load preferences for %s: %s", user_id, exc)
            return None

    async def _apply_patch(self, project_id: str, patch: dict, now: datetime) -> None:
        try:
            async with self.session_factory() as session:
                repo = ProjectRepository(session)
                project = await repo.get_project(project_id)
                merged = merge_file_trees(project.file_tree, patch, now=now)
                await repo.update_file_tree(project_id, merged)
        except (NotFoundError, PersistenceError, SQLAlchemyError) as exc:
            logger.error("Failed to apply AI file tree for project %s: %s", project_id, exc)

    async def _emit_fallback(self, room: str, text: str) -> None:
        await self.relay.broadcast(
            room,
            {
                "message": text,
                "sender": ChatSender.ai().to_wire(),
                "timestamp": isoformat(self.clock()),
            },
        )

    async def respond(self, room: str, project_id: str, requester_id: str, prompt: str) -> MentionOutcome:
        try:
            if self.rate_limiter is not None:
                self.rate_limiter.acquire()
            preferences = await self._load_preferences(requester_id)
            reply: TextReply | FileTreePatchReply = await self.ai_service.generate(prompt, preferences)
        except RateLimitError as exc:
            logger.warning("AI request in project %s rejected: %s", project_id, exc)
            await self._emit_fallback(room, RATE_LIMITED_TEXT)
            return MentionOutcome.FAILED
        except GenerationError as exc:
            logger.error("AI generation failed in project %s: %s", project_id, exc)
            await self._emit_fallback(room, FALLBACK_TEXT)
            return MentionOutcome.FAILED
        except Exception:
            logger.exception("Unexpected AI failure in project %s", project_id)
            await self._emit_fallback(room, FALLBACK_TEXT)
            return MentionOutcome.FAILED

        now = self.clock()
        if isinstance(reply, FileTreePatchReply):
            # Stamp once so every client merging the patch derives the same tree.
            reply = reply.model_copy(update={"tree": stamp_file_tree(reply.tree, now=now)})
            if self.apply_file_tree_patches:
                await self._apply_patch(project_id, reply.tree, now)

        sender = ChatSender.ai()
        text = encode_reply(reply)
        await self.relay.broadcast(
            room,
            {"message": text, "sender": sender.to_wire(), "timestamp": isoformat(now)},
        )
        await self.relay.persist(project_id, sender, text, now)
        return MentionOutcome.EMITTED
