from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.models.ai import CodeFeedback, FileTreePatchReply, TextReply
from devfusion.models.api import FixErrorResponse
from devfusion.models.user import User
from devfusion.repositories.error_log_repository import ErrorLogRepository
from devfusion.repositories.user_repository import preferences_of
from devfusion.services.ai_service import AIService
from devfusion.services.rate_limiter import AIRateLimiter

logger = logging.getLogger(__name__)


class AssistantService:
    """AI operations exposed over REST, all behind the shared cooldown."""

    def __init__(self, session: AsyncSession, ai_service: AIService, rate_limiter: AIRateLimiter):
        self.error_logs = ErrorLogRepository(session)
        self.ai_service = ai_service
        self.rate_limiter = rate_limiter

    async def get_result(self, prompt: str, user: User) -> TextReply | FileTreePatchReply:
        self.rate_limiter.acquire()
        return await self.ai_service.generate(prompt, preferences_of(user))

    async def get_feedback(self, code: str, user: User, language: str | None = None) -> CodeFeedback:
        self.rate_limiter.acquire()
        return await self.ai_service.review_code(code, language or user.language)

    async def fix_error(self, error_message: str, user: User, language: str | None = None) -> FixErrorResponse:
        language = language or user.language
        cached = await self.error_logs.find(error_message, language)
        if cached is not None:
            entry = await self.error_logs.record_hit(cached)
            logger.info("Serving remembered fix for error (seen %d times)", entry.frequency)
            return FixErrorResponse(fix=entry.fix_suggestion, source="memory", frequency=entry.frequency)

        self.rate_limiter.acquire()
        fix = await self.ai_service.suggest_fix(error_message, language)
        await self.error_logs.create(error_message, language, fix)
        return FixErrorResponse(fix=fix, source="ai")
