from __future__ import annotations

import logging
import os

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    ClaudeSDKError,
    ResultMessage,
    TextBlock,
)
from pydantic import ValidationError

from devfusion.exceptions import GenerationError, RateLimitError
from devfusion.models.ai import AssistantPayload, CodeFeedback, FileTreePatchReply, TextReply
from devfusion.models.chat import UserPreferences

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the AI assistant inside DevFusion, a collaborative coding chat.

You must always answer with exactly one JSON object and nothing else: no prose
around it and no markdown code fences.

- For answers, explanations and greetings reply with {"text": "<markdown answer>"}.
- When you create or change project files reply with
  {"text": "<short explanation>", "fileTree": {...}}.
  fileTree maps entry names to either {"file": {"contents": "<full file contents>"}}
  or {"directory": {<entries>}}. Include only the files you create or change.
  Do not use nested file names such as "routes/index.js"; use directories instead.
- Reply in the same language as the user.
- Write modular, maintainable code and handle errors gracefully. When generating
  an HTTP server, serve the static files of the project before other routes.
"""

FEEDBACK_PROMPT = """You are an expert coding tutor. Analyze the following code for a beginner developer.
1. Rate it as "Beginner", "Intermediate", or "Advanced".
2. Provide exactly 3 short, actionable improvement tips.

Answer with a JSON object and no other text:
{{"rating": "Beginner | Intermediate | Advanced", "tips": ["Tip 1", "Tip 2", "Tip 3"]}}

Code to analyze:
{code}
"""

FIX_PROMPT = """You are an automated error fixer.
Error Message: "{error_message}"

Provide a concise solution:
1. Explanation (1-2 sentences)
2. Code fix (if applicable)

Put the explanation and code in the "text" field of your JSON answer.
"""

HINGLISH = "Hinglish"
MAX_REVIEWED_CODE = 5000


def preference_directive(preferences: UserPreferences) -> str:
    if preferences.language == HINGLISH:
        language_instruction = (
            "Reply in a mix of Hindi and English (Hinglish) as if explaining to an Indian friend. "
            "Keep technical terms in English."
        )
    else:
        language_instruction = "Reply in standard English."
    return (
        f"[System Note: User Preference - Stack: {preferences.preferred_stack or 'Standard'}, "
        f"Style: {preferences.code_style or 'Standard'}. {language_instruction} "
        "Please adapt code output accordingly.]"
    )


def compose_prompt(prompt: str, preferences: UserPreferences | None) -> str:
    if preferences is None:
        return prompt
    return f"{prompt}\n\n{preference_directive(preferences)}"


def parse_reply(raw: str) -> TextReply | FileTreePatchReply:
    """Validate raw assistant output against the reply schema."""
    try:
        payload = AssistantPayload.model_validate_json(raw.strip())
    except ValidationError as exc:
        raise GenerationError(f"AI reply does not match the expected schema: {exc}") from exc
    return payload.to_reply()


def _classify_failure(detail: str) -> GenerationError | RateLimitError:
    lowered = detail.lower()
    if "429" in lowered or "rate limit" in lowered or "quota" in lowered:
        return RateLimitError("Please wait a moment before sending another request.")
    return GenerationError(detail or "AI Service Error")


class AIService:
    """Text completion backed by the Claude Agent SDK, without tools."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model

    @property
    def is_available(self) -> bool:
        return bool(os.getenv("ANTHROPIC_API_KEY"))

    def _options(self, system_prompt: str) -> ClaudeAgentOptions:
        options = ClaudeAgentOptions(
            allowed_tools=[],
            max_turns=1,
            system_prompt=system_prompt,
        )
        if self.model:
            options.model = self.model
        return options

    async def complete(self, prompt: str, *, system_prompt: str = SYSTEM_PROMPT) -> str:
        """Run one completion and return the raw assistant text."""
        if not self.is_available:
            raise GenerationError("AI features are currently unavailable (API key missing).")

        chunks: list[str] = []
        try:
            async with ClaudeSDKClient(options=self._options(system_prompt)) as client:
                await client.query(prompt=prompt)

                async for message in client.receive_messages():
                    if isinstance(message, AssistantMessage):
                        chunks.extend(
                            block.text for block in message.content if isinstance(block, TextBlock)
                        )
                    elif isinstance(message, ResultMessage):
                        if message.is_error:
                            raise _classify_failure(message.result or "")
                        break
        except ClaudeSDKError as exc:
            logger.error("AI service generation error: %s", exc)
            raise _classify_failure(str(exc)) from exc

        text = "".join(chunks).strip()
        if not text:
            raise GenerationError("AI returned an empty reply")
        return text

    async def generate(
        self,
        prompt: str,
        preferences: UserPreferences | None = None,
    ) -> TextReply | FileTreePatchReply:
        """Generate a typed chat reply for *prompt*."""
        raw = await self.complete(compose_prompt(prompt, preferences))
        return parse_reply(raw)

    async def review_code(self, code: str, language: str = "English") -> CodeFeedback:
        prompt = FEEDBACK_PROMPT.format(code=code[:MAX_REVIEWED_CODE])
        if language == HINGLISH:
            prompt += (
                "\n\n[IMPORTANT: Write the 'tips' in Hinglish (Hindi+English mix) in a friendly "
                "\"Bhai\" style. Start explanation with \"Dekh bhai...\" if possible. "
                "Keep 'rating' in English.]"
            )
        raw = await self.complete(prompt)
        try:
            return CodeFeedback.model_validate_json(raw.strip())
        except ValidationError as exc:
            raise GenerationError(f"AI feedback does not match the expected schema: {exc}") from exc

    async def suggest_fix(self, error_message: str, language: str = "English") -> str:
        prompt = FIX_PROMPT.format(error_message=error_message)
        if language == HINGLISH:
            prompt += (
                "\n\n[SYSTEM: You are a friendly senior developer (\"Bhai\"). Explain the solution "
                "in a conversational mix of Hindi and English (Hinglish). Start with \"Dekh bhai...\" "
                "or similar. Keep code and technical terms in English.]"
            )
        reply = parse_reply(await self.complete(prompt))
        return reply.body
