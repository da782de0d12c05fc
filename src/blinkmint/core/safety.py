"""Content safety gate for user prompts.

Two interchangeable strategies produce the same binary verdict:

- :class:`ModerationSafetyGate` asks the OpenAI moderation classifier and
  treats any flagged result as unsafe.
- :class:`StructuredSafetyGate` asks a chat model for a two-field JSON record
  ``{"prompt": ..., "safety": "safe" | "unsafe"}`` and reads the verdict.

Both are best-effort.  A service failure raises :class:`SafetyCheckError`
rather than guessing a verdict.
"""

from __future__ import annotations

import json
import logging
from typing import Literal, Protocol

from openai import AsyncOpenAI, OpenAIError

from blinkmint.core.errors import SafetyCheckError

logger = logging.getLogger(__name__)

Verdict = Literal["safe", "unsafe"]

STRUCTURED_SAFETY_PROMPT = """
You are a content moderator for an image generation service.
Decide whether the user's prompt is safe to turn into an image.
A prompt is unsafe if it asks for sexual content, graphic violence, hate,
harassment, self-harm, or real people in a harmful context.
Return a JSON object with exactly two fields:
{"prompt": "<the user's prompt, unchanged>", "safety": "<safe or unsafe>"}
"""


class SafetyGate(Protocol):
    async def check(self, text: str) -> Verdict: ...


class ModerationSafetyGate:
    """Safety gate backed by the OpenAI moderation endpoint."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    async def check(self, text: str) -> Verdict:
        try:
            moderation = await self._client.moderations.create(input=text)
        except OpenAIError as exc:
            logger.error("Moderation request failed: %s", exc)
            raise SafetyCheckError("Failed to check prompt safety.") from exc

        flagged = any(result.flagged for result in moderation.results)
        logger.info("Moderation verdict for prompt: flagged=%s", flagged)
        return "unsafe" if flagged else "safe"


class StructuredSafetyGate:
    """Safety gate backed by a JSON-constrained chat completion."""

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    async def check(self, text: str) -> Verdict:
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": STRUCTURED_SAFETY_PROMPT},
                    {"role": "user", "content": text},
                ],
                response_format={"type": "json_object"},
                temperature=0,
            )
        except OpenAIError as exc:
            logger.error("Structured safety request failed: %s", exc)
            raise SafetyCheckError("Failed to check prompt safety.") from exc

        content = completion.choices[0].message.content or "{}"
        try:
            record = json.loads(content)
        except json.JSONDecodeError as exc:
            raise SafetyCheckError("Failed to check prompt safety.") from exc

        verdict = str(record.get("safety", "")).strip().lower()
        logger.info("Structured safety verdict: %s", verdict or "<missing>")
        return "safe" if verdict == "safe" else "unsafe"


def build_safety_gate(strategy: str, client: AsyncOpenAI, model: str) -> SafetyGate:
    """Instantiate the safety gate named by ``strategy``."""
    if strategy == "moderation":
        return ModerationSafetyGate(client)
    if strategy == "structured":
        return StructuredSafetyGate(client, model)
    raise ValueError(f"Unknown safety strategy: {strategy}")
