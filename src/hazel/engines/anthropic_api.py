"""Anthropic API transform engine — normalization, alignment and archive questions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from hazel.decisions.control_block import utcnow
from hazel.decisions.record import EmbedField
from hazel.engines.base import AlignmentResult, NormalizedResult
from hazel.engines.prompts import (
    ALIGNMENT_PROMPT,
    ask_prompt,
    build_alignment_message,
    build_ask_message,
    build_normalize_prompt,
    fields_payload,
    parse_alignment_response,
    parse_normalize_response,
)
from hazel.errors import TransformError

logger = logging.getLogger(__name__)

ANSWER_TEMPERATURE = 0.2
ANSWER_MAX_TOKENS = 500


@dataclass
class AnthropicTransformEngine:
    """Text transforms via the `anthropic` SDK. No tools.

    Lane calls run at temperature 0; answers to questions get a little more room.
    """

    model: str = "claude-sonnet-4-5"
    api_key: str | None = None
    max_tokens: int = 4096
    timeout: int = 120
    clock: Callable[[], datetime] = utcnow

    def __post_init__(self) -> None:
        try:
            import anthropic

            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)
        except ImportError:
            raise ImportError("anthropic package required. Install with: pip install anthropic")

    @property
    def name(self) -> str:
        return "anthropic_api"

    async def _complete(
        self,
        system_prompt: str,
        message: str,
        temperature: float = 0,
        max_tokens: int | None = None,
    ) -> str:
        try:
            response = await asyncio.to_thread(
                self._client.messages.create,
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": message}],
            )
        except Exception as e:
            logger.error("Anthropic API error: %s", e)
            raise TransformError(f"Anthropic API error: {e}") from e

        text = response.content[0].text if response.content else ""
        if not text.strip():
            raise TransformError("Empty response from Anthropic API")
        return text

    async def normalize(self, fields: list[EmbedField]) -> NormalizedResult:
        prompt = build_normalize_prompt(self.clock().date())
        text = await self._complete(prompt, fields_payload(fields))
        result = parse_normalize_response(text)
        logger.info("Normalization returned %d fields (changes: %s)", len(result.fields),
                    result.change_description)
        return result

    async def align(
        self, fields: list[EmbedField], vision: str, handbook: str
    ) -> AlignmentResult:
        text = await self._complete(
            ALIGNMENT_PROMPT, build_alignment_message(fields, vision, handbook)
        )
        result = parse_alignment_response(text)
        logger.info("Alignment returned objection=%s", result.objection)
        return result

    async def answer(self, topic: str, archive: str, question: str) -> str:
        logger.info("Answering %s question over %d archive chars", topic, len(archive))
        text = await self._complete(
            ask_prompt(topic),
            build_ask_message(archive, question),
            temperature=ANSWER_TEMPERATURE,
            max_tokens=ANSWER_MAX_TOKENS,
        )
        return text.strip()

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self._client.messages.create,
                model=self.model,
                max_tokens=10,
                messages=[{"role": "user", "content": "ping"}],
            )
            return bool(response.content)
        except Exception:
            return False
