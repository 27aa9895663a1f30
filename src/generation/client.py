"""Text-generation client backed by Claude."""

from __future__ import annotations

import logging
from typing import Protocol

from anthropic import AsyncAnthropic
from anthropic.types import TextBlock

from src.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Anything that turns a prompt into raw model text."""

    async def generate_text(self, prompt: str) -> str: ...


class AnthropicTextGenerator:
    """Send a single user prompt to Claude and return the text of the reply."""

    def __init__(self, settings: Settings | None = None, client: AsyncAnthropic | None = None) -> None:
        self.settings = settings or default_settings
        self._client = client or AsyncAnthropic(api_key=self.settings.anthropic_api_key)

    async def generate_text(self, prompt: str) -> str:
        response = await self._client.messages.create(
            model=self.settings.llm_model,
            max_tokens=self.settings.llm_max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        # Plain text is requested, so the first block should be a TextBlock
        block = response.content[0] if response.content else None
        if not isinstance(block, TextBlock):
            raise ValueError(f"Expected TextBlock from Claude, got {type(block).__name__}")
        logger.debug(
            "Generation used %d input / %d output tokens",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        return block.text
