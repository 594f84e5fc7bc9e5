"""
Claude client for the coaching service.

A thin wrapper around the Anthropic SDK that:
1. Implements the LanguageModelClient protocol
2. Cleans the conversation into the shape the Messages API accepts
3. Maps SDK errors onto our own exception types
"""

import logging
from dataclasses import dataclass

import anthropic
from anthropic import APIError, RateLimitError

from divecoach.core.coaching.coach import LanguageModelClient


logger = logging.getLogger(__name__)


class LanguageModelError(Exception):
    """The Claude call failed."""
    pass


class RateLimitExceeded(LanguageModelError):
    """Claude rejected the call for rate limiting."""
    pass


@dataclass
class AnthropicConfig:
    """Configuration for the Anthropic client, validated at construction."""
    api_key: str
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 1500
    temperature: float = 0.1

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("API key is required")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be positive")
        if not 0 <= self.temperature <= 1:
            raise ValueError("temperature must be between 0 and 1")


class AnthropicLanguageModelClient(LanguageModelClient):
    """
    Implementation of LanguageModelClient using Claude.

    This class knows about Anthropic's API format but nothing about
    freediving. It sends text and returns text.
    """

    def __init__(self, config: AnthropicConfig) -> None:
        self._config = config
        self._client = anthropic.AsyncAnthropic(api_key=config.api_key)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str,
    ) -> str:
        """
        Send a conversation to Claude and return the text reply.

        Takes messages in the format:
        [{"role": "user", "content": "..."}, {"role": "assistant", "content": "..."}]
        """
        validated = self._validate_messages(messages)
        if not validated:
            raise ValueError("At least one message is required")

        try:
            response = await self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                system=system_prompt,
                messages=validated,
            )
        except RateLimitError as e:
            logger.warning("Rate limit hit", extra={"error": str(e)})
            raise RateLimitExceeded("API rate limit exceeded. Please try again later.")
        except APIError as e:
            logger.error("API error", extra={"error": str(e)})
            raise LanguageModelError(f"API error: {e.message}")

        return self._extract_text_response(response)

    def _validate_messages(
        self,
        messages: list[dict[str, str]],
    ) -> list[dict[str, str]]:
        """
        Drop empty messages and merge consecutive turns from the same role.

        The Messages API wants alternating roles starting with the user.
        Leading assistant turns are dropped.
        """
        validated: list[dict[str, str]] = []

        for msg in messages:
            role = msg.get("role", "")
            content = msg.get("content", "")

            if role not in ("user", "assistant"):
                raise ValueError(f"Invalid message role: {role}")
            if not content:
                continue
            if not validated and role != "user":
                continue

            if validated and validated[-1]["role"] == role:
                logger.debug("Merging consecutive messages", extra={"role": role})
                validated[-1] = {"role": role, "content": validated[-1]["content"] + "\n\n" + content}
                continue

            validated.append({"role": role, "content": content})

        return validated

    def _extract_text_response(self, response) -> str:
        """Text blocks of the reply joined by newlines."""
        if not response.content:
            return ""

        text_blocks = [
            block.text
            for block in response.content
            if hasattr(block, "text")
        ]

        return "\n".join(text_blocks)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_anthropic_client(
    api_key: str,
    model: str = "claude-sonnet-4-20250514",
    max_tokens: int = 1500,
    temperature: float = 0.1,
) -> AnthropicLanguageModelClient:
    """Create a configured client from settings values."""
    config = AnthropicConfig(
        api_key=api_key,
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    return AnthropicLanguageModelClient(config)
