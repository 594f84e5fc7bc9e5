"""
Anthropic Claude API client wrapper.

Implements the LanguageModelClient protocol from core.coaching.coach.
"""

from .client import (
    AnthropicConfig,
    AnthropicLanguageModelClient,
    LanguageModelError,
    RateLimitExceeded,
    create_anthropic_client,
)

__all__ = [
    "AnthropicConfig",
    "AnthropicLanguageModelClient",
    "LanguageModelError",
    "RateLimitExceeded",
    "create_anthropic_client",
]
