"""
Vision model adapters and provider selection.
"""
from .openai_ import OpenAIAdapter
from .claude_ import ClaudeAdapter
from .gemini_ import GeminiAdapter
from .mistral_ import MistralAdapter
from .provider import (
    LLMProvider,
    LLMVisionIdentifier,
    ProviderSelectionPolicy,
    ProviderUnavailable,
)

__all__ = [
    "OpenAIAdapter",
    "ClaudeAdapter",
    "GeminiAdapter",
    "MistralAdapter",
    "LLMProvider",
    "LLMVisionIdentifier",
    "ProviderSelectionPolicy",
    "ProviderUnavailable",
]
