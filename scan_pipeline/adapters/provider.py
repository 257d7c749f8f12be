"""
Vision provider selection and the VisionIdentifier built on it.

The provider is resolved once per identification call: the admin override
wins over the preferred provider, and `auto` picks the first provider in
AUTO_ORDER whose API key is configured. A failing provider is not retried
with another one; the cascade moves on instead.
"""
import os
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from ..feature_flags import trace
from ..schemas import VisionIdentification
from .claude_ import ClaudeAdapter
from .gemini_ import GeminiAdapter
from .images import load_image_bytes
from .mistral_ import MistralAdapter
from .openai_ import OpenAIAdapter
from .prompts import SYSTEM_MESSAGE, get_identify_prompt, validate_identification_response


class LLMProvider(str, Enum):
    OPENAI = "openai"
    CLAUDE = "claude"
    MISTRAL = "mistral"
    GEMINI = "gemini"
    AUTO = "auto"


API_KEY_ENV: Dict[LLMProvider, str] = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.CLAUDE: "ANTHROPIC_API_KEY",
    LLMProvider.MISTRAL: "MISTRAL_API_KEY",
    LLMProvider.GEMINI: "GOOGLE_API_KEY",
}

AUTO_ORDER = (LLMProvider.OPENAI, LLMProvider.MISTRAL, LLMProvider.CLAUDE, LLMProvider.GEMINI)


class ProviderUnavailable(ValueError):
    """No usable API key for the requested provider."""


def _has_key(env: Mapping[str, str], provider: LLMProvider) -> bool:
    value = env.get(API_KEY_ENV[provider], "")
    return bool(value) and not value.startswith("your_")


class ProviderSelectionPolicy(BaseModel):
    """Which vision provider to use. Admin override takes precedence."""
    model_config = ConfigDict(frozen=True)

    preferred: LLMProvider = LLMProvider.AUTO
    admin_override: Optional[LLMProvider] = None

    @property
    def requested(self) -> LLMProvider:
        return self.admin_override or self.preferred

    def resolve(self, env: Optional[Mapping[str, str]] = None) -> LLMProvider:
        """
        Resolve to a concrete provider.

        Args:
            env: Environment to read API keys from (default: os.environ)

        Returns:
            A provider other than AUTO

        Raises:
            ProviderUnavailable: If the requested provider has no API key, or
                `auto` finds none configured
        """
        env = os.environ if env is None else env
        requested = self.requested
        if requested != LLMProvider.AUTO:
            if not _has_key(env, requested):
                raise ProviderUnavailable(f"{API_KEY_ENV[requested]} not set for provider {requested.value}")
            return requested
        for provider in AUTO_ORDER:
            if _has_key(env, provider):
                return provider
        raise ProviderUnavailable("No vision provider API key configured")


AdapterFactory = Callable[[LLMProvider, str], Any]


def default_adapter_factory(provider: LLMProvider, api_key: str) -> Any:
    """Adapter instance for a resolved provider."""
    if provider == LLMProvider.OPENAI:
        return OpenAIAdapter(api_key=api_key)
    if provider == LLMProvider.CLAUDE:
        return ClaudeAdapter(api_key=api_key)
    if provider == LLMProvider.MISTRAL:
        return MistralAdapter(api_key=api_key)
    if provider == LLMProvider.GEMINI:
        return GeminiAdapter(api_key=api_key)
    raise ValueError(f"No adapter for provider: {provider}")


class LLMVisionIdentifier:
    """
    VisionIdentifier backed by a multimodal LLM.

    Transport and parse failures raise; the cascade stage turns them into a
    failed outcome. A reply below `min_confidence` is returned with
    success=False.
    """

    def __init__(self, policy: Optional[ProviderSelectionPolicy] = None,
                 env: Optional[Mapping[str, str]] = None,
                 adapter_factory: AdapterFactory = default_adapter_factory,
                 min_confidence: float = 0.3):
        self.policy = policy or ProviderSelectionPolicy()
        self.env = env
        self.adapter_factory = adapter_factory
        self.min_confidence = min_confidence

    async def identify(self, image_ref: str) -> VisionIdentification:
        env = os.environ if self.env is None else self.env
        provider = self.policy.resolve(env)
        adapter = self.adapter_factory(provider, env[API_KEY_ENV[provider]])
        trace("VISION", f"identifying with {provider.value}")

        image_bytes, mime_type = await load_image_bytes(image_ref)
        raw = await adapter.infer(image_bytes, mime_type, get_identify_prompt(), system_message=SYSTEM_MESSAGE)
        fields = validate_identification_response(raw)

        confident = fields["confidence"] >= self.min_confidence and bool(fields["name"])
        return VisionIdentification(
            success=confident,
            error=None if confident else "low confidence identification",
            provider=provider.value,
            **fields,
        )
