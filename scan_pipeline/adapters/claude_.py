"""
Claude vision adapter: one product photo in, one identification dict out.
"""
import os
import base64
from typing import Dict, Any, List, Optional

from anthropic import AsyncAnthropic

from .prompts import SYSTEM_MESSAGE, parse_json_response

DEFAULT_CLAUDE_MODEL = "claude-3-5-sonnet-20241022"


def _label_message(image_bytes: bytes, mime_type: str, prompt: str) -> List[Dict[str, Any]]:
    # Image block first so the prompt can refer to "this image"
    photo = {
        "type": "image",
        "source": {"type": "base64", "media_type": mime_type,
                   "data": base64.b64encode(image_bytes).decode("ascii")},
    }
    return [{"role": "user", "content": [photo, {"type": "text", "text": prompt}]}]


class ClaudeAdapter:
    def __init__(self, model: str = DEFAULT_CLAUDE_MODEL, temperature: float = 0.3, max_tokens: int = 500,
                 api_key: Optional[str] = None):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")

        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def infer(self, image_bytes: bytes, mime_type: str, prompt: str, **kwargs) -> Dict[str, Any]:
        """Identify the pictured product; raises ValueError on a reply with no JSON."""
        response = await self.client.messages.create(
            model=self.model,
            system=kwargs.get("system_message", SYSTEM_MESSAGE),
            messages=_label_message(image_bytes, mime_type, prompt),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        reply = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        if not reply.strip():
            raise ValueError(f"Claude returned no text (stop_reason={response.stop_reason})")
        identification = parse_json_response(reply)
        identification["_metadata"] = {
            "provider": "claude",
            "model": self.model,
            "tokens_input": response.usage.input_tokens,
            "tokens_output": response.usage.output_tokens,
        }
        return identification
