"""
OpenAI adapter for product identification.
"""
import os
import base64
from typing import Dict, Any, Optional

from openai import AsyncOpenAI

from .prompts import SYSTEM_MESSAGE, parse_json_response


class OpenAIAdapter:
    """Adapter for OpenAI vision models."""

    def __init__(self, model: str = "gpt-4o", temperature: float = 0.3, max_tokens: int = 500,
                 api_key: Optional[str] = None):
        """
        Initialize OpenAI adapter.

        Args:
            model: Model name (gpt-4o, gpt-4o-mini, etc.)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            api_key: API key (default: OPENAI_API_KEY)
        """
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key or api_key.startswith("your_"):
            raise ValueError("OPENAI_API_KEY environment variable not set")

        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def infer(self, image_bytes: bytes, mime_type: str, prompt: str, **kwargs) -> Dict[str, Any]:
        """
        Run inference on an image with a prompt.

        Args:
            image_bytes: Raw image bytes
            mime_type: Image MIME type
            prompt: User prompt text
            **kwargs: Additional arguments (supports 'system_message')

        Returns:
            Parsed JSON response

        Raises:
            Exception: If inference fails
        """
        image_data = base64.b64encode(image_bytes).decode("utf-8")
        system_message = kwargs.get("system_message", SYSTEM_MESSAGE)

        messages = [
            {"role": "system", "content": system_message},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{image_data}"}
                    }
                ]
            }
        ]

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"}
        )

        content = response.choices[0].message.content or ""
        result = parse_json_response(content)

        result["_metadata"] = {
            "model": self.model,
            "tokens_input": response.usage.prompt_tokens if response.usage else None,
            "tokens_output": response.usage.completion_tokens if response.usage else None,
        }
        return result
