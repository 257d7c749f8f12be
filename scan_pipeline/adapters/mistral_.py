"""
Mistral adapter for product identification (chat completions over HTTP).
"""
import os
import base64
from typing import Dict, Any, Optional

import aiohttp

from .prompts import SYSTEM_MESSAGE, parse_json_response

MISTRAL_CHAT_URL = "https://api.mistral.ai/v1/chat/completions"


class MistralAdapter:
    """Adapter for Mistral vision models (Pixtral)."""

    def __init__(self, model: str = "pixtral-12b-latest", temperature: float = 0.3, max_tokens: int = 500,
                 api_key: Optional[str] = None, timeout_s: float = 30.0):
        """
        Initialize Mistral adapter.

        Args:
            model: Model name
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            api_key: API key (default: MISTRAL_API_KEY)
            timeout_s: HTTP timeout for one request
        """
        api_key = api_key or os.getenv("MISTRAL_API_KEY")
        if not api_key:
            raise ValueError("MISTRAL_API_KEY environment variable not set")

        self.api_key = api_key
        self.base_url = os.getenv("MISTRAL_BASE_URL", MISTRAL_CHAT_URL)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s

    async def infer(self, image_bytes: bytes, mime_type: str, prompt: str, **kwargs) -> Dict[str, Any]:
        """
        Run inference on an image with a prompt.

        Returns:
            Parsed JSON response

        Raises:
            Exception: If the API answers with a non-200 status
        """
        image_data = base64.b64encode(image_bytes).decode("utf-8")
        system_message = kwargs.get("system_message", SYSTEM_MESSAGE)

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_message},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": f"data:{mime_type};base64,{image_data}"}
                    ]
                }
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"}
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.base_url,
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_s)
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise Exception(f"Mistral API error: {response.status} - {error_text}")

                data = await response.json()

        content = data["choices"][0]["message"]["content"]
        result = parse_json_response(content)

        usage = data.get("usage") or {}
        result["_metadata"] = {
            "model": self.model,
            "tokens_input": usage.get("prompt_tokens"),
            "tokens_output": usage.get("completion_tokens"),
        }
        return result
