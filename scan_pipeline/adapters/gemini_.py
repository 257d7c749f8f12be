"""
Gemini vision adapter. JSON mode is requested so the reply needs no repair in
the common case; parse_json_response still handles the rest.
"""
import os
from typing import Dict, Any, Optional

import google.generativeai as genai

from .prompts import SYSTEM_MESSAGE, parse_json_response

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"


class GeminiAdapter:
    def __init__(self, model: str = DEFAULT_GEMINI_MODEL, temperature: float = 0.3, max_tokens: int = 500,
                 api_key: Optional[str] = None):
        api_key = api_key or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise ValueError("GOOGLE_API_KEY environment variable not set")
        genai.configure(api_key=api_key)

        self.model_name = model
        self.model = genai.GenerativeModel(
            model_name=model,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_tokens,
                "response_mime_type": "application/json",
            },
        )

    async def infer(self, image_bytes: bytes, mime_type: str, prompt: str, **kwargs) -> Dict[str, Any]:
        # No separate system role on this API: the instructions lead the prompt
        instructions = f"{kwargs.get('system_message', SYSTEM_MESSAGE)}\n\n{prompt}"
        photo = {"mime_type": mime_type, "data": image_bytes}

        response = await self.model.generate_content_async([instructions, photo])
        identification = parse_json_response(response.text)

        usage = getattr(response, "usage_metadata", None)
        identification["_metadata"] = {
            "provider": "gemini",
            "model": self.model_name,
            "tokens_input": getattr(usage, "prompt_token_count", None),
            "tokens_output": getattr(usage, "candidates_token_count", None),
        }
        return identification
