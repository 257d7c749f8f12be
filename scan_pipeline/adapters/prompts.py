"""
Prompt templates and response parsing for product identification.
"""
import json
from typing import Any, Dict, List, Optional


SYSTEM_MESSAGE = """You are a product identification assistant for a children's skincare safety app.
You look at a photo of a personal-care product (packaging, bottle, tube or label) and identify it.
Respond ONLY with a single JSON object, no prose."""


IDENTIFY_PROMPT = """Identify the product in this image.

Return JSON with exactly these fields:
{
  "product_name": "name of the product without the brand",
  "brand_name": "brand, or null if not visible",
  "category": "e.g. cleanser, moisturizer, sunscreen, shampoo, lotion",
  "size": "size printed on the pack, e.g. 236 ml, or null",
  "key_ingredients": ["ingredients you can read or are confident about"],
  "product_type": "skincare, haircare, body care, sun care, or other",
  "confidence": 0.0
}

Rules:
- confidence is a number between 0 and 1 describing how sure you are of product_name and brand_name.
- Never invent ingredients; use an empty list when none are legible.
- If the image does not show a personal-care product, return confidence 0."""


def get_identify_prompt() -> str:
    return IDENTIFY_PROMPT


def parse_json_response(response_text: str) -> Dict[str, Any]:
    """
    Parse JSON from model response with repair logic.

    Args:
        response_text: Raw text response from model

    Returns:
        Parsed JSON object

    Raises:
        ValueError: If JSON cannot be parsed
    """
    # Try direct parse first
    try:
        return json.loads(response_text)
    except json.JSONDecodeError:
        pass

    # Try to extract JSON from markdown code blocks
    if "```json" in response_text:
        start = response_text.find("```json") + 7
        end = response_text.find("```", start)
        if end > start:
            try:
                return json.loads(response_text[start:end].strip())
            except json.JSONDecodeError:
                pass

    # Try to extract JSON from any code block
    if "```" in response_text:
        start = response_text.find("```") + 3
        end = response_text.find("```", start)
        if end > start:
            try:
                return json.loads(response_text[start:end].strip())
            except json.JSONDecodeError:
                pass

    # Try to find JSON object boundaries
    start = response_text.find('{')
    end = response_text.rfind('}')
    if start >= 0 and end > start:
        try:
            return json.loads(response_text[start:end+1])
        except json.JSONDecodeError:
            pass

    raise ValueError(f"Could not parse JSON from response: {response_text[:200]}...")


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "unknown", "n/a"):
        return None
    return text


def _clean_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []
    return [s for s in (_clean_str(v) for v in value) if s]


def validate_identification_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalise the identification JSON into the fields the cascade reads.

    Returns:
        dict with name, brand, category, size_hint, key_ingredients, confidence
        (confidence clamped to [0, 1]; non-numeric values count as 0)
    """
    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    return {
        "name": _clean_str(data.get("product_name") or data.get("name")),
        "brand": _clean_str(data.get("brand_name") or data.get("brand")),
        "category": _clean_str(data.get("category")),
        "size_hint": _clean_str(data.get("size")),
        "key_ingredients": _clean_list(data.get("key_ingredients")),
        "confidence": max(0.0, min(1.0, confidence)),
    }
