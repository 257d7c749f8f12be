"""
Image handle resolution for vision adapters.
"""
import base64
from pathlib import Path
from typing import Tuple

import aiohttp

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def mime_type_for(name: str) -> str:
    return MIME_TYPES.get(Path(name.split("?")[0]).suffix.lower(), "image/jpeg")


async def load_image_bytes(image_ref: str, timeout_s: float = 10.0) -> Tuple[bytes, str]:
    """
    Resolve an opaque image handle to (bytes, mime_type).

    Accepts a file path, a base64 `data:` URI or an http(s) URL.

    Raises:
        FileNotFoundError: If a path does not exist
        ValueError: If a data URI is malformed
        aiohttp.ClientError: If downloading fails
    """
    if image_ref.startswith("data:"):
        header, _, payload = image_ref.partition(",")
        if not payload or ";base64" not in header:
            raise ValueError("Only base64 data URIs are supported")
        mime_type = header[5:].split(";")[0] or "image/jpeg"
        return base64.b64decode(payload), mime_type

    if image_ref.startswith(("http://", "https://")):
        async with aiohttp.ClientSession() as session:
            async with session.get(image_ref, timeout=aiohttp.ClientTimeout(total=timeout_s)) as response:
                response.raise_for_status()
                data = await response.read()
                mime_type = response.headers.get("Content-Type", "").split(";")[0] or mime_type_for(image_ref)
        return data, mime_type

    path = Path(image_ref)
    with open(path, "rb") as f:
        return f.read(), mime_type_for(path.name)
