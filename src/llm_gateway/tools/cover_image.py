"""
Cover image generation tool.

Generates an image with the OpenAI Images API and hands the decoded bytes
to object storage; the model only ever sees the resulting URL.
"""

import base64
import binascii
import logging
import time
from typing import Any, Dict, Mapping

from ..core.client import ProviderClient
from ..core.config import ProviderConfig
from ..models.tools import ToolDefinition
from ..store import ObjectStorage

logger = logging.getLogger(__name__)

COVER_IMAGE_PARAMETERS = {
    "type": "object",
    "properties": {
        "prompt": {
            "type": "string",
            "minLength": 1,
            "description": "Description of the image to generate.",
        },
        "size": {
            "type": "string",
            "enum": ["1024x1024", "1536x1024", "1024x1536"],
            "description": "Image size in pixels.",
        },
    },
    "required": ["prompt"],
}


class CoverImageGenerator:

    def __init__(
        self,
        client: ProviderClient,
        provider: ProviderConfig,
        storage: ObjectStorage,
        model: str = "gpt-image-1",
        quality: str = "high",
    ):
        self.client = client
        self.provider = provider
        self.storage = storage
        self.model = model
        self.quality = quality

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="generateCoverImage",
            description="Generate a cover image from a text description and return its URL.",
            parameters=COVER_IMAGE_PARAMETERS,
            handler=self.generate,
        )

    async def generate(self, arguments: Dict[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
        prompt = arguments["prompt"]
        size = arguments.get("size", "1024x1024")

        start = time.perf_counter()
        data = await self.client.invoke(
            f"{self.provider.base_url.rstrip('/')}/images/generations",
            {
                "model": self.model,
                "prompt": prompt,
                "n": 1,
                "size": size,
                "quality": self.quality,
            },
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.provider.api_key}",
            },
            provider=self.provider.name,
        )
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"Image generated in {elapsed_ms}ms")

        images = data.get("data") or []
        if not images or not images[0].get("b64_json"):
            raise ValueError("No image data in response")

        try:
            image = base64.b64decode(images[0]["b64_json"], validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid image data: {e}")

        url = await self.storage.store(image, {
            "content_type": "image/png",
            "file_name": f"ai-generated-{int(time.time() * 1000)}.png",
            "model": self.model,
            "size": size,
            "quality": self.quality,
            "prompt": prompt,
            "response_time_ms": elapsed_ms,
        })
        return {"url": url, "model": self.model, "size": size}
