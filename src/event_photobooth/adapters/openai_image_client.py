"""OpenAI Images API client for stylization."""

import base64
from dataclasses import dataclass

from openai import AsyncOpenAI

from event_photobooth.services.imaging import detect_mime_type
from event_photobooth.services.stylization import ImageGenerationClient


@dataclass
class OpenAIImageClient(ImageGenerationClient):
    """Image generation client backed by the OpenAI Images edit endpoint."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str, timeout: float) -> "OpenAIImageClient":
        """Create an OpenAI image client."""
        return cls(client=AsyncOpenAI(api_key=api_key, timeout=timeout))

    async def stylize(self, *, model: str, image_bytes: bytes, prompt: str) -> bytes:
        """Edit the captured photo with the given prompt."""
        mime_type = detect_mime_type(image_bytes)
        extension = mime_type.split("/")[-1]
        response = await self.client.images.edit(
            model=model,
            image=(f"capture.{extension}", image_bytes, mime_type),
            prompt=prompt,
        )
        if not response.data or not response.data[0].b64_json:
            raise RuntimeError("OpenAI returned an empty image response")
        return base64.b64decode(response.data[0].b64_json)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()
