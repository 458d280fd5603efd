"""Photo stylization through a generative image model."""

from dataclasses import dataclass, field
from typing import Protocol

from event_photobooth.domain.modes import CUSTOM_MODE, StyleMode


class StylizationError(RuntimeError):
    """Raised when a photo cannot be stylized."""


class ImageGenerationClient(Protocol):
    """Interface for prompt-guided image editing."""

    async def stylize(self, *, model: str, image_bytes: bytes, prompt: str) -> bytes:
        """Return the edited image bytes."""


@dataclass
class StylizationService:
    """Submit captured frames for stylization, one call per photo at a time."""

    client: ImageGenerationClient
    model: str
    modes: dict[str, StyleMode]
    _in_flight: set[str] = field(default_factory=set, init=False, repr=False)

    def resolve_prompt(self, mode: str, custom_prompt: str) -> str:
        """Return the prompt for a mode, using the custom text for ``custom``."""
        if mode == CUSTOM_MODE:
            prompt = custom_prompt.strip()
            if not prompt:
                raise StylizationError("Custom prompt is empty")
            return prompt
        style = self.modes.get(mode)
        if style is None:
            raise StylizationError(f"Unknown style mode: {mode}")
        return style.prompt

    async def submit(self, photo_id: str, image_bytes: bytes, prompt: str) -> bytes:
        """Stylize ``image_bytes`` and return the generated image."""
        if photo_id in self._in_flight:
            raise StylizationError(f"Photo {photo_id} is already being stylized")
        if not image_bytes:
            raise StylizationError("No image data to stylize")
        self._in_flight.add(photo_id)
        try:
            result = await self.client.stylize(
                model=self.model, image_bytes=image_bytes, prompt=prompt
            )
        finally:
            self._in_flight.discard(photo_id)
        if not result:
            raise StylizationError("Image model returned no image")
        return result

    def is_busy(self, photo_id: str) -> bool:
        return photo_id in self._in_flight
