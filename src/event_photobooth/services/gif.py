"""Two-frame before/after GIF assembly."""

import io
import logging
import uuid
from dataclasses import dataclass, field

from PIL import Image, ImageOps

from event_photobooth.services.imaging import apply_watermark, decode_image

DEFAULT_FRAME_SIZE = 512
DEFAULT_DELAYS_MS = (333, 833)
PALETTE_COLORS = 256

logger = logging.getLogger(__name__)


@dataclass
class GifAssembler:
    """Composite input and output frames into an animated GIF."""

    watermark: Image.Image | None = None

    def assemble(
        self,
        input_image: bytes | None,
        output_image: bytes | None,
        frame_size: int = DEFAULT_FRAME_SIZE,
        delays: tuple[int, int] = DEFAULT_DELAYS_MS,
    ) -> bytes | None:
        """Return GIF bytes, or ``None`` when a source frame is unusable."""
        if not input_image or not output_image:
            logger.warning("Missing input or output image data for GIF generation")
            return None
        try:
            frames = [
                self._render_frame(input_image, frame_size),
                self._render_frame(output_image, frame_size),
            ]
        except ValueError:
            logger.warning("GIF source frame could not be decoded", exc_info=True)
            return None

        buffer = io.BytesIO()
        frames[0].save(
            buffer,
            format="GIF",
            save_all=True,
            append_images=frames[1:],
            duration=list(delays),
            loop=0,
            optimize=False,
            disposal=1,
        )
        return buffer.getvalue()

    def _render_frame(self, data: bytes, size: int) -> Image.Image:
        image = decode_image(data).convert("RGB")
        # Scale to fill the square and crop the overflow around the center.
        canvas = ImageOps.fit(
            image, (size, size), Image.Resampling.LANCZOS, centering=(0.5, 0.5)
        )
        if self.watermark is not None:
            canvas = apply_watermark(canvas, self.watermark).convert("RGB")
        return canvas.quantize(
            colors=PALETTE_COLORS,
            method=Image.Quantize.MEDIANCUT,
            dither=Image.Dither.NONE,
        )


@dataclass
class GifHandleRegistry:
    """Issue and revoke handles for assembled GIFs.

    A handle stays resolvable until it is revoked; callers revoke the previous
    handle before installing a new one and on session reset.
    """

    prefix: str = "/api/session/gif"
    _gifs: dict[str, bytes] = field(default_factory=dict, init=False, repr=False)

    def create(self, data: bytes) -> str:
        url = f"{self.prefix}/{uuid.uuid4().hex}"
        self._gifs[url] = data
        return url

    def get(self, url: str | None) -> bytes | None:
        if url is None:
            return None
        return self._gifs.get(url)

    def revoke(self, url: str | None) -> bool:
        """Release a handle. Unknown handles are ignored."""
        if url is None:
            return False
        return self._gifs.pop(url, None) is not None

    @property
    def live_handles(self) -> list[str]:
        return list(self._gifs)
