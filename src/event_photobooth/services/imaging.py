"""Image decoding, watermark overlay and data URL helpers."""

import base64
import io
import logging
from functools import lru_cache
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

WATERMARK_WIDTH_RATIO = 0.2
WATERMARK_MARGIN_RATIO = 0.04
WATERMARK_MIN_MARGIN = 10

logger = logging.getLogger(__name__)


def detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:6] in {b"GIF87a", b"GIF89a"}:
        return "image/gif"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def to_data_url(data: bytes, mime_type: str | None = None) -> str:
    """Convert bytes to a base64 data URL."""
    resolved = mime_type or detect_mime_type(data)
    encoded = base64.b64encode(data).decode("utf-8")
    return f"data:{resolved};base64,{encoded}"


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes, honouring EXIF orientation."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Cannot decode image: {exc}") from exc
    return ImageOps.exif_transpose(image)


@lru_cache(maxsize=4)
def _load_watermark_cached(path: str, mtime: float) -> Image.Image:
    with Image.open(path) as source:
        return source.convert("RGBA")


def load_watermark(path: Path | None) -> Image.Image | None:
    """Load the watermark asset, or ``None`` when it is missing or unreadable."""
    if path is None:
        return None
    try:
        return _load_watermark_cached(str(path), path.stat().st_mtime)
    except (OSError, UnidentifiedImageError):
        logger.warning("Watermark unavailable", extra={"path": str(path)})
        return None


def apply_watermark(image: Image.Image, watermark: Image.Image) -> Image.Image:
    """Composite ``watermark`` in the bottom-right corner of ``image``.

    The mark spans a fifth of the image width and sits 4% of the shorter side
    (at least 10px) away from the edges.
    """
    width, height = image.size
    if not watermark.width or not watermark.height:
        return image
    mark_width = max(1, round(width * WATERMARK_WIDTH_RATIO))
    mark_height = max(1, round(mark_width * watermark.height / watermark.width))
    margin = max(
        WATERMARK_MIN_MARGIN, round(min(width, height) * WATERMARK_MARGIN_RATIO)
    )
    resized = watermark.resize((mark_width, mark_height), Image.Resampling.LANCZOS)
    base = image.convert("RGBA")
    position = (
        max(0, width - mark_width - margin),
        max(0, height - mark_height - margin),
    )
    base.alpha_composite(resized, position)
    return base


def encode_image(image: Image.Image, mime_type: str) -> bytes:
    """Encode ``image`` in the format named by ``mime_type``."""
    buffer = io.BytesIO()
    if mime_type == "image/png":
        image.save(buffer, format="PNG")
    elif mime_type == "image/webp":
        image.save(buffer, format="WEBP", quality=95)
    else:
        image.convert("RGB").save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()


def build_watermarked_preview(data: bytes, watermark: Image.Image | None) -> bytes:
    """Return ``data`` with the watermark applied, keeping its format."""
    mime_type = detect_mime_type(data)
    image = decode_image(data)
    if watermark is not None:
        image = apply_watermark(image, watermark)
    return encode_image(image, mime_type)


def watermark_file(source: Path, target: Path, watermark: Image.Image) -> Path:
    """Write a watermarked copy of ``source`` to ``target``."""
    data = source.read_bytes()
    target.write_bytes(build_watermarked_preview(data, watermark))
    return target
