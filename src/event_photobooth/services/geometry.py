"""Capture geometry and viewport orientation."""

import logging
import math

from event_photobooth.domain.capture import CaptureGeometry, Orientation, Viewport

PORTRAIT_ASPECT = 9 / 16
LANDSCAPE_ASPECT = 16 / 9
DESKTOP_BREAKPOINT = 1024
ASPECT_EPSILON = 0.001

logger = logging.getLogger(__name__)


def ensure_positive(value: float | None, fallback: float) -> float:
    """Return ``value`` when it is a finite positive number, else ``fallback``."""
    if value is None or not math.isfinite(value) or value <= 0:
        return fallback
    return value


def target_aspect(portrait: bool) -> float:
    return PORTRAIT_ASPECT if portrait else LANDSCAPE_ASPECT


def compute_capture_geometry(
    video_width: float | None,
    video_height: float | None,
    *,
    portrait: bool,
    rotate: bool,
) -> CaptureGeometry:
    """Compute a centered crop that yields exactly the target aspect ratio.

    The wider side is shrunk so the frame is cropped rather than letterboxed.
    When ``rotate`` is set the crop is computed in the rotated space and mapped
    back onto the source frame. Invalid dimensions fall back to a full HD
    frame in the requested orientation.
    """
    aspect = target_aspect(portrait)
    safe_width = ensure_positive(video_width, 1080 if portrait else 1920)
    safe_height = ensure_positive(video_height, 1920 if portrait else 1080)

    effective_width = safe_height if rotate else safe_width
    effective_height = safe_width if rotate else safe_height
    effective_aspect = ensure_positive(effective_width / effective_height, aspect)

    crop_width = effective_width
    crop_height = effective_height
    if abs(effective_aspect - aspect) > ASPECT_EPSILON:
        if effective_aspect > aspect:
            crop_width = crop_height * aspect
        else:
            crop_height = crop_width / aspect

    source_width = crop_height if rotate else crop_width
    source_height = crop_width if rotate else crop_height

    return CaptureGeometry(
        canvas_width=round(crop_width),
        canvas_height=round(crop_height),
        source_width=source_width,
        source_height=source_height,
        source_x=max(0.0, (safe_width - source_width) / 2),
        source_y=max(0.0, (safe_height - source_height) / 2),
        aspect=aspect,
    )


def needs_rotation(
    video_width: float | None, video_height: float | None, *, portrait: bool
) -> bool:
    """Rotate only when portrait output is wanted from a landscape stream."""
    safe_width = ensure_positive(video_width, 1080 if portrait else 1920)
    safe_height = ensure_positive(video_height, 1920 if portrait else 1080)
    ratio = ensure_positive(safe_width / safe_height, target_aspect(portrait))
    return portrait and ratio > 1


def resolve_orientation(
    viewport: Viewport | None, *, force_portrait: bool = False
) -> Orientation:
    """Pick the capture orientation for the current display."""
    if force_portrait:
        return Orientation.portrait
    if viewport is None:
        return Orientation.landscape
    if viewport.width >= DESKTOP_BREAKPOINT:
        return Orientation.landscape
    if viewport.match_media is not None:
        try:
            if viewport.match_media("(orientation: portrait)"):
                return Orientation.portrait
        except Exception:  # noqa: BLE001
            logger.debug("Media query unavailable, using viewport size")
    if viewport.height >= viewport.width:
        return Orientation.portrait
    return Orientation.landscape
