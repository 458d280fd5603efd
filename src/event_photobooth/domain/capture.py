"""Models for capture geometry."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum


class Orientation(StrEnum):
    """Orientation of the captured frame."""

    portrait = "portrait"
    landscape = "landscape"


@dataclass(frozen=True)
class CaptureGeometry:
    """Crop rectangle and canvas size that normalize a video frame."""

    canvas_width: int
    canvas_height: int
    source_width: float
    source_height: float
    source_x: float
    source_y: float
    aspect: float


@dataclass(frozen=True)
class Viewport:
    """Snapshot of the display the booth runs on.

    ``match_media`` evaluates a CSS media query when the display exposes one.
    """

    width: float
    height: float
    match_media: Callable[[str], bool] | None = None
