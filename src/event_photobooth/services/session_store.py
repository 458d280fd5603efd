"""Per-session mutable state for one booth guest."""

from dataclasses import dataclass, field, replace
from typing import Literal

from event_photobooth.domain.modes import DEFAULT_MODE
from event_photobooth.domain.photos import DownloadCodes, Photo

PreparedStatus = Literal[True, "error"]


@dataclass
class SessionStore:
    """State of the active session.

    Every coordinating call receives this object explicitly. ``generation``
    only ever grows; async work captures it before suspending and drops its
    result when the value has moved on.
    """

    photos: list[Photo] = field(default_factory=list)
    active_mode: str = DEFAULT_MODE
    custom_prompt: str = ""
    gif_url: str | None = None
    gif_in_progress: bool = False
    did_init: bool = False
    generation: int = 0
    inputs: dict[str, bytes] = field(default_factory=dict)
    outputs: dict[str, bytes] = field(default_factory=dict)
    watermarked_previews: dict[str, bytes] = field(default_factory=dict)
    prepared_downloads: dict[str, PreparedStatus] = field(default_factory=dict)
    cloud_urls: dict[str, str] = field(default_factory=dict)
    qr_codes: DownloadCodes = field(default_factory=DownloadCodes)
    is_uploading: bool = False
    upload_token: int = 0

    def next_generation(self) -> int:
        """Advance the generation token and return the new value."""
        self.generation += 1
        return self.generation

    def is_current(self, token: int) -> bool:
        return self.generation == token

    def next_upload_token(self) -> int:
        """Start a new download preparation, superseding any earlier one."""
        self.upload_token += 1
        return self.upload_token

    def find_photo(self, photo_id: str) -> Photo | None:
        return next((photo for photo in self.photos if photo.id == photo_id), None)

    def ready_photos(self) -> list[Photo]:
        return [photo for photo in self.photos if not photo.is_busy]

    def add_photo(self, photo: Photo, image_bytes: bytes) -> None:
        """Store a new capture at the front of the queue."""
        self.inputs[photo.id] = image_bytes
        self.photos.insert(0, photo)

    def update_photo(self, photo_id: str, **changes: object) -> None:
        self.photos = [
            replace(photo, **changes) if photo.id == photo_id else photo
            for photo in self.photos
        ]

    def remove_photo(self, photo_id: str) -> None:
        self.photos = [photo for photo in self.photos if photo.id != photo_id]
        self.inputs.pop(photo_id, None)
        self.outputs.pop(photo_id, None)

    def keep_only(self, photo_id: str) -> None:
        """Drop every photo and cached byte payload except ``photo_id``."""
        self.photos = [photo for photo in self.photos if photo.id == photo_id]
        for cache in (self.inputs, self.outputs):
            for key in [key for key in cache if key != photo_id]:
                del cache[key]

    def prune_orphans(self) -> list[str]:
        """Drop watermarked previews whose photo is no longer listed."""
        valid = {photo.id for photo in self.photos}
        orphans = [key for key in self.watermarked_previews if key not in valid]
        for key in orphans:
            del self.watermarked_previews[key]
        return orphans

    def clear(self) -> None:
        """Reset all session-scoped data. The generation token is kept."""
        self.photos = []
        self.gif_url = None
        self.gif_in_progress = False
        self.inputs.clear()
        self.outputs.clear()
        self.watermarked_previews.clear()
        self.prepared_downloads.clear()
        self.cloud_urls.clear()
        self.qr_codes = DownloadCodes()
        self.is_uploading = False
