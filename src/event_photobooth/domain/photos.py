"""Domain models for captured photos."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Photo:
    """A captured photo and its stylization status."""

    id: str
    mode: str
    is_busy: bool = True
    error: str | None = None


@dataclass(frozen=True)
class DownloadCodes:
    """QR codes handed to the guest for the photo and the GIF."""

    photo: str | None = None
    gif: str | None = None


@dataclass(frozen=True)
class DownloadRequest:
    """Answer to a guest asking for download codes."""

    ready: bool
    message: str | None = None
    codes: DownloadCodes = DownloadCodes()
