"""Storage backend contract and configuration snapshots."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from event_photobooth.domain.storage import ConnectionTest, StorageConfig, StoredFile

ConfigT = TypeVar("ConfigT", bound=StorageConfig)

SECRET_MASK = "********"

_MIME_BY_SUFFIX = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class StorageError(RuntimeError):
    """Raised when a backend cannot store an artifact."""


class StorageNotConfiguredError(StorageError):
    """Raised when a backend lacks the settings it needs."""


class StorageBackend(Protocol):
    """Interface every storage backend implements."""

    name: str

    async def upload(
        self, local_path: Path, remote_name: str, *, is_gif: bool = False
    ) -> StoredFile:
        """Store the file and return where it can be reached."""

    async def test_connection(
        self, overrides: dict[str, Any] | None = None
    ) -> ConnectionTest:
        """Probe the backend, optionally with unsaved settings."""

    def get_config(self) -> StorageConfig:
        """Return the current configuration snapshot."""

    def update_config(self, patch: dict[str, Any]) -> StorageConfig:
        """Merge ``patch`` into the configuration and return the new snapshot."""

    def is_configured(self) -> bool:
        """Return true when the backend has the settings it needs."""


@dataclass
class ConfigHolder(Generic[ConfigT]):
    """Hold an immutable configuration snapshot; writers replace it whole."""

    current: ConfigT

    def snapshot(self) -> ConfigT:
        return self.current

    def merged(self, patch: dict[str, Any] | None) -> ConfigT:
        """Return a validated copy with ``patch`` applied, without storing it."""
        if not patch:
            return self.current
        data = self.current.model_dump()
        for key, value in patch.items():
            if key == "version" or key not in data:
                continue
            if value == SECRET_MASK:
                continue
            data[key] = value
        data["version"] = self.current.version + 1
        return type(self.current).model_validate(data)

    def update(self, patch: dict[str, Any]) -> ConfigT:
        self.current = self.merged(patch)
        return self.current


def mask_secrets(config: StorageConfig, secret_fields: tuple[str, ...]) -> dict:
    """Dump ``config`` with populated secret fields replaced by a mask."""
    data = config.model_dump()
    for key in secret_fields:
        if data.get(key):
            data[key] = SECRET_MASK
    return data


def detect_mime_type(filename: str, fallback: str = "application/octet-stream") -> str:
    """Guess an image MIME type from a filename extension."""
    return _MIME_BY_SUFFIX.get(Path(filename).suffix.lower(), fallback)
