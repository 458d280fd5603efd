"""Local filesystem storage backend."""

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from event_photobooth.domain.storage import ConnectionTest, LocalConfig, StoredFile
from event_photobooth.services.storage import ConfigHolder, StorageBackend, StorageError


@dataclass
class LocalStorageBackend(StorageBackend):
    """Keep artifacts under ``<upload_dir>/img`` or ``<upload_dir>/gif``."""

    upload_dir: Path
    config: ConfigHolder[LocalConfig]
    name: str = "local"

    @classmethod
    def create(cls, upload_dir: Path) -> "LocalStorageBackend":
        """Create the backend and its directory layout."""
        backend = cls(upload_dir=upload_dir, config=ConfigHolder(LocalConfig()))
        backend.ensure_dirs()
        return backend

    def ensure_dirs(self) -> None:
        for sub in ("img", "gif"):
            (self.upload_dir / sub).mkdir(parents=True, exist_ok=True)

    def target_path(self, filename: str, *, is_gif: bool) -> Path:
        return self.upload_dir / ("gif" if is_gif else "img") / filename

    async def upload(
        self, local_path: Path, remote_name: str, *, is_gif: bool = False
    ) -> StoredFile:
        """Place the file in the upload tree; already placed files stay put."""
        cfg = self.config.snapshot()
        sub_dir = "gif" if is_gif else "img"
        target = self.target_path(remote_name, is_gif=is_gif)
        if not local_path.exists():
            raise StorageError(f"Local file not found: {local_path}")
        if local_path.resolve() != target.resolve():
            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, local_path, target)
        relative = f"{sub_dir}/{remote_name}"
        public_url = f"{cfg.public_prefix.rstrip('/')}/{relative}"
        return StoredFile(
            provider=self.name,
            public_url=public_url,
            remote_path=relative,
            download_url=public_url,
            view_url=public_url,
        )

    async def test_connection(
        self, overrides: dict[str, Any] | None = None
    ) -> ConnectionTest:
        """Check that the upload tree exists and is writable."""
        try:
            self.ensure_dirs()
            probe = self.upload_dir / ".write-test"
            probe.write_bytes(b"")
            probe.unlink()
        except OSError as exc:
            return ConnectionTest(success=False, message=str(exc))
        return ConnectionTest(success=True, message="Local storage is writable")

    def get_config(self) -> LocalConfig:
        return self.config.snapshot()

    def update_config(self, patch: dict[str, Any]) -> LocalConfig:
        return self.config.update(patch)

    def is_configured(self) -> bool:
        return True
