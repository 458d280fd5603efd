"""FTP storage backend."""

import asyncio
import ftplib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from event_photobooth.domain.storage import ConnectionTest, FtpConfig, StoredFile
from event_photobooth.services.storage import (
    ConfigHolder,
    StorageBackend,
    StorageError,
    StorageNotConfiguredError,
)

FTP_TIMEOUT_SECONDS = 30

logger = logging.getLogger(__name__)

FtpFactory = Callable[[FtpConfig], ftplib.FTP]


def connect_ftp(cfg: FtpConfig) -> ftplib.FTP:
    """Open and authenticate a fresh FTP session."""
    ftp: ftplib.FTP = (
        ftplib.FTP_TLS(timeout=FTP_TIMEOUT_SECONDS)
        if cfg.secure
        else ftplib.FTP(timeout=FTP_TIMEOUT_SECONDS)
    )
    ftp.connect(cfg.host, cfg.port)
    ftp.login(cfg.user, cfg.password)
    if isinstance(ftp, ftplib.FTP_TLS):
        ftp.prot_p()
    return ftp


@dataclass
class FtpStorageBackend(StorageBackend):
    """Upload artifacts over FTP, one connection per call."""

    config: ConfigHolder[FtpConfig]
    ftp_factory: FtpFactory = connect_ftp
    name: str = "ftp"

    @classmethod
    def create(cls, config: FtpConfig) -> "FtpStorageBackend":
        return cls(config=ConfigHolder(config))

    async def upload(
        self, local_path: Path, remote_name: str, *, is_gif: bool = False
    ) -> StoredFile:
        """Store the file under the remote base path and return its URL."""
        cfg = self.config.snapshot()
        _require_config(cfg)
        remote_dir = _remote_dir(cfg, is_gif=is_gif)
        await asyncio.to_thread(self._store, cfg, local_path, remote_dir, remote_name)
        remote_path = f"{remote_dir.rstrip('/')}/{remote_name}"
        public_url = _public_url(cfg, remote_name, is_gif=is_gif)
        logger.info("Uploaded file over FTP", extra={"remote_path": remote_path})
        return StoredFile(
            provider=self.name,
            public_url=public_url,
            remote_path=remote_path,
            download_url=public_url,
            view_url=public_url,
        )

    def _store(
        self, cfg: FtpConfig, local_path: Path, remote_dir: str, remote_name: str
    ) -> None:
        ftp = self.ftp_factory(cfg)
        try:
            _ensure_remote_dir(ftp, remote_dir)
            with local_path.open("rb") as handle:
                ftp.storbinary(f"STOR {remote_name}", handle)
        except ftplib.all_errors as exc:
            raise StorageError(f"FTP upload failed: {exc}") from exc
        finally:
            _close_quietly(ftp)

    async def test_connection(
        self, overrides: dict[str, Any] | None = None
    ) -> ConnectionTest:
        """Log in with the current or overridden settings."""
        try:
            cfg = self.config.merged(overrides)
            _require_config(cfg)
            await asyncio.to_thread(self._probe, cfg)
        except (StorageError, ValueError) as exc:
            return ConnectionTest(success=False, message=str(exc))
        return ConnectionTest(success=True, message="FTP connection successful")

    def _probe(self, cfg: FtpConfig) -> None:
        try:
            ftp = self.ftp_factory(cfg)
        except ftplib.all_errors as exc:
            raise StorageError(f"FTP connection failed: {exc}") from exc
        try:
            ftp.pwd()
        except ftplib.all_errors as exc:
            raise StorageError(f"FTP connection failed: {exc}") from exc
        finally:
            _close_quietly(ftp)

    def get_config(self) -> FtpConfig:
        return self.config.snapshot()

    def update_config(self, patch: dict[str, Any]) -> FtpConfig:
        return self.config.update(patch)

    def is_configured(self) -> bool:
        cfg = self.config.snapshot()
        return bool(cfg.host and cfg.user and cfg.password)


def _require_config(cfg: FtpConfig) -> None:
    if not cfg.host or not cfg.user or not cfg.password:
        raise StorageNotConfiguredError("Incomplete FTP configuration")


def _remote_dir(cfg: FtpConfig, *, is_gif: bool) -> str:
    base = cfg.remote_path.rstrip("/")
    return f"{base}/gif" if is_gif else (base or "/")


def _public_url(cfg: FtpConfig, remote_name: str, *, is_gif: bool) -> str:
    base = cfg.public_url or f"http://{cfg.host}{cfg.remote_path.rstrip('/')}"
    suffix = f"gif/{remote_name}" if is_gif else remote_name
    return f"{base}/{suffix}"


def _ensure_remote_dir(ftp: ftplib.FTP, remote_dir: str) -> None:
    """Create each segment of ``remote_dir`` and change into it."""
    if remote_dir.startswith("/"):
        ftp.cwd("/")
    for segment in [part for part in remote_dir.split("/") if part]:
        try:
            ftp.mkd(segment)
        except ftplib.error_perm as exc:
            # 550 means the directory already exists.
            if not str(exc).startswith("550"):
                raise
        ftp.cwd(segment)


def _close_quietly(ftp: ftplib.FTP) -> None:
    try:
        ftp.quit()
    except ftplib.all_errors:
        ftp.close()
