"""Nextcloud storage backend over WebDAV and the OCS share API."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx

from event_photobooth.domain.storage import ConnectionTest, NextcloudConfig, StoredFile
from event_photobooth.services.storage import (
    ConfigHolder,
    StorageBackend,
    StorageError,
    StorageNotConfiguredError,
)

HTTP_TIMEOUT_SECONDS = 30
PUBLIC_LINK_SHARE = "3"

logger = logging.getLogger(__name__)


@dataclass
class NextcloudStorageBackend(StorageBackend):
    """Upload to Nextcloud and publish a public share link."""

    config: ConfigHolder[NextcloudConfig]
    http_client: httpx.AsyncClient
    name: str = "nextcloud"

    @classmethod
    def create(cls, config: NextcloudConfig) -> "NextcloudStorageBackend":
        """Create a backend with a managed httpx session."""
        return cls(
            config=ConfigHolder(config),
            http_client=httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS),
        )

    async def upload(
        self, local_path: Path, remote_name: str, *, is_gif: bool = False
    ) -> StoredFile:
        """PUT the file, then create a public share for it."""
        cfg = self.config.snapshot()
        _require_config(cfg)
        folder = cfg.gif_folder if is_gif else cfg.base_folder
        remote_path = f"{folder}/{remote_name}" if folder else remote_name

        await self._ensure_directory(cfg, folder)
        response = await self.http_client.put(
            _dav_url(cfg, remote_path),
            content=local_path.read_bytes(),
            auth=(cfg.username, cfg.password),
        )
        _raise_for_status(response, "upload")
        logger.info("Uploaded file to Nextcloud", extra={"remote_path": remote_path})

        public_url = await self._create_public_share(cfg, f"/{remote_path}")
        return StoredFile(
            provider=self.name,
            public_url=public_url,
            remote_path=remote_path,
            download_url=f"{public_url}/download",
            view_url=public_url,
        )

    async def _ensure_directory(self, cfg: NextcloudConfig, folder: str) -> None:
        """Create every segment of ``folder``; existing ones are fine."""
        current = ""
        for segment in [part for part in folder.split("/") if part]:
            current = f"{current}{segment}/"
            response = await self.http_client.request(
                "MKCOL", _dav_url(cfg, current), auth=(cfg.username, cfg.password)
            )
            # 405 Method Not Allowed: the collection already exists.
            if response.status_code == httpx.codes.METHOD_NOT_ALLOWED:
                continue
            _raise_for_status(response, "create directory")

    async def _create_public_share(self, cfg: NextcloudConfig, share_path: str) -> str:
        params: dict[str, str] = {
            "path": share_path,
            "shareType": PUBLIC_LINK_SHARE,
            "permissions": str(cfg.share_permissions),
        }
        if cfg.share_password:
            params["password"] = cfg.share_password
        if cfg.share_expire_days:
            expires = datetime.now(tz=UTC) + timedelta(days=cfg.share_expire_days)
            params["expireDate"] = expires.date().isoformat()

        response = await self.http_client.post(
            f"{cfg.server_url}/ocs/v2.php/apps/files_sharing/api/v1/shares",
            params={"format": "json"},
            data=params,
            headers={"OCS-APIRequest": "true", "Accept": "application/json"},
            auth=(cfg.username, cfg.password),
        )
        _raise_for_status(response, "share")
        payload = response.json()
        ocs = payload.get("ocs", {}) if isinstance(payload, dict) else {}
        meta = ocs.get("meta", {})
        if meta.get("status") != "ok":
            message = meta.get("message") or "Unknown error"
            raise StorageError(f"Nextcloud share API returned error: {message}")
        url = (ocs.get("data") or {}).get("url")
        if not url:
            raise StorageError("Nextcloud share API did not return a public URL")
        logger.info("Created Nextcloud public share", extra={"path": share_path})
        return str(url)

    async def test_connection(
        self, overrides: dict[str, Any] | None = None
    ) -> ConnectionTest:
        """List the WebDAV root with the current or overridden settings."""
        try:
            cfg = self.config.merged(overrides)
            _require_config(cfg)
            response = await self.http_client.request(
                "PROPFIND",
                _dav_url(cfg, ""),
                headers={"Depth": "1"},
                auth=(cfg.username, cfg.password),
            )
            _raise_for_status(response, "connection test")
        except (StorageError, httpx.HTTPError, ValueError) as exc:
            return ConnectionTest(success=False, message=str(exc))
        return ConnectionTest(success=True, message="Nextcloud connection successful")

    def get_config(self) -> NextcloudConfig:
        return self.config.snapshot()

    def update_config(self, patch: dict[str, Any]) -> NextcloudConfig:
        return self.config.update(patch)

    def is_configured(self) -> bool:
        cfg = self.config.snapshot()
        return bool(cfg.server_url and cfg.username and cfg.password)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _require_config(cfg: NextcloudConfig) -> None:
    if not cfg.server_url or not cfg.webdav_root or not cfg.username:
        raise StorageNotConfiguredError("Incomplete Nextcloud configuration")
    if not cfg.password:
        raise StorageNotConfiguredError("Incomplete Nextcloud configuration")


def _dav_url(cfg: NextcloudConfig, remote_path: str) -> str:
    return f"{cfg.server_url}{cfg.webdav_root}/{remote_path.lstrip('/')}"


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    raise StorageError(
        f"Nextcloud {action} failed ({response.status_code}): {response.text[:200]}"
    )
