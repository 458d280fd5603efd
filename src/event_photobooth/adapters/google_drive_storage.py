"""Google Drive storage backend using a service account."""

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from event_photobooth.domain.storage import (
    ConnectionTest,
    GoogleDriveConfig,
    StoredFile,
)
from event_photobooth.services.storage import (
    ConfigHolder,
    StorageBackend,
    StorageError,
    StorageNotConfiguredError,
    detect_mime_type,
)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]

logger = logging.getLogger(__name__)

DriveServiceFactory = Callable[[GoogleDriveConfig], Any]


def build_drive_service(cfg: GoogleDriveConfig) -> Any:
    """Authorize a service account JWT and build a Drive v3 client."""
    creds = service_account.Credentials.from_service_account_info(
        {
            "type": "service_account",
            "client_email": cfg.client_email,
            "private_key": cfg.private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        },
        scopes=DRIVE_SCOPES,
    )
    if cfg.impersonate_email:
        creds = creds.with_subject(cfg.impersonate_email)
    return build("drive", "v3", credentials=creds, cache_discovery=False)


def resolve_service_account(
    inline_json: str | None, json_file: Path | None
) -> dict[str, str]:
    """Load service account fields from inline JSON or a key file."""
    if inline_json:
        try:
            return json.loads(inline_json)
        except json.JSONDecodeError:
            logger.warning("Failed parsing inline service account JSON")
    if json_file is not None:
        try:
            return json.loads(json_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Failed reading service account file", extra={"path": str(json_file)}
            )
    return {}


@dataclass
class GoogleDriveStorageBackend(StorageBackend):
    """Upload into Drive folders and optionally share with anyone."""

    config: ConfigHolder[GoogleDriveConfig]
    service_factory: DriveServiceFactory = build_drive_service
    name: str = "google-drive"
    _cached_service: Any = field(default=None, init=False, repr=False)
    _cached_key: str | None = field(default=None, init=False, repr=False)

    @classmethod
    def create(cls, config: GoogleDriveConfig) -> "GoogleDriveStorageBackend":
        return cls(config=ConfigHolder(config))

    def _service(self, cfg: GoogleDriveConfig) -> Any:
        """Return a Drive client, reusing it while the identity is unchanged."""
        _require_credentials(cfg)
        cache_key = f"{cfg.client_email}:{cfg.impersonate_email or ''}"
        if self._cached_service is not None and self._cached_key == cache_key:
            return self._cached_service
        service = self.service_factory(cfg)
        self._cached_service = service
        self._cached_key = cache_key
        return service

    async def upload(
        self, local_path: Path, remote_name: str, *, is_gif: bool = False
    ) -> StoredFile:
        """Create the file in Drive and return its view link."""
        cfg = self.config.snapshot()
        if not local_path.exists():
            raise StorageError(f"Local file not found: {local_path}")
        folder_id = (
            cfg.gif_folder_id if is_gif and cfg.gif_folder_id else cfg.base_folder_id
        )
        if not folder_id:
            raise StorageNotConfiguredError("Google Drive folder is not configured")
        service = self._service(cfg)
        try:
            created = await asyncio.to_thread(
                self._create_file, service, cfg, local_path, remote_name, folder_id
            )
        except (HttpError, GoogleAuthError) as exc:
            raise StorageError(f"Google Drive upload failed: {exc}") from exc

        file_id = created.get("id")
        if not file_id:
            raise StorageError("Google Drive did not return a file id")
        if cfg.make_public:
            await asyncio.to_thread(self._share_with_anyone, service, cfg, file_id)

        view_url = (
            created.get("webViewLink")
            or f"https://drive.google.com/file/d/{file_id}/view?usp=sharing"
        )
        download_url = (
            created.get("webContentLink")
            or f"https://drive.google.com/uc?id={file_id}&export=download"
        )
        logger.info("Uploaded file to Google Drive", extra={"file_id": file_id})
        return StoredFile(
            provider=self.name,
            public_url=view_url,
            remote_path=file_id,
            download_url=download_url,
            view_url=view_url,
        )

    def _create_file(  # noqa: PLR0913
        self,
        service: Any,
        cfg: GoogleDriveConfig,
        local_path: Path,
        remote_name: str,
        folder_id: str,
    ) -> dict[str, Any]:
        media = MediaFileUpload(
            str(local_path), mimetype=detect_mime_type(remote_name), resumable=True
        )
        return (
            service.files()
            .create(
                body={"name": remote_name, "parents": [folder_id]},
                media_body=media,
                fields="id, name, webViewLink, webContentLink",
                supportsAllDrives=cfg.use_shared_drive,
            )
            .execute()
        )

    def _share_with_anyone(
        self, service: Any, cfg: GoogleDriveConfig, file_id: str
    ) -> None:
        try:
            service.permissions().create(
                fileId=file_id,
                body={"role": "reader", "type": "anyone"},
                supportsAllDrives=cfg.use_shared_drive,
            ).execute()
        except (HttpError, GoogleAuthError):
            logger.warning(
                "Unable to set public permission", extra={"file_id": file_id}
            )

    async def test_connection(
        self, overrides: dict[str, Any] | None = None
    ) -> ConnectionTest:
        """Read the configured folder, or list one file when none is set."""
        try:
            cfg = self.config.merged(overrides)
            service = self._service(cfg)
            await asyncio.to_thread(self._probe, service, cfg)
        except (StorageError, HttpError, GoogleAuthError, ValueError) as exc:
            return ConnectionTest(success=False, message=str(exc))
        return ConnectionTest(success=True, message="Google Drive connection succeeded")

    def _probe(self, service: Any, cfg: GoogleDriveConfig) -> None:
        folder_id = cfg.base_folder_id or cfg.gif_folder_id
        if folder_id:
            service.files().get(
                fileId=folder_id, fields="id", supportsAllDrives=cfg.use_shared_drive
            ).execute()
            return
        params: dict[str, Any] = {"pageSize": 1, "fields": "files(id)"}
        if cfg.use_shared_drive:
            params.update(
                corpora="drive",
                driveId=cfg.shared_drive_id or None,
                includeItemsFromAllDrives=True,
                supportsAllDrives=True,
            )
        service.files().list(**params).execute()

    def get_config(self) -> GoogleDriveConfig:
        return self.config.snapshot()

    def update_config(self, patch: dict[str, Any]) -> GoogleDriveConfig:
        return self.config.update(patch)

    def is_configured(self) -> bool:
        cfg = self.config.snapshot()
        return bool(cfg.client_email and cfg.private_key)


def _require_credentials(cfg: GoogleDriveConfig) -> None:
    if not cfg.client_email or not cfg.private_key:
        raise StorageNotConfiguredError(
            "Google Drive credentials are not fully configured"
        )
