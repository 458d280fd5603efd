"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

STORAGE_PROVIDERS = ("local", "ftp", "nextcloud", "google-drive")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    environment: str = _ENVIRONMENT
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3001
    public_base_url: str | None = None
    upload_dir: Path = Path("public/uploads")
    max_upload_bytes: int = 10 * 1024 * 1024
    filename_prefix: str = "PhotoBox"
    watermark_path: Path | None = None

    storage_provider: str = "local"
    storage_enable_local: bool = True
    storage_enable_ftp: bool = False
    storage_enable_nextcloud: bool = False
    storage_enable_gdrive: bool = False
    storage_keep_local: bool = False
    storage_timeout_seconds: float = 60.0

    ftp_host: str = ""
    ftp_port: int = 21
    ftp_user: str = ""
    ftp_password: str = ""
    ftp_secure: bool = False
    ftp_remote_path: str = "/photobooth"
    ftp_public_url: str = ""

    nextcloud_server_url: str = ""
    nextcloud_username: str = ""
    nextcloud_password: str = ""
    nextcloud_webdav_root: str = "/remote.php/dav/files/USERNAME"
    nextcloud_base_folder: str = "photobooth"
    nextcloud_gif_folder: str = "photobooth/gif"
    nextcloud_share_permissions: int = 1
    nextcloud_share_password: str = ""
    nextcloud_share_expire_days: int | None = None

    google_drive_service_account_json: str | None = None
    google_drive_service_account_file: Path | None = None
    google_drive_client_email: str = ""
    google_drive_private_key: str = ""
    google_drive_impersonate_email: str | None = None
    google_drive_base_folder_id: str = ""
    google_drive_gif_folder_id: str = ""
    google_drive_share_with_anyone: bool = True
    google_drive_use_shared_drive: bool = False
    google_drive_shared_drive_id: str = ""

    # Send session uploads to another booth server instead of this process.
    session_upload_url: str | None = None

    openai_api_key: str | None = None
    openai_image_model: str = "gpt-image-1"
    stylization_timeout_seconds: float = 120.0

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def enabled_providers(settings: Settings) -> list[str]:
    """Return the storage providers switched on in the environment."""
    flags = {
        "local": settings.storage_enable_local,
        "ftp": settings.storage_enable_ftp,
        "nextcloud": settings.storage_enable_nextcloud,
        "google-drive": settings.storage_enable_gdrive,
    }
    enabled = [name for name in STORAGE_PROVIDERS if flags[name]]
    primary = normalize_provider(settings.storage_provider)
    if primary and primary not in enabled:
        enabled.append(primary)
    return enabled or ["local"]


def normalize_provider(raw: str | None) -> str | None:
    """Map provider aliases from the environment to canonical names."""
    if raw is None:
        return None
    cleaned = raw.strip().lower()
    if cleaned in {"gdrive", "google", "googledrive", "google_drive"}:
        return "google-drive"
    if cleaned in STORAGE_PROVIDERS:
        return cleaned
    return None
