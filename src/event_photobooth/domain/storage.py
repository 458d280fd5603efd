"""Storage configuration snapshots and upload results."""

import re
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_url(value: str) -> str:
    """Strip whitespace and trailing slashes from a server URL."""
    return re.sub(r"\s+", "", value or "").rstrip("/")


def normalize_dav_root(value: str) -> str:
    """Collapse duplicate slashes in a WebDAV root and drop the trailing one."""
    cleaned = re.sub(r"/+", "/", (value or "").replace("\\", "/"))
    return cleaned.rstrip("/")


def normalize_folder(value: str | None, default: str = "") -> str:
    """Return a folder path without leading or trailing slashes."""
    if not value:
        return default
    return value.replace("\\", "/").strip("/")


class StorageConfig(BaseModel):
    """Immutable configuration snapshot shared by all backends."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    version: int = 0


class FtpConfig(StorageConfig):
    """FTP connection and placement settings."""

    host: str = ""
    port: int = Field(default=21, ge=1, le=65535)
    user: str = ""
    password: str = ""
    secure: bool = False
    remote_path: str = "/photobooth"
    public_url: str = ""

    @field_validator("remote_path")
    @classmethod
    def _clean_remote_path(cls, value: str) -> str:
        folder = normalize_folder(value)
        return f"/{folder}" if folder else "/"

    @field_validator("public_url")
    @classmethod
    def _clean_public_url(cls, value: str) -> str:
        return normalize_url(value)


class NextcloudConfig(StorageConfig):
    """Nextcloud WebDAV and share settings."""

    server_url: str = ""
    username: str = ""
    password: str = ""
    webdav_root: str = "/remote.php/dav/files/USERNAME"
    base_folder: str = "photobooth"
    gif_folder: str = "photobooth/gif"
    share_permissions: int = 1
    share_password: str = ""
    share_expire_days: int | None = None

    @field_validator("server_url")
    @classmethod
    def _clean_server_url(cls, value: str) -> str:
        return normalize_url(value)

    @field_validator("webdav_root")
    @classmethod
    def _clean_webdav_root(cls, value: str) -> str:
        return normalize_dav_root(value)

    @field_validator("base_folder")
    @classmethod
    def _clean_base_folder(cls, value: str) -> str:
        return normalize_folder(value, "photobooth")

    @field_validator("gif_folder")
    @classmethod
    def _clean_gif_folder(cls, value: str) -> str:
        return normalize_folder(value, "photobooth/gif")


class GoogleDriveConfig(StorageConfig):
    """Google Drive service account and folder settings."""

    client_email: str = ""
    private_key: str = ""
    impersonate_email: str | None = None
    base_folder_id: str = ""
    gif_folder_id: str = ""
    make_public: bool = True
    use_shared_drive: bool = False
    shared_drive_id: str = ""

    @field_validator("private_key")
    @classmethod
    def _unescape_private_key(cls, value: str) -> str:
        return (value or "").replace("\\n", "\n")


class LocalConfig(StorageConfig):
    """Local disk placement settings."""

    public_prefix: str = "/uploads"


@dataclass(frozen=True)
class StoredFile:
    """What a backend reports after storing one artifact."""

    provider: str
    public_url: str
    remote_path: str | None = None
    download_url: str | None = None
    view_url: str | None = None


@dataclass(frozen=True)
class UploadResult:
    """Links for one artifact on one backend."""

    provider: str
    download_url: str
    view_url: str
    direct_link: str
    remote_path: str | None = None


@dataclass(frozen=True)
class UploadFailure:
    """A backend that did not store the artifact."""

    provider: str
    message: str


@dataclass(frozen=True)
class UploadOutcome:
    """Aggregated fan-out result for one upload call."""

    primary: UploadResult
    results: list[UploadResult]
    errors: list[UploadFailure] = field(default_factory=list)
    qr_code: str = ""


@dataclass(frozen=True)
class UploadReceipt:
    """What the upload endpoint hands back for one received file."""

    filename: str
    storage_provider: str
    outcome: UploadOutcome


@dataclass(frozen=True)
class ConnectionTest:
    """Result of probing a backend."""

    success: bool
    message: str


@dataclass(frozen=True)
class UploadLink:
    """Link and QR code returned to the kiosk for one uploaded artifact."""

    direct_link: str
    qr_code: str
    provider: str = ""
