"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from event_photobooth.adapters.ftp_storage import FtpStorageBackend
from event_photobooth.adapters.google_drive_storage import (
    GoogleDriveStorageBackend,
    resolve_service_account,
)
from event_photobooth.adapters.local_storage import LocalStorageBackend
from event_photobooth.adapters.nextcloud_storage import NextcloudStorageBackend
from event_photobooth.adapters.openai_image_client import OpenAIImageClient
from event_photobooth.adapters.upload_api_client import HttpxUploadClient
from event_photobooth.config import Settings, enabled_providers, normalize_provider
from event_photobooth.domain.modes import DEFAULT_MODES, StyleMode
from event_photobooth.domain.storage import (
    FtpConfig,
    GoogleDriveConfig,
    NextcloudConfig,
)
from event_photobooth.services.gif import GifAssembler, GifHandleRegistry
from event_photobooth.services.imaging import load_watermark
from event_photobooth.services.session_controller import SessionController
from event_photobooth.services.session_store import SessionStore
from event_photobooth.services.storage import StorageBackend
from event_photobooth.services.stylization import StylizationService
from event_photobooth.services.uploads import (
    LOCAL_PROVIDER,
    InProcessUploadClient,
    UploadOrchestrator,
    UploadService,
)

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    backends: dict[str, StorageBackend]
    orchestrator: UploadOrchestrator
    upload_service: UploadService
    session_upload_client: InProcessUploadClient | HttpxUploadClient
    gif_registry: GifHandleRegistry
    modes: dict[str, StyleMode]
    stylization_service: StylizationService | None
    session_controller: SessionController | None
    close_resources: Callable[[], Awaitable[None]]


def build_backends(settings: Settings) -> dict[str, StorageBackend]:
    """Create every storage backend from environment settings."""
    ftp_config = FtpConfig(
        host=settings.ftp_host,
        port=settings.ftp_port,
        user=settings.ftp_user,
        password=settings.ftp_password,
        secure=settings.ftp_secure,
        remote_path=settings.ftp_remote_path,
        public_url=settings.ftp_public_url,
    )
    nextcloud_config = NextcloudConfig(
        server_url=settings.nextcloud_server_url,
        username=settings.nextcloud_username,
        password=settings.nextcloud_password,
        webdav_root=settings.nextcloud_webdav_root,
        base_folder=settings.nextcloud_base_folder,
        gif_folder=settings.nextcloud_gif_folder,
        share_permissions=settings.nextcloud_share_permissions,
        share_password=settings.nextcloud_share_password,
        share_expire_days=settings.nextcloud_share_expire_days,
    )
    account = resolve_service_account(
        settings.google_drive_service_account_json,
        settings.google_drive_service_account_file,
    )
    drive_config = GoogleDriveConfig(
        client_email=account.get("client_email") or settings.google_drive_client_email,
        private_key=account.get("private_key") or settings.google_drive_private_key,
        impersonate_email=settings.google_drive_impersonate_email,
        base_folder_id=settings.google_drive_base_folder_id,
        gif_folder_id=settings.google_drive_gif_folder_id,
        make_public=settings.google_drive_share_with_anyone,
        use_shared_drive=settings.google_drive_use_shared_drive,
        shared_drive_id=settings.google_drive_shared_drive_id,
    )
    return {
        LOCAL_PROVIDER: LocalStorageBackend.create(settings.upload_dir),
        "ftp": FtpStorageBackend.create(ftp_config),
        "nextcloud": NextcloudStorageBackend.create(nextcloud_config),
        "google-drive": GoogleDriveStorageBackend.create(drive_config),
    }


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    backends = build_backends(resolved_settings)
    orchestrator = UploadOrchestrator(
        backends=backends,
        enabled=enabled_providers(resolved_settings),
        primary=normalize_provider(resolved_settings.storage_provider)
        or LOCAL_PROVIDER,
        watermark_path=resolved_settings.watermark_path,
        keep_local=resolved_settings.storage_keep_local,
        timeout_seconds=resolved_settings.storage_timeout_seconds,
    )
    upload_service = UploadService(
        orchestrator=orchestrator,
        upload_dir=resolved_settings.upload_dir,
        filename_prefix=resolved_settings.filename_prefix,
        public_base_url=resolved_settings.public_base_url,
    )
    session_upload_client: InProcessUploadClient | HttpxUploadClient
    if resolved_settings.session_upload_url:
        session_upload_client = HttpxUploadClient.create(
            resolved_settings.session_upload_url
        )
    else:
        session_upload_client = InProcessUploadClient(
            service=upload_service, base_url=resolved_settings.public_base_url
        )
    gif_registry = GifHandleRegistry()
    watermark = load_watermark(resolved_settings.watermark_path)
    modes = dict(DEFAULT_MODES)

    image_client: OpenAIImageClient | None = None
    stylization_service: StylizationService | None = None
    session_controller: SessionController | None = None
    if resolved_settings.openai_api_key:
        image_client = OpenAIImageClient.create(
            api_key=resolved_settings.openai_api_key,
            timeout=resolved_settings.stylization_timeout_seconds,
        )
        stylization_service = StylizationService(
            client=image_client,
            model=resolved_settings.openai_image_model,
            modes=modes,
        )
        session_controller = SessionController(
            store=SessionStore(),
            stylization=stylization_service,
            gif_assembler=GifAssembler(watermark=watermark),
            gif_registry=gif_registry,
            upload_client=session_upload_client,
            modes=modes,
            watermark=watermark,
        )
    else:
        logger.warning("OPENAI_API_KEY is not set; the session API is disabled")

    nextcloud_backend = backends["nextcloud"]

    async def close_resources() -> None:
        if isinstance(nextcloud_backend, NextcloudStorageBackend):
            await nextcloud_backend.close()
        if image_client is not None:
            await image_client.close()
        if isinstance(session_upload_client, HttpxUploadClient):
            await session_upload_client.close()

    return AppContainer(
        settings=resolved_settings,
        backends=backends,
        orchestrator=orchestrator,
        upload_service=upload_service,
        session_upload_client=session_upload_client,
        gif_registry=gif_registry,
        modes=modes,
        stylization_service=stylization_service,
        session_controller=session_controller,
        close_resources=close_resources,
    )
