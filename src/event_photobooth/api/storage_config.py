"""Storage backend configuration and connection test endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Body, HTTPException, Request, status
from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from event_photobooth.api.models import (
    ConnectionTestResponse,
    StorageSelection,
    StorageSelectionUpdate,
)
from event_photobooth.config import STORAGE_PROVIDERS, normalize_provider
from event_photobooth.services.storage import StorageBackend, mask_secrets

if TYPE_CHECKING:
    from event_photobooth.containers import AppContainer

router = APIRouter(prefix="/api", tags=["storage"])

logger = logging.getLogger(__name__)

SECRET_FIELDS: dict[str, tuple[str, ...]] = {
    "ftp": ("password",),
    "nextcloud": ("password", "share_password"),
    "google-drive": ("private_key",),
}
# Drive credentials only come from the environment.
ENV_ONLY_FIELDS: dict[str, frozenset[str]] = {
    "google-drive": frozenset({"client_email", "private_key"}),
}
# Names used by the GOOGLE_DRIVE_* environment variables.
FIELD_ALIASES: dict[str, dict[str, str]] = {
    "google-drive": {"share_with_anyone": "make_public"},
}
READ_ONLY_FIELDS = frozenset({"version", "configured"})


def _backend(request: Request, provider: str) -> StorageBackend:
    container: AppContainer = request.app.state.container
    return container.backends[provider]


def _normalize_patch(
    provider: str, backend: StorageBackend, payload: dict[str, Any] | None
) -> dict[str, Any]:
    """Map camelCase and environment-style keys onto configuration fields.

    Environment-only and read-only keys are dropped. Any other key the
    backend's configuration does not know is rejected with a 400.
    """
    known = type(backend.get_config()).model_fields
    blocked = ENV_ONLY_FIELDS.get(provider, frozenset())
    aliases = FIELD_ALIASES.get(provider, {})
    patch: dict[str, Any] = {}
    unknown: list[str] = []
    for key, value in (payload or {}).items():
        name = to_snake(key)
        name = aliases.get(name, name)
        if name in blocked or name in READ_ONLY_FIELDS:
            continue
        if name not in known:
            unknown.append(key)
            continue
        patch[name] = value
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown configuration keys: {', '.join(sorted(unknown))}",
        )
    return patch


def _config_view(request: Request, provider: str) -> dict[str, Any]:
    backend = _backend(request, provider)
    data = mask_secrets(backend.get_config(), SECRET_FIELDS[provider])
    data["configured"] = backend.is_configured()
    return data


def _update_config(
    request: Request, provider: str, payload: dict[str, Any] | None
) -> dict[str, Any]:
    backend = _backend(request, provider)
    patch = _normalize_patch(provider, backend, payload)
    try:
        updated = backend.update_config(patch)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    logger.info(
        "Storage configuration updated",
        extra={"provider": provider, "version": updated.version},
    )
    return _config_view(request, provider)


async def _test_connection(
    request: Request, provider: str, payload: dict[str, Any] | None
) -> ConnectionTestResponse:
    backend = _backend(request, provider)
    patch = _normalize_patch(provider, backend, payload)
    result = await backend.test_connection(patch)
    return ConnectionTestResponse(success=result.success, message=result.message)


@router.get("/ftp/config")
async def get_ftp_config(request: Request) -> dict[str, Any]:
    """Return the FTP configuration with the password masked."""
    return _config_view(request, "ftp")


@router.post("/ftp/config")
async def update_ftp_config(
    request: Request, payload: dict[str, Any] | None = Body(default=None)
) -> dict[str, Any]:
    return _update_config(request, "ftp", payload)


@router.post("/ftp/test")
async def test_ftp(
    request: Request, payload: dict[str, Any] | None = Body(default=None)
) -> ConnectionTestResponse:
    """Log in to the FTP server with saved or overridden settings."""
    return await _test_connection(request, "ftp", payload)


@router.get("/nextcloud/config")
async def get_nextcloud_config(request: Request) -> dict[str, Any]:
    """Return the Nextcloud configuration with passwords masked."""
    return _config_view(request, "nextcloud")


@router.post("/nextcloud/config")
async def update_nextcloud_config(
    request: Request, payload: dict[str, Any] | None = Body(default=None)
) -> dict[str, Any]:
    return _update_config(request, "nextcloud", payload)


@router.post("/nextcloud/test")
async def test_nextcloud(
    request: Request, payload: dict[str, Any] | None = Body(default=None)
) -> ConnectionTestResponse:
    return await _test_connection(request, "nextcloud", payload)


@router.get("/gdrive/config")
async def get_gdrive_config(request: Request) -> dict[str, Any]:
    return _config_view(request, "google-drive")


@router.post("/gdrive/config")
async def update_gdrive_config(
    request: Request, payload: dict[str, Any] | None = Body(default=None)
) -> dict[str, Any]:
    """Update folder and sharing settings; credentials are left untouched."""
    return _update_config(request, "google-drive", payload)


@router.post("/gdrive/test")
async def test_gdrive(
    request: Request, payload: dict[str, Any] | None = Body(default=None)
) -> ConnectionTestResponse:
    return await _test_connection(request, "google-drive", payload)


@router.get("/storage/config")
async def get_storage_selection(request: Request) -> StorageSelection:
    container: AppContainer = request.app.state.container
    orchestrator = container.orchestrator
    return StorageSelection(
        enabled=orchestrator.active_providers(), primary=orchestrator.primary
    )


@router.post("/storage/config")
async def update_storage_selection(
    update: StorageSelectionUpdate, request: Request
) -> StorageSelection:
    """Switch backends on or off and choose the primary provider."""
    container: AppContainer = request.app.state.container
    orchestrator = container.orchestrator
    if update.enabled is not None:
        wanted = [normalize_provider(name) for name in update.enabled]
        if None in wanted:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown storage provider in {update.enabled}",
            )
        for provider in STORAGE_PROVIDERS:
            orchestrator.set_enabled(provider, provider in wanted)
    if update.primary is not None:
        primary = normalize_provider(update.primary)
        if primary is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown storage provider: {update.primary}",
            )
        orchestrator.set_primary(primary)
    logger.info(
        "Storage selection updated",
        extra={
            "providers": orchestrator.active_providers(),
            "primary": orchestrator.primary,
        },
    )
    return StorageSelection(
        enabled=orchestrator.active_providers(), primary=orchestrator.primary
    )
