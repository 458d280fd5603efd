"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.staticfiles import StaticFiles

from event_photobooth.api.models import (
    CaptureGeometryResponse,
    StyleModeModel,
    UploadResponse,
)
from event_photobooth.api.session import router as session_router
from event_photobooth.api.storage_config import router as storage_router
from event_photobooth.app_logging import configure_logging
from event_photobooth.containers import AppContainer
from event_photobooth.domain.capture import Orientation, Viewport
from event_photobooth.services.geometry import (
    compute_capture_geometry,
    needs_rotation,
    resolve_orientation,
)
from event_photobooth.services.storage import StorageError

UPLOAD_CHUNK_BYTES = 1024 * 1024


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Storage providers active",
            extra={
                "providers": container.orchestrator.active_providers(),
                "primary": container.orchestrator.primary,
            },
        )
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(storage_router)
    app.include_router(session_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        """Report active storage providers without exposing credentials."""
        state_container: AppContainer = request.app.state.container
        orchestrator = state_container.orchestrator
        return {
            "status": "ok",
            "providers": orchestrator.active_providers(),
            "primary": orchestrator.primary,
            "configured": {
                name: backend.is_configured()
                for name, backend in state_container.backends.items()
            },
            "stylization": state_container.stylization_service is not None,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }

    @app.post("/api/upload", response_model_exclude_none=True)
    async def upload(
        request: Request,
        file: UploadFile | None = File(default=None),
        name: str | None = Form(default=None),
    ) -> UploadResponse:
        """Store an artifact on every enabled backend and return a QR code."""
        state_container: AppContainer = request.app.state.container
        if file is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded"
            )
        data = await _read_limited(file, state_container.settings.max_upload_bytes)
        logger.info(
            "Upload request received",
            extra={"upload_name": name or file.filename, "size": len(data)},
        )
        try:
            receipt = await state_container.upload_service.accept(
                data, file.filename or name, str(request.base_url)
            )
        except StorageError as exc:
            logger.exception("Failed to store upload locally")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="File processing failed.",
            ) from exc
        return UploadResponse.from_receipt(receipt)

    @app.get("/api/modes")
    async def list_modes(request: Request) -> list[StyleModeModel]:
        state_container: AppContainer = request.app.state.container
        return [
            StyleModeModel(
                key=mode.key, name=mode.name, emoji=mode.emoji, prompt=mode.prompt
            )
            for mode in state_container.modes.values()
        ]

    @app.get("/api/capture/geometry")
    async def capture_geometry(  # noqa: PLR0913
        video_width: float,
        video_height: float,
        viewport_width: float | None = None,
        viewport_height: float | None = None,
        force_portrait: bool = False,
    ) -> CaptureGeometryResponse:
        """Return the crop that turns a camera frame into the booth's aspect."""
        viewport = (
            Viewport(width=viewport_width, height=viewport_height)
            if viewport_width is not None and viewport_height is not None
            else None
        )
        orientation = resolve_orientation(viewport, force_portrait=force_portrait)
        portrait = orientation == Orientation.portrait
        rotate = needs_rotation(video_width, video_height, portrait=portrait)
        geometry = compute_capture_geometry(
            video_width, video_height, portrait=portrait, rotate=rotate
        )
        return CaptureGeometryResponse(
            orientation=orientation.value,
            rotate=rotate,
            canvas_width=geometry.canvas_width,
            canvas_height=geometry.canvas_height,
            source_width=geometry.source_width,
            source_height=geometry.source_height,
            source_x=geometry.source_x,
            source_y=geometry.source_y,
            aspect=geometry.aspect,
        )

    app.mount(
        "/uploads",
        StaticFiles(directory=container.settings.upload_dir, check_dir=False),
        name="uploads",
    )

    return app


async def _read_limited(file: UploadFile, limit: int) -> bytes:
    """Read an upload, rejecting it with 413 once it exceeds ``limit`` bytes."""
    chunks: list[bytes] = []
    total = 0
    while chunk := await file.read(UPLOAD_CHUNK_BYTES):
        total += len(chunk)
        if total > limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="File too large",
            )
        chunks.append(chunk)
    if not chunks:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded"
        )
    return b"".join(chunks)
