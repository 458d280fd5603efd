"""Session API for the booth kiosk."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import Response

from event_photobooth.api.models import (
    DownloadResponse,
    ModeUpdate,
    PromptUpdate,
    SessionResponse,
)
from event_photobooth.services.imaging import detect_mime_type
from event_photobooth.services.session_controller import SessionController

if TYPE_CHECKING:
    from event_photobooth.containers import AppContainer

router = APIRouter(prefix="/api/session", tags=["session"])


def require_controller(request: Request) -> SessionController:
    """Return the session controller, or 503 when stylization is not set up."""
    container: AppContainer = request.app.state.container
    if container.session_controller is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stylization is not configured",
        )
    return container.session_controller


@router.get("")
async def get_session(
    controller: SessionController = Depends(require_controller),
) -> SessionResponse:
    controller.init()
    return SessionResponse.from_store(controller.store)


@router.post("/photos")
async def snap_photo(
    file: UploadFile | None = File(default=None),
    controller: SessionController = Depends(require_controller),
) -> dict[str, object]:
    """Capture a frame and stylize it with the active mode."""
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file")
    data = await file.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file"
        )
    photo_id = await controller.snap_photo(data)
    session = SessionResponse.from_store(controller.store)
    return {"photoId": photo_id, "session": session.model_dump(by_alias=True)}


@router.get("/photos/{photo_id}/preview")
async def get_preview(
    photo_id: str, controller: SessionController = Depends(require_controller)
) -> Response:
    """Return the watermarked stylized image for a photo."""
    preview = controller.store.watermarked_previews.get(photo_id)
    if preview is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return Response(content=preview, media_type=detect_mime_type(preview))


@router.delete("/photos/{photo_id}")
async def delete_photo(
    photo_id: str, controller: SessionController = Depends(require_controller)
) -> SessionResponse:
    await controller.delete_photo(photo_id)
    return SessionResponse.from_store(controller.store)


@router.put("/mode")
async def set_mode(
    update: ModeUpdate, controller: SessionController = Depends(require_controller)
) -> SessionResponse:
    try:
        controller.set_mode(update.mode)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    return SessionResponse.from_store(controller.store)


@router.put("/prompt")
async def set_prompt(
    update: PromptUpdate, controller: SessionController = Depends(require_controller)
) -> SessionResponse:
    controller.set_custom_prompt(update.prompt)
    return SessionResponse.from_store(controller.store)


@router.post("/gif")
async def make_gif(
    controller: SessionController = Depends(require_controller),
) -> SessionResponse:
    """Build the GIF now. A missing GIF afterwards means try again later."""
    await controller.make_gif()
    return SessionResponse.from_store(controller.store)


@router.delete("/gif")
async def hide_gif(
    controller: SessionController = Depends(require_controller),
) -> SessionResponse:
    await controller.hide_gif()
    return SessionResponse.from_store(controller.store)


@router.get("/gif")
async def get_current_gif(
    controller: SessionController = Depends(require_controller),
) -> Response:
    return _gif_response(controller, controller.store.gif_url)


@router.get("/gif/{handle}")
async def get_gif(
    handle: str, controller: SessionController = Depends(require_controller)
) -> Response:
    return _gif_response(controller, f"{controller.gif_registry.prefix}/{handle}")


@router.post("/downloads/{photo_id}")
async def request_download(
    photo_id: str,
    request: Request,
    controller: SessionController = Depends(require_controller),
) -> DownloadResponse:
    """Return QR codes for the photo and GIF, uploading them first if needed."""
    container: AppContainer = request.app.state.container
    upload_client = container.session_upload_client
    if upload_client.base_url is None:
        upload_client.base_url = str(request.base_url).rstrip("/")
    result = await controller.request_download(photo_id)
    return DownloadResponse(
        ready=result.ready,
        message=result.message,
        photo_qr_code=result.codes.photo,
        gif_qr_code=result.codes.gif,
    )


@router.delete("")
async def retake(
    controller: SessionController = Depends(require_controller),
) -> SessionResponse:
    """Reset the session for the next guest."""
    controller.retake()
    return SessionResponse.from_store(controller.store)


def _gif_response(controller: SessionController, url: str | None) -> Response:
    data = controller.gif_registry.get(url)
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No GIF")
    return Response(content=data, media_type="image/gif")
