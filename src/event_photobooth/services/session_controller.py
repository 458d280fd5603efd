"""Capture, stylize, animate and upload for one guest session."""

import asyncio
import logging
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from PIL import Image

from event_photobooth.domain.modes import StyleMode
from event_photobooth.domain.photos import DownloadCodes, DownloadRequest, Photo
from event_photobooth.domain.storage import UploadLink
from event_photobooth.services.gif import GifAssembler, GifHandleRegistry
from event_photobooth.services.imaging import (
    build_watermarked_preview,
    detect_mime_type,
)
from event_photobooth.services.session_store import SessionStore
from event_photobooth.services.stylization import StylizationService

GIF_KEY = "gif"

MSG_UPLOADING = "Files are still being prepared. Please wait a moment."
MSG_NO_PHOTO = "Photo not available. Please take a photo first."
MSG_PHOTO_BUSY = "The photo is still being stylized. Please wait a moment."
MSG_GIF_BUSY = "The GIF is still being created. Try again once it is done."
MSG_NOT_READY = "Results are not ready yet. Please wait a moment and try again."

_EXTENSIONS = {"image/png": "png", "image/webp": "webp", "image/gif": "gif"}

logger = logging.getLogger(__name__)


class UploadClient(Protocol):
    """Interface for sending an artifact to the upload endpoint."""

    async def upload(self, data: bytes, filename: str) -> UploadLink:
        """Upload ``data`` and return its link and QR code."""


class CameraTrack(Protocol):
    """A live camera track that can be stopped."""

    def stop(self) -> None:
        """Release the device."""


@dataclass
class SessionController:
    """Coordinate one guest's session over an explicit ``SessionStore``.

    Every continuation that resumes after an await checks the store's
    generation token first; a retake in the meantime makes it a no-op.
    Download preparation additionally carries its own token so that a newer
    preparation always wins over an older one still in flight.
    """

    store: SessionStore
    stylization: StylizationService
    gif_assembler: GifAssembler
    gif_registry: GifHandleRegistry
    upload_client: UploadClient
    modes: dict[str, StyleMode]
    watermark: Image.Image | None = None
    filename_prefix: str = "photobooth"
    _camera_tracks: list[CameraTrack] = field(default_factory=list, repr=False)

    def init(self) -> None:
        if self.store.did_init:
            return
        self.store.did_init = True

    def set_mode(self, mode: str) -> None:
        if mode not in self.modes:
            raise ValueError(f"Unknown style mode: {mode}")
        self.store.active_mode = mode

    def set_custom_prompt(self, prompt: str) -> None:
        self.store.custom_prompt = prompt

    def attach_camera(self, tracks: Iterable[CameraTrack]) -> None:
        """Remember the live camera tracks so a retake can stop them."""
        self._stop_camera()
        self._camera_tracks = list(tracks)

    async def snap_photo(self, image_bytes: bytes) -> str:
        """Add a capture and stylize it.

        Returns the new photo id. A stylization failure leaves the photo in
        the list with its ``error`` set.
        """
        store = self.store
        generation = store.generation
        mode = store.active_mode
        photo_id = uuid.uuid4().hex
        store.add_photo(Photo(id=photo_id, mode=mode), image_bytes)
        logger.info("Photo captured", extra={"photo_id": photo_id, "mode": mode})

        try:
            prompt = self.stylization.resolve_prompt(mode, store.custom_prompt)
            output = await self.stylization.submit(photo_id, image_bytes, prompt)
        except Exception as exc:
            logger.exception("Stylization failed", extra={"photo_id": photo_id})
            if store.is_current(generation):
                store.update_photo(photo_id, is_busy=False, error=str(exc))
                await self._react()
            return photo_id

        if not store.is_current(generation) or store.find_photo(photo_id) is None:
            logger.info("Discarding stale stylization", extra={"photo_id": photo_id})
            return photo_id
        store.outputs[photo_id] = output
        store.update_photo(photo_id, is_busy=False)
        await self._react()
        return photo_id

    async def delete_photo(self, photo_id: str) -> None:
        self.store.remove_photo(photo_id)
        await self._react()

    async def hide_gif(self) -> None:
        """Release the current GIF; the next reaction may build a fresh one."""
        self.gif_registry.revoke(self.store.gif_url)
        self.store.gif_url = None
        await self._react()

    async def make_gif(self) -> str | None:
        """Build the before/after GIF for the latest stylized photo.

        While an assembly is running further calls return immediately. On
        success only the latest photo and its payloads are kept.
        """
        store = self.store
        if store.gif_in_progress:
            return store.gif_url
        generation = store.generation
        store.gif_in_progress = True
        try:
            candidates = self._gif_candidates()
            if not candidates:
                logger.warning("GIF requested without any ready photos")
                return None
            latest_id = candidates[0].id
            data = await asyncio.to_thread(
                self.gif_assembler.assemble,
                store.inputs.get(latest_id),
                store.outputs.get(latest_id),
            )
            if data is None or not store.is_current(generation):
                return None

            self.gif_registry.revoke(store.gif_url)
            store.gif_url = self.gif_registry.create(data)
            store.keep_only(latest_id)
            store.prune_orphans()
            logger.info("GIF created", extra={"photo_id": latest_id})
            return store.gif_url
        finally:
            if store.is_current(generation):
                store.gif_in_progress = False

    async def prepare_downloads(
        self, photo_id: str | None, *, force: bool = False
    ) -> bool:
        """Upload the photo and GIF and store their QR codes.

        Without ``force`` a cached outcome is returned and nothing starts while
        another preparation is running. With ``force`` a new preparation
        supersedes any running one; only the newest commits its results.
        """
        store = self.store
        if not photo_id:
            return False

        previous = store.prepared_downloads.get(photo_id)
        if not force:
            if previous is True:
                return True
            if previous == "error":
                return False
            if store.is_uploading:
                return False

        photo = store.find_photo(photo_id)
        if photo is None or photo.is_busy:
            return False
        photo_data = store.outputs.get(photo_id)
        if not photo_data:
            return False

        photo_ready = bool(store.qr_codes.photo and photo_id in store.cloud_urls)
        gif_ready = bool(store.qr_codes.gif and GIF_KEY in store.cloud_urls)
        if photo_ready and gif_ready and not force:
            store.prepared_downloads[photo_id] = True
            return True

        generation = store.generation
        token = store.next_upload_token()
        store.is_uploading = True

        def still_current() -> bool:
            return store.is_current(generation) and store.upload_token == token

        try:
            gif_url = store.gif_url or await self.make_gif()
            gif_data = self.gif_registry.get(gif_url)
            if not gif_data:
                raise RuntimeError("GIF is not available after generation")
            if not still_current():
                return False

            stamp = int(time.time() * 1000)
            if photo_ready:
                photo_link = UploadLink(
                    direct_link=store.cloud_urls[photo_id],
                    qr_code=store.qr_codes.photo or "",
                )
            else:
                photo_link = await self.upload_client.upload(
                    photo_data, self._photo_filename(photo_data, stamp)
                )
            if not still_current():
                return False

            if gif_ready:
                gif_link = UploadLink(
                    direct_link=store.cloud_urls[GIF_KEY],
                    qr_code=store.qr_codes.gif or "",
                )
            else:
                gif_link = await self.upload_client.upload(
                    gif_data, f"{self.filename_prefix}-gif-{stamp}.gif"
                )
            if not photo_link.qr_code or not gif_link.qr_code:
                raise RuntimeError("QR code generation incomplete")
            if not still_current():
                return False

            store.cloud_urls[photo_id] = photo_link.direct_link
            store.cloud_urls[GIF_KEY] = gif_link.direct_link
            store.qr_codes = DownloadCodes(
                photo=photo_link.qr_code, gif=gif_link.qr_code
            )
            store.prepared_downloads[photo_id] = True
            return True
        except Exception:
            logger.exception("Preparing downloads failed", extra={"photo_id": photo_id})
            if still_current():
                store.prepared_downloads[photo_id] = "error"
            return False
        finally:
            if still_current():
                store.is_uploading = False

    async def request_download(self, photo_id: str | None) -> DownloadRequest:
        """Check whether download codes can be shown, preparing them if needed."""
        store = self.store
        if store.is_uploading:
            return DownloadRequest(ready=False, message=MSG_UPLOADING)
        photo = store.find_photo(photo_id) if photo_id else None
        if photo is None:
            return DownloadRequest(ready=False, message=MSG_NO_PHOTO)
        if photo.is_busy:
            return DownloadRequest(ready=False, message=MSG_PHOTO_BUSY)
        if store.gif_in_progress:
            return DownloadRequest(ready=False, message=MSG_GIF_BUSY)
        if not store.qr_codes.photo or not store.qr_codes.gif:
            prepared = await self.prepare_downloads(photo_id, force=True)
            if not prepared:
                return DownloadRequest(ready=False, message=MSG_NOT_READY)
        return DownloadRequest(ready=True, codes=store.qr_codes)

    def retake(self) -> None:
        """Reset the session for the next guest.

        Work still in flight from the previous guest sees a new generation
        and drops its results.
        """
        store = self.store
        store.next_generation()
        self.gif_registry.revoke(store.gif_url)
        store.clear()
        self._stop_camera()
        logger.info("Session reset", extra={"generation": store.generation})

    def _gif_candidates(self) -> list[Photo]:
        return [photo for photo in self.store.ready_photos() if photo.error is None]

    async def _react(self) -> None:
        """Re-evaluate derived state after the photo list or GIF changed."""
        store = self.store
        pruned = store.prune_orphans()
        if pruned:
            logger.debug("Pruned orphan previews", extra={"photo_ids": pruned})
        await self._refresh_previews()
        if self._gif_candidates() and not store.gif_in_progress and not store.gif_url:
            await self.make_gif()

    async def _refresh_previews(self) -> None:
        store = self.store
        generation = store.generation
        for photo in self._gif_candidates():
            output = store.outputs.get(photo.id)
            if output is None or photo.id in store.watermarked_previews:
                continue
            try:
                preview = await asyncio.to_thread(
                    build_watermarked_preview, output, self.watermark
                )
            except ValueError:
                logger.warning(
                    "Could not build watermarked preview",
                    extra={"photo_id": photo.id},
                    exc_info=True,
                )
                continue
            if not store.is_current(generation):
                return
            if store.find_photo(photo.id) is not None:
                store.watermarked_previews[photo.id] = preview

    def _stop_camera(self) -> None:
        for track in self._camera_tracks:
            track.stop()
        self._camera_tracks = []

    def _photo_filename(self, data: bytes, stamp: int) -> str:
        extension = _EXTENSIONS.get(detect_mime_type(data), "jpg")
        return f"{self.filename_prefix}-photo-{stamp}.{extension}"
