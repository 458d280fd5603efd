"""Fan-out uploads across storage backends with a guaranteed local copy."""

import asyncio
import logging
import tempfile
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from event_photobooth.config import STORAGE_PROVIDERS
from event_photobooth.domain.storage import (
    StoredFile,
    UploadFailure,
    UploadLink,
    UploadOutcome,
    UploadReceipt,
    UploadResult,
)
from event_photobooth.services.imaging import load_watermark, watermark_file
from event_photobooth.services.qr import make_qr_data_url
from event_photobooth.services.storage import StorageBackend, StorageError

LOCAL_PROVIDER = "local"
LOCAL_FALLBACK_PROVIDER = "local-fallback"

logger = logging.getLogger(__name__)


@dataclass
class UploadOrchestrator:
    """Upload one artifact to every enabled backend.

    Backends run concurrently and fail independently. The call never ends
    without at least one result: when every backend fails the file is stored
    by the local backend instead.
    """

    backends: dict[str, StorageBackend]
    enabled: list[str]
    primary: str = LOCAL_PROVIDER
    watermark_path: Path | None = None
    keep_local: bool = False
    timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if LOCAL_PROVIDER not in self.backends:
            raise ValueError("The local backend is required for fallback storage")
        self.enabled = [name for name in self.enabled if name in self.backends]

    @property
    def local_backend(self) -> StorageBackend:
        return self.backends[LOCAL_PROVIDER]

    def active_providers(self) -> list[str]:
        return list(self.enabled)

    def set_enabled(self, provider: str, enabled: bool) -> None:
        """Toggle one backend on or off."""
        if provider not in self.backends:
            raise ValueError(f"Unknown storage provider: {provider}")
        if enabled and provider not in self.enabled:
            self.enabled = [
                name
                for name in STORAGE_PROVIDERS
                if name in self.enabled or name == provider
            ]
        elif not enabled:
            self.enabled = [name for name in self.enabled if name != provider]

    def set_primary(self, provider: str) -> None:
        if provider not in self.backends:
            raise ValueError(f"Unknown storage provider: {provider}")
        self.primary = provider

    async def upload(
        self,
        local_path: Path,
        filename: str,
        *,
        is_gif: bool,
        keep_local: bool | None = None,
        base_url: str | None = None,
    ) -> UploadOutcome:
        """Upload ``local_path`` everywhere enabled and return the aggregate."""
        providers = list(self.enabled)
        primary = self.primary
        retain = self.keep_local if keep_local is None else keep_local
        logger.info(
            "Upload received",
            extra={"upload_file": filename, "providers": providers},
        )

        remote_providers = [name for name in providers if name != LOCAL_PROVIDER]
        scratch = None
        if remote_providers and not is_gif and self.watermark_path is not None:
            scratch = tempfile.TemporaryDirectory(prefix="photobooth-")
        try:
            remote_source = local_path
            if scratch is not None:
                remote_source = await asyncio.to_thread(
                    self._watermarked_copy, local_path, Path(scratch.name)
                )

            settled = await asyncio.gather(
                *(
                    self._attempt(
                        name,
                        local_path if name == LOCAL_PROVIDER else remote_source,
                        filename,
                        is_gif=is_gif,
                    )
                    for name in providers
                ),
                return_exceptions=True,
            )
        finally:
            if scratch is not None:
                scratch.cleanup()

        results: list[UploadResult] = []
        errors: list[UploadFailure] = []
        for name, outcome in zip(providers, settled, strict=True):
            if isinstance(outcome, BaseException):
                message = str(outcome) or type(outcome).__name__
                logger.warning(
                    "Storage backend failed",
                    extra={"provider": name, "error": message},
                )
                errors.append(UploadFailure(provider=name, message=message))
            else:
                results.append(self.to_result(outcome, base_url))

        if not results:
            logger.warning("All storage backends failed, keeping local copy")
            stored = await self.local_backend.upload(
                local_path, filename, is_gif=is_gif
            )
            results.append(self.to_result(stored, base_url))

        chosen = next((r for r in results if r.provider == primary), results[0])
        qr_code = make_qr_data_url(chosen.direct_link)

        stored_locally = any(r.provider == LOCAL_PROVIDER for r in results)
        if not stored_locally and not retain:
            _remove_quietly(local_path)

        return UploadOutcome(
            primary=chosen, results=results, errors=errors, qr_code=qr_code
        )

    async def _attempt(
        self, provider: str, source: Path, filename: str, *, is_gif: bool
    ) -> StoredFile:
        backend = self.backends[provider]
        try:
            return await asyncio.wait_for(
                backend.upload(source, filename, is_gif=is_gif),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            raise StorageError(
                f"{provider} upload timed out after {self.timeout_seconds:g}s"
            ) from exc

    def _watermarked_copy(self, source: Path, scratch_dir: Path) -> Path:
        """Return a watermarked copy of ``source``, or ``source`` on failure."""
        watermark = load_watermark(self.watermark_path)
        if watermark is None:
            return source
        try:
            return watermark_file(source, scratch_dir / source.name, watermark)
        except (OSError, ValueError):
            logger.warning(
                "Watermarking failed, uploading original",
                extra={"upload_file": source.name},
                exc_info=True,
            )
            return source

    def to_result(self, stored: StoredFile, base_url: str | None) -> UploadResult:
        """Turn a backend report into links, resolving relative URLs."""
        direct_link = stored.public_url
        if direct_link.startswith("/") and base_url:
            direct_link = f"{base_url.rstrip('/')}{direct_link}"
        return UploadResult(
            provider=stored.provider,
            download_url=stored.download_url or stored.public_url,
            view_url=stored.view_url or stored.public_url,
            direct_link=direct_link,
            remote_path=stored.remote_path,
        )


@dataclass
class UploadService:
    """Persist a received file locally, then hand it to the orchestrator."""

    orchestrator: UploadOrchestrator
    upload_dir: Path
    filename_prefix: str = "PhotoBox"
    public_base_url: str | None = None
    _clock: Callable[[], float] = field(default=time.time, repr=False)

    def resolve_base_url(self, request_base_url: str | None) -> str | None:
        """Prefer the configured public URL over the request's own."""
        configured = (self.public_base_url or "").strip()
        if configured:
            return configured.rstrip("/")
        if request_base_url:
            return request_base_url.rstrip("/")
        return None

    def build_filename(self, original_name: str | None) -> tuple[str, bool]:
        """Return a unique stored filename and whether it is a GIF."""
        suffix = Path(original_name or "").suffix.lstrip(".").lower()
        extension = suffix or "jpg"
        timestamp = int(self._clock() * 1000)
        unique = uuid.uuid4().hex[:6]
        return f"{self.filename_prefix}_{timestamp}_{unique}.{extension}", (
            extension == "gif"
        )

    async def accept(
        self,
        data: bytes,
        original_name: str | None,
        request_base_url: str | None = None,
    ) -> UploadReceipt:
        """Store ``data`` and return links plus a QR code.

        A failure after the local write degrades to the local copy with
        ``local-fallback`` as the provider. Only a failed local write raises.
        """
        filename, is_gif = self.build_filename(original_name)
        base_url = self.resolve_base_url(request_base_url)
        local_path = self.upload_dir / ("gif" if is_gif else "img") / filename
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(local_path.write_bytes, data)
        except OSError as exc:
            raise StorageError(f"Failed to save upload locally: {exc}") from exc
        logger.info("File saved locally", extra={"path": str(local_path)})

        try:
            outcome = await self.orchestrator.upload(
                local_path, filename, is_gif=is_gif, base_url=base_url
            )
            provider = outcome.primary.provider
        except Exception as exc:
            logger.exception("Upload orchestration failed, using local fallback")
            stored = await self.orchestrator.local_backend.upload(
                local_path, filename, is_gif=is_gif
            )
            result = self.orchestrator.to_result(stored, base_url)
            outcome = UploadOutcome(
                primary=result,
                results=[result],
                errors=[UploadFailure(provider="orchestrator", message=str(exc))],
                qr_code=make_qr_data_url(result.direct_link),
            )
            provider = LOCAL_FALLBACK_PROVIDER
        return UploadReceipt(
            filename=filename, storage_provider=provider, outcome=outcome
        )


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove local copy", extra={"path": str(path)})


@dataclass
class InProcessUploadClient:
    """Upload client that calls the upload service directly."""

    service: UploadService
    base_url: str | None = None

    async def upload(self, data: bytes, filename: str) -> UploadLink:
        receipt = await self.service.accept(data, filename, self.base_url)
        primary = receipt.outcome.primary
        return UploadLink(
            direct_link=primary.direct_link,
            qr_code=receipt.outcome.qr_code,
            provider=receipt.storage_provider,
        )
