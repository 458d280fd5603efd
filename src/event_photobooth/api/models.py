"""Request and response bodies for the HTTP API."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from event_photobooth.domain.photos import Photo
from event_photobooth.domain.storage import UploadReceipt
from event_photobooth.services.session_store import SessionStore


class ApiModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StorageResultModel(ApiModel):
    provider: str
    download_url: str
    view_url: str
    direct_link: str
    remote_path: str | None = None


class StorageErrorModel(ApiModel):
    provider: str
    error: str


class UploadResponse(ApiModel):
    success: bool = True
    download_url: str
    view_url: str
    direct_link: str
    qr_code: str
    filename: str
    storage_provider: str
    storage_results: list[StorageResultModel]
    storage_errors: list[StorageErrorModel] | None = None

    @classmethod
    def from_receipt(cls, receipt: UploadReceipt) -> "UploadResponse":
        outcome = receipt.outcome
        errors = [
            StorageErrorModel(provider=failure.provider, error=failure.message)
            for failure in outcome.errors
        ]
        return cls(
            download_url=outcome.primary.download_url,
            view_url=outcome.primary.view_url,
            direct_link=outcome.primary.direct_link,
            qr_code=outcome.qr_code,
            filename=receipt.filename,
            storage_provider=receipt.storage_provider,
            storage_results=[
                StorageResultModel(
                    provider=result.provider,
                    download_url=result.download_url,
                    view_url=result.view_url,
                    direct_link=result.direct_link,
                    remote_path=result.remote_path,
                )
                for result in outcome.results
            ],
            storage_errors=errors or None,
        )


class ConnectionTestResponse(ApiModel):
    success: bool
    message: str


class StorageSelection(ApiModel):
    """Enabled providers and the primary one."""

    enabled: list[str]
    primary: str


class StorageSelectionUpdate(ApiModel):
    enabled: list[str] | None = None
    primary: str | None = None


class PhotoModel(ApiModel):
    id: str
    mode: str
    is_busy: bool
    error: str | None = None
    has_preview: bool = False

    @classmethod
    def from_photo(cls, photo: Photo, store: SessionStore) -> "PhotoModel":
        return cls(
            id=photo.id,
            mode=photo.mode,
            is_busy=photo.is_busy,
            error=photo.error,
            has_preview=photo.id in store.watermarked_previews,
        )


class SessionResponse(ApiModel):
    """Visible state of the active session."""

    photos: list[PhotoModel]
    active_mode: str
    custom_prompt: str
    gif_url: str | None
    gif_in_progress: bool
    is_uploading: bool
    photo_qr_code: str | None = None
    gif_qr_code: str | None = None

    @classmethod
    def from_store(cls, store: SessionStore) -> "SessionResponse":
        return cls(
            photos=[PhotoModel.from_photo(photo, store) for photo in store.photos],
            active_mode=store.active_mode,
            custom_prompt=store.custom_prompt,
            gif_url=store.gif_url,
            gif_in_progress=store.gif_in_progress,
            is_uploading=store.is_uploading,
            photo_qr_code=store.qr_codes.photo,
            gif_qr_code=store.qr_codes.gif,
        )


class ModeUpdate(ApiModel):
    mode: str


class PromptUpdate(ApiModel):
    prompt: str


class DownloadResponse(ApiModel):
    ready: bool
    message: str | None = None
    photo_qr_code: str | None = None
    gif_qr_code: str | None = None


class StyleModeModel(ApiModel):
    key: str
    name: str
    emoji: str
    prompt: str


class CaptureGeometryResponse(ApiModel):
    orientation: str
    rotate: bool
    canvas_width: int
    canvas_height: int
    source_width: float
    source_height: float
    source_x: float
    source_y: float
    aspect: float
