"""Client for the booth's own upload endpoint."""

from dataclasses import dataclass

import httpx

from event_photobooth.domain.storage import UploadLink
from event_photobooth.services.imaging import detect_mime_type
from event_photobooth.services.session_controller import UploadClient

UPLOAD_TIMEOUT_SECONDS = 90


@dataclass
class HttpxUploadClient(UploadClient):
    """Post artifacts to ``/api/upload`` on a booth server."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str) -> "HttpxUploadClient":
        """Create an upload client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(timeout=UPLOAD_TIMEOUT_SECONDS),
        )

    async def upload(self, data: bytes, filename: str) -> UploadLink:
        """Upload one artifact and return its primary link and QR code."""
        mime_type = "image/gif" if filename.endswith(".gif") else detect_mime_type(data)
        response = await self.http_client.post(
            f"{self.base_url}/api/upload",
            files={"file": (filename, data, mime_type)},
            data={"name": filename},
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("success"):
            raise RuntimeError(payload.get("error") or "Upload failed")
        direct_link = payload.get("directLink") or payload.get("downloadUrl")
        qr_code = payload.get("qrCode")
        if not direct_link or not qr_code:
            raise RuntimeError("Upload response is missing a link or QR code")
        return UploadLink(
            direct_link=direct_link,
            qr_code=qr_code,
            provider=payload.get("storageProvider", ""),
        )

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()
