"""Tests for the upload orchestrator and upload service."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from event_photobooth.adapters.local_storage import LocalStorageBackend
from event_photobooth.services.qr import make_qr_data_url
from event_photobooth.services.storage import StorageError
from event_photobooth.services.uploads import (
    LOCAL_FALLBACK_PROVIDER,
    InProcessUploadClient,
    UploadOrchestrator,
    UploadService,
)
from tests.conftest import FakeStorageBackend, make_image_bytes, make_watermark


def _orchestrator(
    tmp_path: Path, *remote: FakeStorageBackend, **kwargs: object
) -> UploadOrchestrator:
    backends = {"local": LocalStorageBackend.create(tmp_path / "uploads")}
    backends.update({backend.name: backend for backend in remote})
    enabled = kwargs.pop("enabled", list(backends))
    return UploadOrchestrator(backends=backends, enabled=enabled, **kwargs)


def _write_photo(tmp_path: Path, name: str = "photo.jpg") -> Path:
    path = tmp_path / "incoming" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_image_bytes((0, 0, 0), size=(200, 150)))
    return path


def test_local_only_upload_returns_absolute_link(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    source = _write_photo(tmp_path)

    outcome = asyncio.run(
        orchestrator.upload(
            source, "shot.jpg", is_gif=False, base_url="http://booth.local:3001/"
        )
    )

    assert outcome.primary.provider == "local"
    assert outcome.primary.direct_link == "http://booth.local:3001/uploads/img/shot.jpg"
    assert outcome.primary.download_url == "/uploads/img/shot.jpg"
    assert outcome.errors == []
    assert outcome.qr_code == make_qr_data_url(outcome.primary.direct_link)
    assert (tmp_path / "uploads" / "img" / "shot.jpg").exists()


def test_all_backends_failing_falls_back_to_local(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp", error=StorageError("530 Login incorrect"))
    orchestrator = _orchestrator(tmp_path, ftp, enabled=["ftp"], primary="ftp")
    source = _write_photo(tmp_path)

    outcome = asyncio.run(orchestrator.upload(source, "shot.jpg", is_gif=False))

    assert [result.provider for result in outcome.results] == ["local"]
    assert outcome.primary.provider == "local"
    assert [(e.provider, e.message) for e in outcome.errors] == [
        ("ftp", "530 Login incorrect")
    ]
    assert source.exists()


def test_partial_failure_keeps_successful_results(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp", error=StorageError("connection refused"))
    nextcloud = FakeStorageBackend("nextcloud")
    orchestrator = _orchestrator(
        tmp_path, ftp, nextcloud, enabled=["ftp", "nextcloud"], primary="ftp"
    )
    source = _write_photo(tmp_path)

    outcome = asyncio.run(orchestrator.upload(source, "shot.jpg", is_gif=False))

    assert [result.provider for result in outcome.results] == ["nextcloud"]
    assert outcome.primary.direct_link == "https://nextcloud.example/shot.jpg"
    assert [error.provider for error in outcome.errors] == ["ftp"]


def test_primary_backend_link_is_preferred(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp")
    nextcloud = FakeStorageBackend("nextcloud")
    orchestrator = _orchestrator(tmp_path, ftp, nextcloud, primary="nextcloud")
    source = _write_photo(tmp_path)

    outcome = asyncio.run(orchestrator.upload(source, "shot.jpg", is_gif=False))

    assert [result.provider for result in outcome.results] == [
        "local",
        "ftp",
        "nextcloud",
    ]
    assert outcome.primary.provider == "nextcloud"
    assert outcome.qr_code == make_qr_data_url("https://nextcloud.example/shot.jpg")


def test_first_result_used_when_primary_missing(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp")
    orchestrator = _orchestrator(tmp_path, ftp, enabled=["ftp"], primary="nextcloud")
    source = _write_photo(tmp_path)

    outcome = asyncio.run(orchestrator.upload(source, "shot.jpg", is_gif=False))

    assert outcome.primary.provider == "ftp"


def test_local_copy_removed_after_remote_only_upload(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp")
    orchestrator = _orchestrator(tmp_path, ftp, enabled=["ftp"])
    source = _write_photo(tmp_path)

    asyncio.run(orchestrator.upload(source, "shot.jpg", is_gif=False))

    assert not source.exists()


def test_keep_local_retains_original(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp")
    orchestrator = _orchestrator(tmp_path, ftp, enabled=["ftp"], keep_local=True)
    first = _write_photo(tmp_path, "a.jpg")
    second = _write_photo(tmp_path, "b.jpg")

    asyncio.run(orchestrator.upload(first, "a.jpg", is_gif=False))
    asyncio.run(orchestrator.upload(second, "b.jpg", is_gif=False, keep_local=False))

    assert first.exists()
    assert not second.exists()


def test_watermark_applied_to_remote_copies_only(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp")
    orchestrator = _orchestrator(
        tmp_path, ftp, watermark_path=make_watermark(tmp_path / "mark.png")
    )
    source = _write_photo(tmp_path)
    original = source.read_bytes()

    asyncio.run(orchestrator.upload(source, "shot.jpg", is_gif=False))

    assert ftp.received[0] != original
    stored_locally = tmp_path / "uploads" / "img" / "shot.jpg"
    assert stored_locally.read_bytes() == original


def test_gif_uploads_are_not_watermarked(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp")
    orchestrator = _orchestrator(
        tmp_path, ftp, watermark_path=make_watermark(tmp_path / "mark.png")
    )
    source = tmp_path / "anim.gif"
    source.write_bytes(make_image_bytes((9, 9, 9), image_format="GIF"))

    outcome = asyncio.run(orchestrator.upload(source, "anim.gif", is_gif=True))

    assert ftp.received == [source.read_bytes()]
    assert ftp.calls[0][2] is True
    assert any(r.download_url == "/uploads/gif/anim.gif" for r in outcome.results)


def test_watermark_failure_uploads_original(tmp_path: Path) -> None:
    ftp = FakeStorageBackend("ftp")
    orchestrator = _orchestrator(
        tmp_path, ftp, watermark_path=make_watermark(tmp_path / "mark.png")
    )
    source = tmp_path / "incoming" / "broken.jpg"
    source.parent.mkdir(parents=True)
    source.write_bytes(b"not an image")

    outcome = asyncio.run(orchestrator.upload(source, "broken.jpg", is_gif=False))

    assert ftp.calls == [(source, "broken.jpg", False)]
    assert ftp.received == [b"not an image"]
    assert outcome.errors == []


def test_scratch_directory_only_for_watermarked_remote_uploads(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    created: list[str] = []
    real = tempfile.TemporaryDirectory

    def tracking(*args: object, **kwargs: object) -> tempfile.TemporaryDirectory:
        scratch = real(*args, **kwargs)
        created.append(scratch.name)
        return scratch

    monkeypatch.setattr(tempfile, "TemporaryDirectory", tracking)
    mark = make_watermark(tmp_path / "mark.png")
    local_only = _orchestrator(tmp_path, watermark_path=mark)
    unmarked = _orchestrator(tmp_path, FakeStorageBackend("ftp"))
    marked = _orchestrator(tmp_path, FakeStorageBackend("ftp"), watermark_path=mark)

    for orchestrator, name in ((local_only, "a.jpg"), (unmarked, "b.jpg")):
        source = _write_photo(tmp_path, name)
        asyncio.run(orchestrator.upload(source, name, is_gif=False))
    gif = tmp_path / "anim.gif"
    gif.write_bytes(make_image_bytes((9, 9, 9), image_format="GIF"))
    asyncio.run(marked.upload(gif, "anim.gif", is_gif=True))

    assert created == []

    source = _write_photo(tmp_path, "c.jpg")
    asyncio.run(marked.upload(source, "c.jpg", is_gif=False))

    assert len(created) == 1
    assert not Path(created[0]).exists()


def test_slow_backend_times_out(tmp_path: Path) -> None:
    slow = FakeStorageBackend("nextcloud", delay=1.0)
    orchestrator = _orchestrator(tmp_path, slow, timeout_seconds=0.05)
    source = _write_photo(tmp_path)

    outcome = asyncio.run(orchestrator.upload(source, "shot.jpg", is_gif=False))

    assert [result.provider for result in outcome.results] == ["local"]
    assert outcome.errors[0].provider == "nextcloud"
    assert "timed out after 0.05s" in outcome.errors[0].message


def test_set_enabled_keeps_provider_order(tmp_path: Path) -> None:
    orchestrator = _orchestrator(
        tmp_path,
        FakeStorageBackend("ftp"),
        FakeStorageBackend("google-drive"),
        enabled=["local"],
    )

    orchestrator.set_enabled("google-drive", True)
    orchestrator.set_enabled("ftp", True)
    orchestrator.set_enabled("local", False)

    assert orchestrator.active_providers() == ["ftp", "google-drive"]
    with pytest.raises(ValueError, match="Unknown storage provider"):
        orchestrator.set_enabled("dropbox", True)
    with pytest.raises(ValueError, match="Unknown storage provider"):
        orchestrator.set_primary("dropbox")


def test_orchestrator_requires_local_backend() -> None:
    with pytest.raises(ValueError, match="local backend is required"):
        UploadOrchestrator(backends={}, enabled=[])


def _service(
    tmp_path: Path, orchestrator: UploadOrchestrator, **kwargs: object
) -> UploadService:
    return UploadService(
        orchestrator=orchestrator,
        upload_dir=tmp_path / "uploads",
        _clock=lambda: 1700000000.123,
        **kwargs,
    )


def test_build_filename_uses_prefix_timestamp_and_extension(tmp_path: Path) -> None:
    service = _service(tmp_path, _orchestrator(tmp_path))

    photo_name, photo_is_gif = service.build_filename("Snap.PNG")
    gif_name, gif_is_gif = service.build_filename("anim.gif")
    bare_name, _ = service.build_filename(None)

    assert photo_name.startswith("PhotoBox_1700000000123_")
    assert photo_name.endswith(".png")
    assert photo_is_gif is False
    assert gif_is_gif is True
    assert gif_name.endswith(".gif")
    assert bare_name.endswith(".jpg")
    assert service.build_filename("a.jpg")[0] != service.build_filename("a.jpg")[0]


def test_resolve_base_url_prefers_configured_value(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    configured = _service(
        tmp_path, orchestrator, public_base_url=" https://booth.example/ "
    )
    from_request = _service(tmp_path, orchestrator)

    assert configured.resolve_base_url("http://testserver/") == "https://booth.example"
    assert from_request.resolve_base_url("http://testserver/") == "http://testserver"
    assert from_request.resolve_base_url(None) is None


def test_accept_writes_file_and_reports_primary(tmp_path: Path) -> None:
    service = _service(tmp_path, _orchestrator(tmp_path))
    data = make_image_bytes((5, 5, 5))

    receipt = asyncio.run(service.accept(data, "snap.jpg", "http://testserver/"))

    assert receipt.storage_provider == "local"
    stored = tmp_path / "uploads" / "img" / receipt.filename
    assert stored.read_bytes() == data
    assert receipt.outcome.primary.direct_link == (
        f"http://testserver/uploads/img/{receipt.filename}"
    )


def test_accept_places_gifs_in_gif_folder(tmp_path: Path) -> None:
    service = _service(tmp_path, _orchestrator(tmp_path))

    receipt = asyncio.run(service.accept(b"GIF89a...", "anim.gif"))

    assert (tmp_path / "uploads" / "gif" / receipt.filename).exists()
    assert receipt.outcome.primary.direct_link.startswith("/uploads/gif/")


def test_accept_degrades_to_local_fallback(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    orchestrator = _orchestrator(tmp_path)
    service = _service(tmp_path, orchestrator)

    async def broken(*args: object, **kwargs: object) -> None:
        raise RuntimeError("orchestrator crashed")

    monkeypatch.setattr(orchestrator, "upload", broken)

    receipt = asyncio.run(service.accept(b"data", "snap.jpg"))

    assert receipt.storage_provider == LOCAL_FALLBACK_PROVIDER
    assert receipt.outcome.primary.provider == "local"
    assert receipt.outcome.errors[0].message == "orchestrator crashed"
    assert receipt.outcome.qr_code.startswith("data:image/png;base64,")


def test_accept_raises_when_local_write_fails(tmp_path: Path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    orchestrator = _orchestrator(tmp_path)
    service = UploadService(orchestrator=orchestrator, upload_dir=blocker)

    with pytest.raises(StorageError, match="Failed to save upload locally"):
        asyncio.run(service.accept(b"data", "snap.jpg"))


def test_in_process_client_returns_link(tmp_path: Path) -> None:
    service = _service(tmp_path, _orchestrator(tmp_path))
    client = InProcessUploadClient(service, base_url="http://booth.local")

    link = asyncio.run(client.upload(b"data", "photobooth-photo-1.jpg"))

    assert link.provider == "local"
    assert link.direct_link.startswith("http://booth.local/uploads/img/PhotoBox_")
    assert link.qr_code == make_qr_data_url(link.direct_link)
