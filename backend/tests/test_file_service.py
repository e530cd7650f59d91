"""
Bird Feed Backend — File Service Unit Tests
============================================

What:  Tests for FileService validation, storage and transaction-bound cleanup.
How:   A FileService per test rooted in tmp_path; no database needed.

Test Strategy:
    ✅ Allowed and rejected extensions (JPEG, PNG, HEIC vs everything else)
    ✅ Size limits (empty, header-reported, actual bytes)
    ✅ Date-organized UUID storage paths
    ✅ Path resolution never escapes the storage root
    ✅ finalize(): deletes after commit, new files removed after rollback
    ❌ Content sniffing of renamed files needs libmagic (skipped without it)
"""

import re
from pathlib import Path

import pytest

from birdfeed.config import settings
from birdfeed.exceptions import NotFoundError, ValidationError
from birdfeed.services.file_service import FileService


@pytest.fixture
def service(tmp_path):
    return FileService(storage_root=str(tmp_path / "photos"))


class TestExtensionValidation:

    @pytest.mark.parametrize("filename", ["bird.jpg", "bird.jpeg", "bird.png", "bird.heic", "bird.HEIF", "IMG_001.JPG"])
    def test_allowed_extensions(self, service, filename):
        assert service.validate_extension(filename) == "." + filename.rsplit(".", 1)[1].lower()

    @pytest.mark.parametrize("filename", ["animation.gif", "document.pdf", "malware.exe", "noextension", ""])
    def test_rejected_extensions(self, service, filename):
        with pytest.raises(ValidationError, match="not supported"):
            service.validate_extension(filename)


class TestSizeValidation:

    def test_within_limit(self, service):
        service.validate_size(1000, 1000)

    def test_exactly_at_limit(self, service):
        service.validate_size(None, settings.max_file_size)

    def test_empty_file_rejected(self, service):
        with pytest.raises(ValidationError, match="empty"):
            service.validate_size(0, 0)

    def test_actual_size_over_limit(self, service):
        with pytest.raises(ValidationError, match="exceeds maximum"):
            service.validate_size(None, settings.max_file_size + 1)

    def test_reported_size_over_limit(self, service):
        with pytest.raises(ValidationError, match="exceeds maximum"):
            service.validate_size(settings.max_file_size + 1, 10)


class TestMimeValidation:

    def test_jpeg_detected(self, service, sample_jpeg_bytes):
        assert service.validate_mime_type(sample_jpeg_bytes, "bird.jpg") == "image/jpeg"

    def test_renamed_text_file_rejected(self, service):
        pytest.importorskip("magic")
        with pytest.raises(ValidationError, match="not supported"):
            service.validate_mime_type(b"just some text, not a photo\n" * 10, "bird.jpg")


class TestUploadValidation:

    def test_returns_storage_extension(self, service, sample_png_bytes):
        assert service.validate_upload("bird.png", sample_png_bytes, len(sample_png_bytes)) == ".png"

    def test_extension_follows_detected_type(self, service, sample_png_bytes):
        pytest.importorskip("magic")
        assert service.validate_upload("renamed.jpg", sample_png_bytes) == ".png"

    def test_extension_checked_before_content(self, service):
        with pytest.raises(ValidationError, match="not supported"):
            service.validate_upload("bird.gif", b"")

    def test_empty_file_rejected(self, service):
        with pytest.raises(ValidationError):
            service.validate_upload("bird.jpg", b"", 0)


class TestStorage:

    async def test_store_file_uses_dated_uuid_path(self, service, sample_jpeg_bytes):
        absolute_path, relative_path = await service.store_file(sample_jpeg_bytes, ".jpg")

        assert re.match(r"^\d{4}/\d{2}/\d{2}/[0-9a-f-]{36}\.jpg$", relative_path)
        with open(absolute_path, "rb") as f:
            assert f.read() == sample_jpeg_bytes

    def test_resolve_path_rejects_traversal(self, service, tmp_path):
        (tmp_path / "secret.txt").write_text("nope")
        with pytest.raises(NotFoundError):
            service.resolve_path("../secret.txt")

    def test_resolve_path_missing_file(self, service):
        with pytest.raises(NotFoundError):
            service.resolve_path("2025/01/01/missing.jpg")

    def test_public_url(self, service):
        assert service.public_url("2025/05/14/a.jpg") == "/api/files/2025/05/14/a.jpg"

    def test_content_type_for(self, service, tmp_path):
        assert service.content_type_for(tmp_path / "x.heic") == "image/heic"
        assert service.content_type_for(tmp_path / "x.bin") == "application/octet-stream"


class TestCleanup:

    async def test_cleanup_file_removes_file(self, service, tmp_path):
        test_file = tmp_path / "test.jpg"
        test_file.write_bytes(b"test content")

        await service.cleanup_file(str(test_file))
        assert not test_file.exists()

    async def test_cleanup_file_nonexistent(self, service, tmp_path):
        await service.cleanup_file(str(tmp_path / "nonexistent.jpg"))

    async def test_delete_stored_refuses_paths_outside_root(self, service, tmp_path):
        outside = tmp_path / "keep.jpg"
        outside.write_bytes(b"x")

        await service.delete_stored("../keep.jpg")
        assert outside.exists()


class TestFinalize:

    async def test_commit_runs_scheduled_deletes_and_keeps_new_files(self, service, mock_db_session, sample_jpeg_bytes):
        old_abs, old_rel = await service.store_file(sample_jpeg_bytes, ".jpg")
        new_abs, _ = await service.store_file(sample_jpeg_bytes, ".jpg")
        service.track_new_file(mock_db_session, new_abs)
        service.schedule_delete(mock_db_session, old_rel)

        await service.finalize(mock_db_session, committed=True)

        assert not (service.storage_root / old_rel).exists()
        assert Path(new_abs).exists()
        assert mock_db_session.info == {}

    async def test_rollback_removes_new_files_and_keeps_scheduled(self, service, mock_db_session, sample_jpeg_bytes):
        old_abs, old_rel = await service.store_file(sample_jpeg_bytes, ".jpg")
        new_abs, _ = await service.store_file(sample_jpeg_bytes, ".jpg")
        service.track_new_file(mock_db_session, new_abs)
        service.schedule_delete(mock_db_session, old_rel)

        await service.finalize(mock_db_session, committed=False)

        assert (service.storage_root / old_rel).exists()
        assert not Path(new_abs).exists()
