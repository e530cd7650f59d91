"""
Bird Feed Backend — Photo File Storage Service
===============================================

What:  Validates uploaded photos and stores, serves and removes their files.
How:   Validates extension, size and magic-byte MIME type, then writes the
       bytes as-is into date-organized directories under a UUID filename.
Who:   Called by PhotoService (uploads, swaps, deletes) and the files route.
When:  During uploads, after committed deletes, and on every image fetch.

Security Model:
    1. Extension check:  rejects obviously wrong files before reading content
    2. Size check:       empty files and files above MAX_FILE_SIZE are rejected
    3. MIME type check:  libmagic inspects the header bytes (catches renames)
    4. UUID filename:    no user input ever reaches the filesystem path
    5. Path resolution:  served paths must resolve inside the storage root

No image processing happens here: no EXIF parsing, no re-encoding, no
thumbnails. What the camera produced is what gets stored.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.exceptions import FileStorageError, NotFoundError, ValidationError
from birdfeed.timeutil import utc_now

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
# Detected MIME type → extension used for the stored file
ALLOWED_MIME_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/heic": ".heic",
    "image/heif": ".heif",
}

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".heic", ".heif"}

# Used only when libmagic is unavailable
_EXTENSION_MIME_FALLBACK = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".heic": "image/heic",
    ".heif": "image/heif",
}

_NEW_FILES_KEY = "birdfeed_new_files"
_PENDING_DELETES_KEY = "birdfeed_pending_file_deletes"

# Served Content-Type by stored extension
CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


class FileService:
    """
    Manages the photo file lifecycle.

    Directory Structure:
        storage/
        └── 2025/
            └── 05/
                └── 14/
                    ├── 3f0c...e1.jpg
                    └── 9a7b...42.heic

    The database only ever stores the relative path ("2025/05/14/<uuid>.jpg");
    `public_url()` turns it into the URL the frontend loads.
    """

    def __init__(self, storage_root: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """
        Checks the upload's extension against the allowed list.

        Returns the normalized extension (lowercase with dot).
        """
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or 'none'}' is not supported. "
                    "Upload a JPEG, PNG or HEIC photo."
                ),
                field="photo",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Rejects empty files and files larger than `max_file_size`.

        The Content-Length header is checked too, but the actual byte count
        is authoritative.
        """
        max_mb = settings.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(
                message="The uploaded file is empty.",
                field="photo",
            )

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller photo.",
                field="photo",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="photo",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes, filename: str) -> str:
        """
        Detects the real content type from the file's magic bytes.

        Returns:
            The detected MIME type (e.g. "image/heic")

        Raises:
            ValidationError: the content is not an allowed image type
            FileStorageError: detection itself failed
        """
        try:
            import magic
            mime_type = magic.from_buffer(file_content, mime=True)
        except ImportError:
            # libmagic missing (slim CI images). Trust the extension instead.
            logger.warning(
                "python-magic not available, falling back to extension-based type detection. "
                "Install libmagic for production security."
            )
            ext = Path(filename).suffix.lower()
            mime_type = _EXTENSION_MIME_FALLBACK.get(ext, "application/octet-stream")
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    "The file must be a JPEG, PNG or HEIC image."
                ),
                field="photo",
                context={"detected_mime": mime_type, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )

        return mime_type

    def validate_upload(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> str:
        """
        Runs every upload check, cheapest first, before anything is written.

        Returns:
            Extension to store the file under, taken from the detected type
            so a HEIC renamed to .jpg is still served as image/heic.
        """
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        mime_type = self.validate_mime_type(content, filename)
        return ALLOWED_MIME_TYPES.get(mime_type, ext)

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        """YYYY/MM/DD/<uuid><ext> under the storage root → (absolute, relative)."""
        date_dir = utc_now().strftime("%Y/%m/%d")
        unique_name = f"{uuid.uuid4()}{extension}"
        relative_path = f"{date_dir}/{unique_name}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, extension: str) -> Tuple[str, str]:
        """
        Writes validated bytes to a fresh path.

        Returns:
            Tuple of (absolute_path, relative_path)

        Raises:
            FileStorageError: directory creation or write failed
        """
        absolute_path, relative_path = self._generate_storage_path(extension)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)

            logger.info("File stored: %s (%d bytes)", relative_path, len(content))
            return str(absolute_path), relative_path

        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded photo. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )

    # ── Lookup / Removal ──────────────────────────────────────────────────

    def resolve_path(self, relative_path: str) -> Path:
        """
        Maps a stored relative path to an absolute path inside the root.

        Raises:
            NotFoundError: the path escapes the storage root or does not exist
        """
        candidate = (self.storage_root / relative_path).resolve()
        if candidate != self.storage_root and self.storage_root not in candidate.parents:
            logger.warning("Rejected file path outside storage root: %s", relative_path)
            raise NotFoundError(resource="file")
        if not candidate.is_file():
            raise NotFoundError(resource="file")
        return candidate

    def content_type_for(self, path: Path) -> str:
        return CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")

    def public_url(self, relative_path: str) -> str:
        """URL the frontend uses to load a stored photo."""
        return f"/api/files/{relative_path}"

    async def cleanup_file(self, file_path: str) -> None:
        """
        Best-effort removal of a file by absolute path.

        Used for newly stored files when the surrounding request fails.
        Missing files are ignored; other failures are logged.
        """
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except Exception as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    async def delete_stored(self, relative_path: str) -> None:
        """
        Removes a photo's file by its stored relative path.

        Called from finalize() once the delete has committed.
        """
        candidate = (self.storage_root / relative_path).resolve()
        if self.storage_root not in candidate.parents:
            logger.warning("Refusing to delete path outside storage root: %s", relative_path)
            return
        await self.cleanup_file(str(candidate))

    # ── Transaction-Bound File Changes ────────────────────────────────────
    # Files are not transactional, so their fate is tied to the session:
    # deletes wait for the commit, new files are removed on rollback.
    # get_db_session calls finalize() once the transaction has ended.

    def track_new_file(self, db: AsyncSession, absolute_path: str) -> None:
        db.info.setdefault(_NEW_FILES_KEY, []).append(absolute_path)

    def schedule_delete(self, db: AsyncSession, relative_path: str) -> None:
        db.info.setdefault(_PENDING_DELETES_KEY, []).append(relative_path)

    async def finalize(self, db: AsyncSession, committed: bool) -> None:
        new_files = db.info.pop(_NEW_FILES_KEY, [])
        pending_deletes = db.info.pop(_PENDING_DELETES_KEY, [])
        if committed:
            for relative_path in pending_deletes:
                await self.delete_stored(relative_path)
        else:
            for absolute_path in new_files:
                await self.cleanup_file(absolute_path)


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()
