"""
Heimursaga API — File Storage Service
=======================================

What:  Validates, stores and serves uploaded images (profile pictures,
       covers, entry and expedition images).
How:   Extension check, size check, then MIME sniffing with libmagic. Files
       are written with aiofiles under `{storage_root}/{context}/{uuid}.{ext}`
       and recorded as `Upload` rows owned by the uploader.
Who:   Upload route; entry/expedition/profile services resolve upload ids
       to URLs through `resolve_upload()`.

Security Model:
    1. Extension check:  fast rejection before reading content
    2. Size check:       Content-Length first, then actual bytes
    3. MIME check:       libmagic reads the header bytes (renamed files fail)
    4. UUID filename:    no user input ever reaches the file system path
    5. Serving:          `resolve_path()` refuses anything outside storage_root
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import magic
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.exceptions import FileStorageError, NotFoundError, ValidationError
from saga.lib.ids import public_id
from saga.models.enums import UploadContext
from saga.models.upload import Upload
from saga.models.user import User
from saga.schemas.upload import UploadResponse

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}


def upload_url(relative_path: str) -> str:
    """Public URL path of a stored file."""
    return f"{settings.api_prefix}/uploads/{relative_path}"


class FileService:
    """
    Manages the upload lifecycle.

    Directory Structure:
        storage/
        ├── user/         profile pictures and cover photos
        ├── entry/        entry cover images
        └── expedition/   expedition cover images
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override settings.storage_root (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    def validate_extension(self, filename: str) -> str:
        """Return the normalized extension or raise ValidationError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size == 0:
            raise ValidationError(message="Uploaded file is empty.", field="file")

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes) -> str:
        """Detect the MIME type from magic bytes; raise unless it is an allowed image."""
        try:
            mime_type = magic.from_buffer(file_content, mime=True)
        except magic.MagicException as e:
            logger.error("MIME type detection failed: %s", e)
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    "The file must be a valid image (PNG, JPEG or WebP)."
                ),
                field="file",
                context={"detected_mime": mime_type, "allowed": list(ALLOWED_MIME_TYPES)},
            )
        return mime_type

    def _generate_storage_path(self, context: str, extension: str) -> Tuple[Path, str]:
        relative_path = f"{context}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, context: str, extension: str) -> Tuple[str, str]:
        """Write content to disk; returns `(absolute_path, relative_path)`."""
        absolute_path, relative_path = self._generate_storage_path(context, extension)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, e)
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )

        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return str(absolute_path), relative_path

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort removal of a stored file; failures are only logged."""
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, e)

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        context: str = UploadContext.ENTRY.value,
        content_length: Optional[int] = None,
    ) -> Tuple[str, str, str]:
        """Validate then store; returns `(absolute_path, relative_path, mime_type)`."""
        if context not in {c.value for c in UploadContext}:
            raise ValidationError(f"invalid upload context: {context}", field="context")

        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        mime_type = self.validate_mime_type(content)
        if ext == ".jpeg":
            ext = ".jpg"
        absolute_path, relative_path = await self.store_file(content, context, ext)
        return absolute_path, relative_path, mime_type

    async def upload(
        self,
        db: AsyncSession,
        user: User,
        filename: str,
        content: bytes,
        context: str = UploadContext.ENTRY.value,
        content_length: Optional[int] = None,
    ) -> UploadResponse:
        absolute_path, relative_path, mime_type = await self.validate_and_store(
            filename=filename, content=content, context=context, content_length=content_length
        )

        record = Upload(
            public_id=public_id(),
            user_id=user.id,
            context=context,
            path=relative_path,
            mime_type=mime_type,
            size=len(content),
        )
        try:
            db.add(record)
            await db.flush()
        except Exception:
            await self.cleanup_file(absolute_path)
            raise

        return UploadResponse(
            id=record.public_id,
            url=upload_url(relative_path),
            context=context,
            mime_type=mime_type,
            size=record.size,
        )

    async def resolve_upload(self, db: AsyncSession, user: User, upload_id: str) -> Upload:
        """Return an upload owned by `user` or raise NotFoundError."""
        result = await db.execute(
            select(Upload).where(
                Upload.public_id == upload_id,
                Upload.user_id == user.id,
                Upload.deleted_at.is_(None),
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("upload", upload_id)
        return record

    async def resolve_upload_url(self, db: AsyncSession, user: User, upload_id: str) -> str:
        record = await self.resolve_upload(db, user, upload_id)
        return upload_url(record.path)

    def resolve_path(self, relative_path: str) -> Path:
        """Absolute path of a stored file; NotFoundError for traversal or missing files."""
        candidate = (self.storage_root / relative_path).resolve()
        if not candidate.is_relative_to(self.storage_root) or not candidate.is_file():
            raise NotFoundError("file")
        return candidate


# Singleton instance
file_service = FileService()
