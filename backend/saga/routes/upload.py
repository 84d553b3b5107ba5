"""
Heimursaga API — Upload Routes
================================

What:  Image upload and serving.
How:   POST /upload takes a multipart image, validates extension, size and
       magic bytes in `file_service`, stores it under STORAGE_ROOT/<context>/
       and records an Upload row. The returned `id` is what entries,
       expeditions and profile endpoints reference.
       GET /uploads/{path} streams a stored file back.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_session_user
from saga.models.enums import UploadContext
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.upload import UploadResponse
from saga.services.file_service import file_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])


@router.post(
    f"{settings.api_prefix}/upload",
    status_code=201,
    response_model=UploadResponse,
    responses=error_responses(400, 401, 429),
    summary="Upload an image (PNG, JPG, JPEG, WEBP)",
)
async def upload_image(
    file: UploadFile = File(..., description="Image file, max MAX_FILE_SIZE bytes"),
    context: UploadContext = Form(default=UploadContext.ENTRY),
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> UploadResponse:
    """
    Store an uploaded image for the caller.

    Error responses:
        HTTP 400: Invalid file type, size or content (ValidationError)
        HTTP 500: Storage failure (FileStorageError)
    """
    content = await file.read()
    logger.info(
        "Upload from user %s: filename=%s, size=%d bytes, context=%s",
        user.id,
        file.filename or "unknown",
        len(content),
        context.value,
    )
    try:
        return await file_service.upload(
            db,
            user,
            filename=file.filename or "upload.jpg",
            content=content,
            context=context.value,
            content_length=file.size,
        )
    finally:
        await file.close()


@router.get("/uploads/{path:path}", responses=error_responses(404), include_in_schema=False)
async def serve_upload(path: str) -> FileResponse:
    return FileResponse(file_service.resolve_path(path))
