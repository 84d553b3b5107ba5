"""
Heimursaga API — Comment Routes
=================================

Edit and delete by comment id. Listing and creating live under
/entries/{id}/comments.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_session_user
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.comment import CommentResponse, CommentUpdateRequest
from saga.schemas.common import SuccessResponse
from saga.services.comment_service import comment_service

router = APIRouter(prefix=f"{settings.api_prefix}/comments", tags=["Comments"])


@router.put("/{comment_id}", response_model=CommentResponse, responses=error_responses(400, 401, 403, 404))
async def update_comment(
    comment_id: str,
    payload: CommentUpdateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    return await comment_service.update(db, user, comment_id, payload.content)


@router.delete("/{comment_id}", response_model=SuccessResponse, responses=error_responses(401, 403, 404))
async def delete_comment(
    comment_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await comment_service.delete(db, user, comment_id)
    return SuccessResponse()
