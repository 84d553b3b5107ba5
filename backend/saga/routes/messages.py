"""
Heimursaga API — Message Routes
=================================

Direct messages. Both sides of a conversation must be Explorer Pro
members; the service enforces that for the recipient.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_session_user
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.common import CountResponse, SuccessResponse
from saga.schemas.message import (
    ConversationListResponse,
    MessageListResponse,
    MessageResponse,
    MessageSendRequest,
)
from saga.services.message_service import message_service

router = APIRouter(prefix=f"{settings.api_prefix}/messages", tags=["Messages"])


@router.post(
    "",
    status_code=201,
    response_model=MessageResponse,
    responses=error_responses(400, 401, 403, 404),
)
async def send_message(
    payload: MessageSendRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    return await message_service.send(db, user, payload.recipient, payload.content)


@router.get(
    "/conversations",
    response_model=ConversationListResponse,
    responses=error_responses(401, 403),
    summary="Latest message and unread count per partner",
)
async def conversations(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> ConversationListResponse:
    return await message_service.conversations(db, user)


@router.get("/unread-count", response_model=CountResponse, responses=error_responses(401, 403))
async def unread_count(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> CountResponse:
    return await message_service.unread_count(db, user)


@router.post("/read-all", response_model=SuccessResponse, responses=error_responses(401, 403))
async def mark_all_read(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await message_service.mark_all_read(db, user)
    return SuccessResponse()


@router.get(
    "/conversation/{username}",
    response_model=MessageListResponse,
    responses=error_responses(401, 403, 404),
    summary="Full conversation, oldest first; marks incoming messages read",
)
async def conversation(
    username: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    return await message_service.conversation(db, user, username)


@router.post("/{message_id}/read", response_model=MessageResponse, responses=error_responses(401, 403, 404))
async def mark_read(
    message_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    return await message_service.mark_read(db, user, message_id)
