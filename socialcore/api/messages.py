from fastapi import APIRouter, Depends, Query, Request, status
from typing import List
import logging

from socialcore.config import settings
from socialcore.schemas.message_schema import (
    MessageCreate,
    MessageResult,
    MessageRequestRespond,
    MessageRequestResponse,
    MessageResponse,
    MessageListResponse,
)
from socialcore.services.message_service import MessageService
from socialcore.services.auth_service import get_current_user_id
from socialcore.api.deps import get_message_service
from socialcore.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=MessageResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit)
async def send_message(
    request: Request,
    body: MessageCreate,
    current_user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """Send a message, or a message request when the recipient does not follow you"""
    return await service.send_message(current_user_id, body.recipient_id, body.content)


@router.get("/inbox", response_model=MessageListResponse)
async def get_inbox(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    current_user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """Get messages received by the current user"""
    return await service.list_inbox(current_user_id, skip=skip, limit=limit, unread_only=unread_only)


@router.get("/sent", response_model=MessageListResponse)
async def get_sent_messages(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    return await service.list_sent(current_user_id, skip=skip, limit=limit)


@router.patch("/{message_id}/read", response_model=MessageResponse)
async def mark_message_as_read(
    message_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """Mark a received message as read"""
    return await service.mark_message_read(message_id, current_user_id)


@router.get("/requests/incoming", response_model=List[MessageRequestResponse])
async def get_incoming_message_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    return await service.list_incoming_message_requests(current_user_id, skip=skip, limit=limit)


@router.put("/requests/{request_id}")
@limiter.limit(settings.rate_limit)
async def respond_to_message_request(
    request: Request,
    request_id: int,
    body: MessageRequestRespond,
    current_user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """Accept or reject a message request"""
    message = await service.respond_to_message_request(request_id, current_user_id, body.decision)
    return {
        "decision": body.decision.value,
        "message_id": message.id if message else None,
    }


@router.delete("/requests/users/{user_id}")
async def cancel_message_request(
    user_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """Cancel a pending message request sent to a user"""
    cancelled = await service.cancel_message_request(current_user_id, user_id)
    return {"cancelled": cancelled}
