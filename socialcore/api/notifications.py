from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import json
import logging

from socialcore.config import settings
from socialcore.db.session import get_db
from socialcore.exceptions import SocialCoreError
from socialcore.schemas.notification_schema import (
    NotificationType,
    NotificationResponse,
    NotificationListResponse,
    UnreadCountResponse,
)
from socialcore.services.notification_service import NotificationService
from socialcore.services.auth_service import get_current_user_id, decode_access_token
from socialcore.api.deps import get_notification_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=NotificationListResponse)
async def get_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.NOTIFICATION_PAGE_SIZE, ge=1, le=100),
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
    current_user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Get user's notifications"""
    return await service.list_notifications(
        current_user_id,
        skip=skip,
        limit=limit,
        unread_only=unread_only,
        notification_type=type.value if type else None,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    return UnreadCountResponse(unread_count=await service.get_unread_count(current_user_id))


@router.put("/read-all")
async def mark_all_notifications_as_read(
    current_user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Mark all notifications as read"""
    count = await service.mark_all_as_read(current_user_id)
    return {"message": f"Marked {count} notifications as read", "count": count}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_as_read(
    notification_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Mark a notification as read"""
    return await service.mark_as_read(notification_id, current_user_id)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    current_user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    """Delete a notification"""
    await service.delete_notification(notification_id, current_user_id)
    return {"message": "Notification deleted successfully"}


@router.websocket("/ws")
async def websocket_notifications(
    websocket: WebSocket,
    token: str,
    db: AsyncSession = Depends(get_db),
):
    """WebSocket endpoint for real-time notifications"""
    user_id = decode_access_token(token)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = websocket.app.state.connection_manager
    service = NotificationService(
        db,
        broadcaster=websocket.app.state.broadcaster,
        cache=getattr(websocket.app.state, "cache", None),
    )

    await websocket.accept()
    await manager.register_connection(user_id, websocket)

    try:
        # Send initial unread count
        unread_count = await service.get_unread_count(user_id)
        await websocket.send_text(json.dumps({
            "event": "init",
            "data": {"unread_count": unread_count}
        }))

        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                message = None
            if not isinstance(message, dict):
                logger.warning(f"Ignoring malformed frame from user {user_id}")
                continue

            if message.get("event") == "ping":
                await websocket.send_text(json.dumps({
                    "event": "pong",
                    "data": {"timestamp": message.get("timestamp")}
                }))

            elif message.get("event") == "mark_as_read":
                notification_id = message.get("notification_id")
                if isinstance(notification_id, int):
                    try:
                        await service.mark_as_read(notification_id, user_id)
                    except SocialCoreError as e:
                        await websocket.send_text(json.dumps({
                            "event": "error",
                            "data": {"detail": e.detail, "code": e.code}
                        }))

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user_id}")
    finally:
        await manager.unregister_connection(websocket)
