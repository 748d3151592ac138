from typing import Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from socialcore.db.session import get_db
from socialcore.services.redis_service import RedisService
from socialcore.services.notification_service import NotificationService
from socialcore.services.relationship_service import RelationshipService
from socialcore.services.interaction_service import InteractionService
from socialcore.services.message_service import MessageService
from socialcore.websocket.broadcaster import Broadcaster


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def get_cache(request: Request) -> Optional[RedisService]:
    return getattr(request.app.state, "cache", None)


def get_notification_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> NotificationService:
    return NotificationService(db, broadcaster=get_broadcaster(request), cache=get_cache(request))


def get_relationship_service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> RelationshipService:
    return RelationshipService(db, notifications)


def get_interaction_service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> InteractionService:
    return InteractionService(db, notifications)


def get_message_service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> MessageService:
    return MessageService(db, notifications)
