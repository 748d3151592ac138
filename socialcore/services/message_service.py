from typing import List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_, desc, exists, func
import logging

from socialcore.exceptions import (
    ValidationError,
    NotFoundError,
    DuplicateActionError,
    NotAuthorizedError,
    InvalidStateError,
    store_errors,
)
from socialcore.models.user import User
from socialcore.models.follow import Follow
from socialcore.models.message import Message, MessageRequest, MessageRequestStatus
from socialcore.schemas.message_schema import (
    MessageStatus,
    MessageResult,
    MessageRequestDecision,
    MessageResponse,
    MessageListResponse,
)
from socialcore.schemas.notification_schema import MessageTarget, MessageRequestTarget
from socialcore.services.notification_service import NotificationService
from socialcore.services.visibility_service import VisibilityGuard

logger = logging.getLogger(__name__)

ACCEPTED_REQUEST_CONTENT = "accepted your message request"


class MessageService:
    """Direct messages, gated by a request workflow for users who do not follow the sender"""

    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.guard = VisibilityGuard(db)
        self.notifications = notifications or NotificationService(db)

    async def send_message(self, sender_id: int, recipient_id: int, content: str) -> MessageResult:
        if not content or not content.strip():
            raise ValidationError("Message content cannot be empty")

        if sender_id == recipient_id:
            raise ValidationError("You cannot message yourself")

        if not await self.db.get(User, recipient_id):
            raise NotFoundError("User not found")

        await self.guard.ensure_can_interact(sender_id, recipient_id)

        content = content.strip()

        if await self.can_message_directly(sender_id, recipient_id):
            async with store_errors(self.db, "sending message"):
                message = Message(sender_id=sender_id, recipient_id=recipient_id, content=content)
                self.db.add(message)
                await self.db.flush()
                notification = await self.notifications.stage(
                    sender_id,
                    MessageTarget(message_id=message.id),
                    recipient_id=recipient_id,
                    source=message,
                )
                await self.db.commit()

            await self.notifications.publish([notification])
            logger.info(f"Message {message.id}: {sender_id} -> {recipient_id}")
            return MessageResult(status=MessageStatus.SENT, message_id=message.id)

        async with store_errors(self.db, "creating message request"):
            request = await self.get_message_request(sender_id, recipient_id)
            if request and request.is_pending:
                raise DuplicateActionError("Message request already pending")

            if request:
                request.status = MessageRequestStatus.PENDING.value
                request.message = content
                request.responded_at = None
                request.created_at = datetime.utcnow()
            else:
                request = MessageRequest(sender_id=sender_id, recipient_id=recipient_id, message=content)
                self.db.add(request)

            await self.db.flush()
            notification = await self.notifications.stage(
                sender_id,
                MessageRequestTarget(message_request_id=request.id),
                recipient_id=recipient_id,
                source=request,
            )
            await self.db.commit()

        await self.notifications.publish([notification])
        logger.info(f"Message request {request.id}: {sender_id} -> {recipient_id}")
        return MessageResult(status=MessageStatus.REQUESTED, request_id=request.id)

    async def can_message_directly(self, sender_id: int, recipient_id: int) -> bool:
        """Recipient follows the sender, or a request between the pair was accepted"""
        follows_sender = exists().where(
            Follow.follower_id == recipient_id,
            Follow.following_id == sender_id,
        )
        accepted_request = exists().where(
            or_(
                and_(MessageRequest.sender_id == sender_id, MessageRequest.recipient_id == recipient_id),
                and_(MessageRequest.sender_id == recipient_id, MessageRequest.recipient_id == sender_id),
            ),
            MessageRequest.status == MessageRequestStatus.ACCEPTED.value,
        )
        result = await self.db.execute(select(or_(follows_sender, accepted_request)))
        return bool(result.scalar())

    async def respond_to_message_request(
        self,
        request_id: int,
        responder_id: int,
        decision: MessageRequestDecision,
    ) -> Optional[Message]:
        """Accept (delivering the request text as a message) or reject a pending request"""
        try:
            decision = MessageRequestDecision(decision)
        except ValueError:
            raise ValidationError(f"Invalid decision: {decision}")

        message = None
        notification = None
        stale_recipient = None
        retracted = []
        async with store_errors(self.db, "responding to message request"):
            request = await self.db.get(
                MessageRequest,
                request_id,
                with_for_update=True,
                populate_existing=True,
            )
            if not request:
                raise NotFoundError("Message request not found")
            if request.recipient_id != responder_id:
                raise NotAuthorizedError("Not your message request")
            if not request.is_pending:
                raise InvalidStateError(f"Message request already {request.status}")

            request.responded_at = datetime.utcnow()

            if decision == MessageRequestDecision.ACCEPT:
                request.status = MessageRequestStatus.ACCEPTED.value
                message = Message(
                    sender_id=request.sender_id,
                    recipient_id=request.recipient_id,
                    content=request.message,
                )
                self.db.add(message)
                await self.db.flush()

                stale_recipient = await self.notifications.stage_mark_read(request.notification_id)
                notification = await self.notifications.stage(
                    responder_id,
                    MessageTarget(message_id=message.id),
                    content=ACCEPTED_REQUEST_CONTENT,
                    recipient_id=request.sender_id,
                    source=message,
                )
            else:
                request.status = MessageRequestStatus.REJECTED.value
                retracted = await self.notifications.stage_retraction([request.notification_id])
                request.notification_id = None

            await self.db.commit()

        if message is not None:
            await self.notifications.publish([notification], stale_recipients=[stale_recipient])
            logger.info(f"Accepted message request {request_id}")
        else:
            await self.notifications.publish_retractions(retracted)
            logger.info(f"Rejected message request {request_id}")

        return message

    async def list_inbox(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
        unread_only: bool = False,
    ) -> MessageListResponse:
        """Messages received by the user, newest first, without hidden senders"""
        conditions = [
            Message.recipient_id == user_id,
            Message.sender_id.not_in(self.guard.hidden_user_ids(user_id)),
        ]
        if unread_only:
            conditions.append(Message.is_read.is_(False))
        return await self._list_messages(conditions, skip, limit)

    async def list_sent(self, user_id: int, skip: int = 0, limit: int = 20) -> MessageListResponse:
        conditions = [
            Message.sender_id == user_id,
            Message.recipient_id.not_in(self.guard.hidden_user_ids(user_id)),
        ]
        return await self._list_messages(conditions, skip, limit)

    async def mark_message_read(self, message_id: int, user_id: int) -> Message:
        """Mark a received message read, along with its notification"""
        async with store_errors(self.db, "marking message as read"):
            message = await self.db.get(Message, message_id)
            if not message:
                raise NotFoundError("Message not found")
            if message.recipient_id != user_id:
                raise NotAuthorizedError("Not your message")

            stale_recipient = None
            if not message.is_read:
                message.is_read = True
                message.read_at = datetime.utcnow()
                stale_recipient = await self.notifications.stage_mark_read(message.notification_id)
            await self.db.commit()

        await self.notifications.publish([], stale_recipients=[stale_recipient])
        return message

    async def cancel_message_request(self, sender_id: int, recipient_id: int) -> bool:
        async with store_errors(self.db, "cancelling message request"):
            request = await self.get_message_request(sender_id, recipient_id)
            if not request or not request.is_pending:
                return False

            retracted = await self.notifications.stage_retraction([request.notification_id])
            await self.db.delete(request)
            await self.db.commit()

        await self.notifications.publish_retractions(retracted)
        logger.info(f"Cancelled message request: {sender_id} -> {recipient_id}")
        return True

    async def list_incoming_message_requests(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
    ) -> List[MessageRequest]:
        stmt = (
            select(MessageRequest)
            .where(
                MessageRequest.recipient_id == user_id,
                MessageRequest.status == MessageRequestStatus.PENDING.value,
                MessageRequest.sender_id.not_in(self.guard.hidden_user_ids(user_id)),
            )
            .order_by(desc(MessageRequest.created_at), desc(MessageRequest.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _list_messages(self, conditions: list, skip: int, limit: int) -> MessageListResponse:
        stmt = (
            select(Message)
            .where(*conditions)
            .order_by(desc(Message.created_at), desc(Message.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        messages = result.scalars().all()

        count_stmt = select(func.count(Message.id)).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        return MessageListResponse(
            messages=[MessageResponse.model_validate(m) for m in messages],
            total=total,
            skip=skip,
            limit=limit,
        )

    async def get_message_request(self, sender_id: int, recipient_id: int) -> Optional[MessageRequest]:
        stmt = select(MessageRequest).where(
            MessageRequest.sender_id == sender_id,
            MessageRequest.recipient_id == recipient_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
