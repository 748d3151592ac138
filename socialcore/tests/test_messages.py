import pytest
from sqlalchemy import select

from socialcore.exceptions import (
    ValidationError,
    NotFoundError,
    DuplicateActionError,
    NotAuthorizedError,
    InvalidStateError,
    BlockedError,
)
from socialcore.models.message import Message, MessageRequest
from socialcore.models.notification import Notification
from socialcore.schemas.message_schema import MessageStatus


async def test_message_to_stranger_becomes_request(message_service, make_user, count_rows):
    sender = await make_user()
    recipient = await make_user()

    result = await message_service.send_message(sender, recipient, "hello")

    assert result.status == MessageStatus.REQUESTED
    assert await count_rows(Message) == 0
    assert await count_rows(MessageRequest, MessageRequest.status == "pending") == 1
    assert await count_rows(
        Notification,
        Notification.type == "message-request",
        Notification.recipient_id == recipient,
    ) == 1

    with pytest.raises(DuplicateActionError):
        await message_service.send_message(sender, recipient, "hello again")


async def test_message_to_follower_is_direct(message_service, relationship_service, make_user, count_rows):
    sender = await make_user()
    recipient = await make_user()
    await relationship_service.follow(recipient, sender)

    result = await message_service.send_message(sender, recipient, "hey")

    assert result.status == MessageStatus.SENT
    assert await count_rows(Message, Message.id == result.message_id) == 1
    assert await count_rows(MessageRequest) == 0
    assert await count_rows(Notification, Notification.type == "message", Notification.recipient_id == recipient) == 1


async def test_accept_message_request(message_service, make_user, count_rows, db):
    sender = await make_user()
    recipient = await make_user()
    result = await message_service.send_message(sender, recipient, "can we talk?")

    message = await message_service.respond_to_message_request(result.request_id, recipient, "accept")

    assert message.content == "can we talk?"
    assert message.sender_id == sender
    assert await count_rows(MessageRequest, MessageRequest.status == "accepted") == 1

    accepted = (await db.execute(
        select(Notification).where(Notification.type == "message", Notification.recipient_id == sender)
    )).scalar_one()
    assert accepted.actor_id == recipient
    assert accepted.content == "accepted your message request"

    request_notification = (await db.execute(
        select(Notification).where(Notification.type == "message-request")
    )).scalar_one()
    assert request_notification.is_read

    # Either side can now message directly
    assert (await message_service.send_message(sender, recipient, "thanks")).status == MessageStatus.SENT
    assert (await message_service.send_message(recipient, sender, "np")).status == MessageStatus.SENT

    with pytest.raises(InvalidStateError):
        await message_service.respond_to_message_request(result.request_id, recipient, "accept")


async def test_reject_then_resend_resets_request(message_service, make_user, count_rows):
    sender = await make_user()
    recipient = await make_user()
    first = await message_service.send_message(sender, recipient, "hi")

    message = await message_service.respond_to_message_request(first.request_id, recipient, "reject")

    assert message is None
    assert await count_rows(MessageRequest, MessageRequest.status == "rejected") == 1
    assert await count_rows(Notification) == 0

    again = await message_service.send_message(sender, recipient, "please?")

    assert again.status == MessageStatus.REQUESTED
    assert again.request_id == first.request_id
    assert await count_rows(MessageRequest) == 1
    assert await count_rows(MessageRequest, MessageRequest.status == "pending", MessageRequest.message == "please?") == 1


async def test_only_recipient_can_respond(message_service, make_user):
    sender = await make_user()
    recipient = await make_user()
    stranger = await make_user()
    result = await message_service.send_message(sender, recipient, "hi")

    with pytest.raises(NotAuthorizedError):
        await message_service.respond_to_message_request(result.request_id, stranger, "accept")
    with pytest.raises(NotFoundError):
        await message_service.respond_to_message_request(9999, recipient, "accept")


async def test_cancel_message_request(message_service, make_user, count_rows):
    sender = await make_user()
    recipient = await make_user()
    await message_service.send_message(sender, recipient, "hi")

    assert await message_service.cancel_message_request(sender, recipient)
    assert not await message_service.cancel_message_request(sender, recipient)
    assert await count_rows(MessageRequest) == 0
    assert await count_rows(Notification) == 0


async def test_incoming_message_requests(message_service, relationship_service, make_user):
    recipient = await make_user()
    friendly = await make_user()
    muted = await make_user()
    await message_service.send_message(friendly, recipient, "hi")
    await message_service.send_message(muted, recipient, "buy my stuff")
    await relationship_service.mute(recipient, muted)

    requests = await message_service.list_incoming_message_requests(recipient)

    assert [request.sender_id for request in requests] == [friendly]


async def test_invalid_messages(message_service, relationship_service, make_user):
    sender = await make_user()
    recipient = await make_user()

    with pytest.raises(ValidationError):
        await message_service.send_message(sender, sender, "me")
    with pytest.raises(ValidationError):
        await message_service.send_message(sender, recipient, "  ")
    with pytest.raises(NotFoundError):
        await message_service.send_message(sender, 9999, "anyone?")

    await relationship_service.block(recipient, sender)
    with pytest.raises(BlockedError):
        await message_service.send_message(sender, recipient, "let me in")


async def test_inbox_and_sent_lists(message_service, relationship_service, make_user):
    me = await make_user()
    friend = await make_user()
    muted = await make_user()
    await relationship_service.follow(me, friend)
    await relationship_service.follow(me, muted)

    first = await message_service.send_message(friend, me, "first")
    second = await message_service.send_message(friend, me, "second")
    await message_service.send_message(muted, me, "psst")
    await relationship_service.mute(me, muted)

    inbox = await message_service.list_inbox(me)
    assert inbox.total == 2
    assert [m.id for m in inbox.messages] == [second.message_id, first.message_id]
    assert all(not m.is_read for m in inbox.messages)

    page = await message_service.list_inbox(me, skip=1, limit=1)
    assert [m.id for m in page.messages] == [first.message_id]

    sent = await message_service.list_sent(friend)
    assert sent.total == 2
    assert {m.recipient_id for m in sent.messages} == {me}

    # The other side of a block disappears from both lists
    await relationship_service.block(friend, me)
    assert (await message_service.list_inbox(me)).total == 0
    assert (await message_service.list_sent(friend)).total == 0


async def test_mark_message_read(message_service, relationship_service, notification_service, make_user, db):
    me = await make_user()
    friend = await make_user()
    await relationship_service.follow(me, friend)
    result = await message_service.send_message(friend, me, "hey")
    assert await notification_service.get_unread_count(me) == 1

    with pytest.raises(NotAuthorizedError):
        await message_service.mark_message_read(result.message_id, friend)
    with pytest.raises(NotFoundError):
        await message_service.mark_message_read(9999, me)

    message = await message_service.mark_message_read(result.message_id, me)

    assert message.is_read
    assert message.read_at is not None
    notification = (await db.execute(
        select(Notification).where(Notification.type == "message", Notification.recipient_id == me)
    )).scalar_one()
    assert notification.is_read
    assert await notification_service.get_unread_count(me) == 0

    unread = await message_service.list_inbox(me, unread_only=True)
    assert unread.total == 0
