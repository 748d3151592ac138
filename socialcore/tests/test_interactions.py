import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from socialcore.exceptions import (
    ValidationError,
    NotFoundError,
    DuplicateActionError,
    AlreadyRetweetedError,
    BlockedError,
    TransientStoreError,
)
from socialcore.models.post import Post
from socialcore.models.like import Like
from socialcore.models.retweet import Retweet
from socialcore.models.comment import Comment
from socialcore.models.tip import Tip
from socialcore.models.notification import Notification
from socialcore.services.interaction_service import InteractionService, reconcile_post_counters
from socialcore.services.notification_service import NotificationService


async def test_like_then_unlike_restores_state(interaction_service, make_user, make_post, count_rows, post_counters, db):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)

    like = await interaction_service.like(fan, post)

    assert (await post_counters(post))["likes"] == 1
    notification = (await db.execute(select(Notification))).scalar_one()
    assert notification.type == "like"
    assert notification.recipient_id == author
    assert notification.entity_id == str(post)
    assert like.notification_id == notification.id

    assert await interaction_service.unlike(fan, post)

    assert (await post_counters(post))["likes"] == 0
    assert await count_rows(Like) == 0
    assert await count_rows(Notification) == 0
    assert not await interaction_service.unlike(fan, post)


async def test_like_twice_is_duplicate(interaction_service, make_user, make_post, count_rows, post_counters):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)
    await interaction_service.like(fan, post)

    with pytest.raises(DuplicateActionError):
        await interaction_service.like(fan, post)

    assert await count_rows(Like) == 1
    assert (await post_counters(post))["likes"] == 1


async def test_like_and_notification_commit_together(
    interaction_service, make_user, make_post, count_rows, post_counters, monkeypatch
):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)

    async def store_down(self, *args, **kwargs):
        raise OperationalError("SELECT notifications", {}, Exception("database is locked"))

    with monkeypatch.context() as patched:
        patched.setattr(NotificationService, "_find_existing", store_down)
        with pytest.raises(TransientStoreError):
            await interaction_service.like(fan, post)

    assert await count_rows(Like) == 0
    assert await count_rows(Notification) == 0
    assert (await post_counters(post))["likes"] == 0

    # Retrying once the store is back is not a duplicate
    like = await interaction_service.like(fan, post)

    assert await count_rows(Like) == 1
    assert await count_rows(Notification, Notification.id == like.notification_id) == 1
    assert (await post_counters(post))["likes"] == 1


async def test_like_missing_post(interaction_service, make_user):
    fan = await make_user()

    with pytest.raises(NotFoundError):
        await interaction_service.like(fan, 9999)


async def test_concurrent_likes_create_single_row(session_factory, make_user, make_post, count_rows, post_counters):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)

    async def attempt():
        async with session_factory() as session:
            service = InteractionService(session, NotificationService(session))
            return await service.like(fan, post)

    results = await asyncio.gather(*(attempt() for _ in range(5)), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, (DuplicateActionError, TransientStoreError)) for f in failures)
    assert await count_rows(Like) == 1
    assert (await post_counters(post))["likes"] == 1


async def test_like_blocked_by_author_yields_no_notification(
    interaction_service, relationship_service, make_user, make_post, count_rows
):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)
    await relationship_service.block(author, fan)

    with pytest.raises(BlockedError):
        await interaction_service.like(fan, post)

    assert await count_rows(Like) == 0
    assert await count_rows(Notification, Notification.recipient_id == author) == 0


async def test_like_by_muted_user_is_silent(
    interaction_service, relationship_service, make_user, make_post, count_rows
):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)
    await relationship_service.mute(author, fan)

    await interaction_service.like(fan, post)

    assert await count_rows(Like) == 1
    assert await count_rows(Notification) == 0


async def test_own_like_does_not_notify(interaction_service, make_user, make_post, count_rows):
    author = await make_user()
    post = await make_post(author)

    await interaction_service.like(author, post)

    assert await count_rows(Like) == 1
    assert await count_rows(Notification) == 0


async def test_toggle_like(interaction_service, make_user, make_post):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)

    liked = await interaction_service.toggle_like(fan, post)
    assert liked.liked
    assert liked.like_count == 1

    unliked = await interaction_service.toggle_like(fan, post)
    assert not unliked.liked
    assert unliked.like_count == 0


async def test_unlike_never_drives_counter_negative(interaction_service, make_user, make_post, post_counters, db):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)
    await interaction_service.like(fan, post)
    await db.execute(update(Post).where(Post.id == post).values(like_count=0))
    await db.commit()

    await interaction_service.unlike(fan, post)

    assert (await post_counters(post))["likes"] == 0


async def test_retweet(interaction_service, make_user, make_post, count_rows, post_counters, db):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)

    retweet = await interaction_service.retweet(fan, post)

    assert retweet.original_user_id == author
    assert (await post_counters(post))["retweets"] == 1
    assert await count_rows(Notification, Notification.type == "retweet", Notification.recipient_id == author) == 1

    with pytest.raises(AlreadyRetweetedError) as exc_info:
        await interaction_service.retweet(fan, post)
    assert isinstance(exc_info.value, DuplicateActionError)

    assert await count_rows(Retweet) == 1

    assert await interaction_service.unretweet(fan, post)
    assert await count_rows(Retweet) == 0
    assert await count_rows(Notification) == 0
    assert (await post_counters(post))["retweets"] == 0


async def test_comment_notifies_author_and_mentions(
    interaction_service, relationship_service, make_user, make_post, count_rows, post_counters
):
    author = await make_user()
    commenter = await make_user()
    friend = await make_user()
    blocker = await make_user()
    post = await make_post(author)
    await relationship_service.block(blocker, commenter)

    comment = await interaction_service.comment(
        commenter,
        post,
        "  nice post  ",
        mentioned_user_ids=[friend, friend, commenter, blocker, 9999],
    )

    assert comment.content == "nice post"
    assert (await post_counters(post))["comments"] == 1
    assert await count_rows(
        Notification,
        Notification.type == "comment",
        Notification.recipient_id == author,
        Notification.entity_id == str(comment.id),
    ) == 1
    assert await count_rows(Notification, Notification.type == "mention") == 1
    assert await count_rows(Notification, Notification.type == "mention", Notification.recipient_id == friend) == 1


async def test_empty_comment_rejected(interaction_service, make_user, make_post, count_rows):
    author = await make_user()
    post = await make_post(author)

    with pytest.raises(ValidationError):
        await interaction_service.comment(author, post, "   ")

    assert await count_rows(Comment) == 0


async def test_tip_records_ledger_entry(interaction_service, make_user, make_post, count_rows, db):
    sender = await make_user()
    creator = await make_user()
    post = await make_post(creator)

    tip = await interaction_service.tip(sender, creator, "2.5", message="great thread", post_id=post)

    assert tip.amount == Decimal("2.5")
    notification = (await db.execute(select(Notification))).scalar_one()
    assert notification.type == "transaction"
    assert notification.content == "great thread"
    assert notification.entity_id == str(tip.id)
    assert await count_rows(Tip) == 1


@pytest.mark.parametrize("amount", [0, -1, "abc", "NaN"])
async def test_tip_rejects_non_positive_amount(interaction_service, make_user, count_rows, amount):
    sender = await make_user()
    creator = await make_user()

    with pytest.raises(ValidationError):
        await interaction_service.tip(sender, creator, amount)

    assert await count_rows(Tip) == 0


async def test_tip_rejects_self_and_unknown_recipient(interaction_service, make_user):
    sender = await make_user()

    with pytest.raises(ValidationError):
        await interaction_service.tip(sender, sender, 1)
    with pytest.raises(NotFoundError):
        await interaction_service.tip(sender, 9999, 1)


async def test_likers_hide_blocked_users(interaction_service, relationship_service, make_user, make_post):
    author = await make_user()
    viewer = await make_user()
    fan = await make_user()
    troll = await make_user()
    post = await make_post(author)
    await interaction_service.like(fan, post)
    await interaction_service.like(troll, post)
    await relationship_service.block(viewer, troll)

    likers = await interaction_service.list_likers(post, viewer)

    assert [user.id for user in likers.users] == [fan]
    assert likers.total == 1


async def test_reconcile_post_counters(interaction_service, make_user, make_post, post_counters, db):
    author = await make_user()
    fan = await make_user()
    post = await make_post(author)
    untouched = await make_post(author)
    await interaction_service.like(fan, post)
    await interaction_service.comment(fan, post, "first")
    await db.execute(update(Post).where(Post.id == post).values(like_count=7, retweet_count=3, comment_count=0))
    await db.commit()

    drifted = await reconcile_post_counters(db)

    assert drifted == 1
    assert await post_counters(post) == {"likes": 1, "retweets": 0, "comments": 1}
    assert await post_counters(untouched) == {"likes": 0, "retweets": 0, "comments": 0}
    assert await reconcile_post_counters(db, [post, untouched]) == 0
