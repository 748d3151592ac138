from sqlalchemy import update

from socialcore.config import settings
from socialcore.models.post import Post
from socialcore.tasks import reconcile_tasks


def test_reconcile_is_scheduled():
    entry = reconcile_tasks.celery_app.conf.beat_schedule["reconcile-post-counters"]

    assert entry["task"] == reconcile_tasks.reconcile_counters.name
    assert entry["schedule"] == float(settings.COUNTER_RECONCILE_INTERVAL_SECONDS)


async def test_reconcile_job_uses_its_own_engine(engine, monkeypatch, make_user, make_post, post_counters, db):
    owner = await make_user()
    post = await make_post(owner)
    await db.execute(update(Post).where(Post.id == post).values(like_count=4))
    await db.commit()

    requested_urls = []

    def fake_engine(url, echo=False):
        requested_urls.append(url)
        return engine

    monkeypatch.setattr(reconcile_tasks, "create_engine_for_url", fake_engine)

    assert await reconcile_tasks._reconcile() == 1
    assert requested_urls == [settings.database_url]
    assert (await post_counters(post))["likes"] == 0
