from celery import Celery
from socialcore.config import settings
from typing import List, Optional
import asyncio
import logging

from socialcore.db.session import create_engine_for_url, create_session_factory
from socialcore.services.interaction_service import reconcile_post_counters

logger = logging.getLogger(__name__)

celery_app = Celery(
    "social_core",
    broker=settings.celery_broker_url,
    backend=settings.celery_broker_url
)

celery_app.conf.beat_schedule = {
    "reconcile-post-counters": {
        "task": "socialcore.tasks.reconcile_tasks.reconcile_counters",
        "schedule": float(settings.COUNTER_RECONCILE_INTERVAL_SECONDS),
    },
}


async def _reconcile(post_ids: Optional[List[int]] = None) -> int:
    # Each run gets its own engine; the worker has no long-lived event loop
    engine = create_engine_for_url(settings.database_url)
    try:
        async with create_session_factory(engine)() as db:
            return await reconcile_post_counters(db, post_ids)
    finally:
        await engine.dispose()


@celery_app.task(name="socialcore.tasks.reconcile_tasks.reconcile_counters")
def reconcile_counters(post_ids: Optional[List[int]] = None) -> int:
    """Recompute like/retweet/comment counters from the ledger"""
    try:
        return asyncio.run(_reconcile(post_ids))
    except Exception as e:
        logger.error(f"Error reconciling post counters: {e}")
        raise
