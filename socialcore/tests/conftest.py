import os

# Must be set before socialcore.config is imported
os.environ["ENVIRONMENT"] = "testing"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import itertools
import json
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from socialcore.db.session import get_db, create_engine_for_url, create_session_factory, init_db
from socialcore.main import create_app
from socialcore.models.user import User
from socialcore.models.post import Post
from socialcore.services.auth_service import create_access_token
from socialcore.services.notification_service import NotificationService
from socialcore.services.relationship_service import RelationshipService
from socialcore.services.interaction_service import InteractionService
from socialcore.services.message_service import MessageService
from socialcore.websocket.broadcaster import Broadcaster
from socialcore.websocket.manager import ConnectionManager


class InMemoryCache:
    """Stands in for RedisService in tests"""

    def __init__(self):
        self.store: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def setex(self, key: str, seconds: int, value: str) -> None:
        self.store[key] = value

    async def delete(self, key: str) -> None:
        self.store.pop(key, None)

    async def close(self) -> None:
        self.store.clear()


class FakeWebSocket:
    """Connection handle that records every frame pushed to it"""

    def __init__(self, broken: bool = False):
        self.broken = broken
        self.frames: List[dict] = []

    async def send_text(self, message: str) -> None:
        if self.broken:
            raise RuntimeError("connection closed")
        self.frames.append(json.loads(message))

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.frames]


@pytest.fixture
async def engine(tmp_path):
    """Create a fresh SQLite file database per test"""
    test_engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def connection_manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
async def broadcaster(connection_manager) -> AsyncGenerator[Broadcaster, None]:
    broadcaster = Broadcaster()
    broadcaster.initialize(connection_manager)
    yield broadcaster
    await broadcaster.drain()


@pytest.fixture
def notification_service(db, broadcaster, cache) -> NotificationService:
    return NotificationService(db, broadcaster=broadcaster, cache=cache)


@pytest.fixture
def relationship_service(db, notification_service) -> RelationshipService:
    return RelationshipService(db, notification_service)


@pytest.fixture
def interaction_service(db, notification_service) -> InteractionService:
    return InteractionService(db, notification_service)


@pytest.fixture
def message_service(db, notification_service) -> MessageService:
    return MessageService(db, notification_service)


@pytest.fixture
def make_user(db):
    """Create a user and return its id"""
    counter = itertools.count(1)

    async def _make_user(username: Optional[str] = None, privacy: str = "public") -> int:
        user = User(username=username or f"user{next(counter)}", privacy=privacy)
        db.add(user)
        await db.commit()
        return user.id

    return _make_user


@pytest.fixture
def make_post(db):
    """Create a post owned by a user and return its id"""

    async def _make_post(owner_id: int, content: str = "hello world") -> int:
        post = Post(user_id=owner_id, content=content)
        db.add(post)
        await db.commit()
        return post.id

    return _make_post


@pytest.fixture
def count_rows(db):
    """Count rows of a model matching conditions, straight from the database"""

    async def _count_rows(model, *conditions) -> int:
        stmt = select(func.count()).select_from(model)
        if conditions:
            stmt = stmt.where(*conditions)
        return (await db.execute(stmt)).scalar_one()

    return _count_rows


@pytest.fixture
def post_counters(db):
    async def _post_counters(post_id: int) -> Dict[str, int]:
        row = (await db.execute(
            select(Post.like_count, Post.retweet_count, Post.comment_count).where(Post.id == post_id)
        )).one()
        return {"likes": row.like_count, "retweets": row.retweet_count, "comments": row.comment_count}

    return _post_counters


@pytest.fixture
async def app(session_factory, cache):
    application = create_app(cache=cache)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override dependency for testing"""
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    application.dependency_overrides[get_db] = override_get_db
    yield application
    await application.state.broadcaster.drain()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create test client"""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    def _auth_headers(user_id: int) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _auth_headers


@pytest.fixture
def make_socket():
    return FakeWebSocket
