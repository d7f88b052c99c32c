"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from payup.app.main import app
from payup.app.core.jwt import issue_token
from payup.app.db.session import get_db, Base
from payup.app.models.user import User
from payup.app.services.context import LedgerContext
from payup.app.services.membership import MembershipService
from payup.app.services.notification_service import Notifier, get_notifier
import payup.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.failing = False
    
    def _check(self):
        if self.failing:
            raise ConnectionError("redis unavailable")
    
    async def ping(self):
        return not self.failing
    
    async def get(self, key):
        self._check()
        return self.store.get(key)
        
    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        return True
    
    async def delete(self, key):
        self._check()
        return 1 if self.store.pop(key, None) is not None else 0
    
    async def flushdb(self):
        self.store = {}


class RecordingNotifier(Notifier):
    """Keeps dispatched notices in memory instead of scheduling delivery."""
    
    def __init__(self):
        super().__init__(session_factory=TestingSessionLocal)
        self.sent = []
    
    def dispatch(self, notices):
        self.sent.extend(notices)
    
    def sent_to(self, user):
        return [notice for notice in self.sent if notice.recipient_id == user.id]


@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    """Patch the global redis client used by the cache service."""
    client = MockRedis()
    monkeypatch.setattr(redis_client_module, "redis_client", client)
    return client


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def apply_overrides(notifier):
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


async def create_user(db: AsyncSession, username: str) -> User:
    user = User(email=f"{username}@example.com", username=username, display_name=username.title())
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
def headers_for():
    """Bearer headers for the given user."""
    def _headers(user: User) -> dict:
        token = issue_token(user.id, user.username)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
async def users(db_session):
    """Four users: alice, bob, carol and dave, in that order."""
    return [await create_user(db_session, name) for name in ("alice", "bob", "carol", "dave")]


@pytest.fixture
def ctx_for(db_session, notifier):
    """Build a LedgerContext acting as the given user."""
    def _ctx(user: User) -> LedgerContext:
        return LedgerContext(db=db_session, actor=user, notifier=notifier)
    return _ctx


@pytest.fixture
async def team(users, ctx_for):
    """A team of alice (admin), bob and carol. dave is left outside."""
    alice, bob, carol, _ = users
    created = await MembershipService.create_team(ctx_for(alice), "Thesis Group")
    await MembershipService.join_team(ctx_for(bob), created.invite_code)
    await MembershipService.join_team(ctx_for(carol), created.invite_code)
    return created
