"""Test fixtures — throwaway SQLite database and an in-memory Redis per test.

Learn: The suite runs without PostgreSQL or Redis:

1. Each test gets a fresh SQLite file (aiosqlite) with the schema created
   from the ORM models, and a session factory bound to it. Background
   consumers (scheduler, worker) open their own sessions from the same
   factory, exactly as they do in production.
2. Redis is fakeredis with its own FakeServer, wrapped in a ChannelStore.
3. Realtime delivery is observed by joining RecordingConnection doubles to
   broadcast groups and inspecting the frames they received.

HTTP tests use real JWT access tokens: only get_db and get_fanout are
overridden, so the whole auth pipeline runs.
"""

import os

# Must be set before connectsphere.config is imported anywhere.
os.environ.setdefault("CONNECTSPHERE_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CONNECTSPHERE_BCRYPT_ROUNDS", "4")

import uuid  # noqa: E402

import fakeredis  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from connectsphere.api.deps import get_fanout, get_scheduler  # noqa: E402
from connectsphere.db.engine import enable_sqlite_foreign_keys, get_db  # noqa: E402
from connectsphere.db.models import Base, Event, Rsvp, User  # noqa: E402
from connectsphere.main import app  # noqa: E402
from connectsphere.realtime.broadcast import BroadcastService  # noqa: E402
from connectsphere.realtime.pubsub import ChannelStore  # noqa: E402
from connectsphere.services.fanout import FanOut  # noqa: E402
from support import RecordingConnection, later  # noqa: E402


# ─── Database ────────────────────────────────────────────


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ─── Redis + realtime ────────────────────────────────────


@pytest_asyncio.fixture()
async def store():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    store = ChannelStore(client, prefix="connectsphere:")
    yield store
    await store.close()


@pytest_asyncio.fixture()
async def broadcast(store):
    return BroadcastService(store, instance_id="test-instance")


@pytest_asyncio.fixture()
async def fanout(store, broadcast):
    return FanOut(store, broadcast)


@pytest_asyncio.fixture()
async def listen(broadcast):
    """Join a recording connection to a group: listen("event:<id>")."""

    def _listen(group: str) -> RecordingConnection:
        conn = RecordingConnection()
        broadcast.connect(conn)
        broadcast.join(conn, group)
        return conn

    return _listen


# ─── Domain data ─────────────────────────────────────────


async def _make_user(db: AsyncSession, name: str) -> User:
    user = User(email=f"{name.lower()}-{uuid.uuid4().hex[:6]}@example.com", name=name)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture()
async def alice(db_session):
    """Creates the events in most tests."""
    return await _make_user(db_session, "Alice")


@pytest_asyncio.fixture()
async def bob(db_session):
    return await _make_user(db_session, "Bob")


@pytest_asyncio.fixture()
async def carol(db_session):
    return await _make_user(db_session, "Carol")


@pytest_asyncio.fixture()
async def event(db_session, alice):
    """A public party hosted by Alice, a week from now."""
    row = Event(
        title="Summer Party",
        starts_at=later(days=7),
        location_text="Alice's place",
        is_public=True,
        event_type="celebration",
        creator_id=alice.id,
    )
    db_session.add(row)
    await db_session.commit()
    return row


@pytest_asyncio.fixture()
async def rsvp_for(db_session):
    """Insert an RSVP row directly: await rsvp_for(user, event, "YES")."""

    async def _rsvp(user: User, event: Event, status: str = "YES") -> Rsvp:
        row = Rsvp(user_id=user.id, event_id=event.id, status=status)
        db_session.add(row)
        await db_session.commit()
        return row

    return _rsvp


# ─── HTTP ────────────────────────────────────────────────


@pytest_asyncio.fixture()
async def client(session_factory, fanout, store, broadcast):
    """HTTP client against the real app with test DB and fan-out swapped in.

    Learn: ASGITransport doesn't run the lifespan, so app.state is filled
    in by hand for the parts that read it directly (health, rate limit).
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fanout] = lambda: fanout
    app.dependency_overrides[get_scheduler] = lambda: None
    app.state.channel_store = store
    app.state.broadcast = broadcast

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.channel_store = None
    app.state.broadcast = None
