import base64
import os
from datetime import datetime, timezone

# Settings are cached on first import, so the test environment goes in first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_stripe_test_secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault(
    "CLERK_WEBHOOK_SECRET",
    "whsec_" + base64.b64encode(b"clerk-test-signing-secret-0123456789").decode(),
)

import fakeredis
import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth import models as _auth_models  # noqa: F401
from app.auth.models import User
from app.core.exceptions import InvalidTokenError
from app.database import Base, get_db
from app.flashcards import models as _flashcard_models  # noqa: F401
from app.main import app
from app.quota.service import RateLimiter
from app.quota.store import QuotaStore
from app.rate_limit import limiter
from app.subscriptions import models as _subscription_models  # noqa: F401


# ═══════════════════════════════════════════════════════════════════════════
# TEST DOUBLES
# ═══════════════════════════════════════════════════════════════════════════


class ScriptedGenerativeClient:
    """Returns queued model outputs in order; queued exceptions are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate(
        self,
        prompt,
        attachment=None,
        temperature=0.7,
        max_output_tokens=3000,
        timeout=120.0,
    ):
        self.calls.append({
            "prompt": prompt,
            "attachment": attachment,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
            "timeout": timeout,
        })
        if not self.responses:
            raise AssertionError("Unexpected model call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        pass


class TokenIsClerkIdVerifier:
    """Accepts any token that is a known Clerk ID and returns it as the subject."""

    def __init__(self):
        self.known = set()

    async def verify(self, token):
        if token not in self.known:
            raise InvalidTokenError("Invalid token")
        return token


# ═══════════════════════════════════════════════════════════════════════════
# DATABASE
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def make_user(db, clerk_id, email, name=None) -> User:
    user = User(id=f"user-{clerk_id}", clerk_id=clerk_id, email=email, name=name)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def user(db):
    return await make_user(db, "clerk_alice", "alice@example.com", "Alice")


@pytest.fixture
async def other_user(db):
    return await make_user(db, "clerk_bob", "bob@example.com", "Bob")


# ═══════════════════════════════════════════════════════════════════════════
# QUOTA STORE
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def quota_store(redis):
    return QuotaStore(redis)


@pytest.fixture
def rate_limiter(quota_store):
    return RateLimiter(quota_store, fail_open=False)


@pytest.fixture
def now():
    return datetime(2026, 3, 14, 15, 30, 0, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# HTTP CLIENT
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def model():
    return ScriptedGenerativeClient()


@pytest.fixture
def verifier(user, other_user):
    verifier = TokenIsClerkIdVerifier()
    verifier.known.update({user.clerk_id, other_user.clerk_id})
    return verifier


@pytest.fixture
async def client(session_factory, rate_limiter, model, verifier):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.token_verifier = verifier
    app.state.rate_limiter = rate_limiter
    app.state.generative_client = model
    limiter.reset()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"Authorization": f"Bearer {user.clerk_id}"}
