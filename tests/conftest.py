"""
Shared test fixtures.
"""

import os

# Settings are read at import time; keep the module-level engine off PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-feedback-exchange.db")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("MODERATOR_USER_IDS", "moderator")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from feedback_exchange.dependencies import (
    get_db,
    get_identity_client,
    get_notification_publisher,
    get_script_storage,
)
from feedback_exchange.exchange import ledger
from feedback_exchange.main import create_app
from feedback_exchange.models.database import build_engine, close_db, init_db
from feedback_exchange.schemas.listings import ListingCreateRequest
from feedback_exchange.schemas.reviews import ReviewSubmitRequest


class FakePublisher:
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)


class FakeScriptStorage:
    def __init__(self):
        self.approvals = []

    async def approve_viewer(self, script_id, viewer_user_id, owner_user_id):
        self.approvals.append((script_id, viewer_user_id, owner_user_id))


class FakeIdentity:
    """Every user exists except the ones listed as missing."""

    def __init__(self, missing=()):
        self.missing = set(missing)

    async def user_exists(self, user_id):
        return user_id not in self.missing


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'exchange.db'}")
    await init_db(eng)
    yield eng
    await close_db(eng)


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def listing_request():
    """Build a valid listing body; keyword overrides replace single fields."""
    def _make(**overrides):
        data = {
            "project_id": "project_1",
            "script_id": "script_1",
            "title": "The Lighthouse Keeper",
            "description": "Second draft, first act needs work.",
            "genre": "drama",
            "format": "feature",
            "page_count": 110,
        }
        data.update(overrides)
        return ListingCreateRequest(**data)
    return _make


@pytest.fixture
def submit_request():
    def _make(score=4, overall_comment="Strong voice, saggy middle."):
        dimension = {"score": score, "comment": "notes"}
        return ReviewSubmitRequest(
            rubric={
                "story_structure": dimension,
                "characters": dimension,
                "dialogue": dimension,
                "craft_voice": dimension,
            },
            overall_comment=overall_comment,
        )
    return _make


@pytest.fixture
def funded(session):
    """Grant the signup tokens to each user id passed in."""
    async def _fund(*user_ids):
        for user_id in user_ids:
            await ledger.ensure_signup_grant(session, user_id)
        await session.flush()
    return _fund


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def script_storage():
    return FakeScriptStorage()


@pytest.fixture
def identity():
    return FakeIdentity(missing={"ghost"})


@pytest.fixture
async def client(session_factory, publisher, script_storage, identity):
    app = create_app()

    async def override_get_db():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_publisher] = lambda: publisher
    app.dependency_overrides[get_script_storage] = lambda: script_storage
    app.dependency_overrides[get_identity_client] = lambda: identity

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


def as_user(user_id):
    return {"X-Auth-User-Id": user_id}


@pytest.fixture
def headers():
    return as_user
