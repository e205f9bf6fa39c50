"""Shared pytest fixtures for backend tests."""

import os
import sys
from datetime import datetime, timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add the project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from taskchat.database import Base, get_db
from taskchat.main import app
from taskchat.models import Message, Task, TaskTag, User
from taskchat.services.auth_service import create_access_token
from taskchat.websocket import ConnectionManager, Session


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    """Create a test database engine with SQLite."""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture
async def connection_manager() -> AsyncGenerator[ConnectionManager, None]:
    """A fresh ConnectionManager installed on the app for each test."""
    manager = ConnectionManager()
    app.state.connection_manager = manager
    yield manager
    await manager.close_all()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    connection_manager: ConnectionManager,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database dependency override."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ============================================================================
# Users and chat contacts
# ============================================================================


async def _create_user(db: AsyncSession, email: str, full_name: str) -> User:
    user = User(id=uuid4(), email=email, full_name=full_name, profile_pic="")
    db.add(user)
    await db.commit()
    return user


async def add_chat_message(db: AsyncSession, sender: User, receiver: User) -> Message:
    """Record a direct message, which makes the two users chat contacts."""
    message = Message(sender_id=sender.id, receiver_id=receiver.id, text="hi")
    db.add(message)
    await db.commit()
    return message


@pytest_asyncio.fixture
async def alice(db_session: AsyncSession) -> User:
    """Task creator in most tests."""
    return await _create_user(db_session, "alice@example.com", "Alice Adams")


@pytest_asyncio.fixture
async def bob(db_session: AsyncSession, alice: User) -> User:
    """Chat contact of alice (alice wrote to bob)."""
    user = await _create_user(db_session, "bob@example.com", "Bob Brown")
    await add_chat_message(db_session, alice, user)
    return user


@pytest_asyncio.fixture
async def carol(db_session: AsyncSession, alice: User) -> User:
    """Chat contact of alice (carol wrote to alice)."""
    user = await _create_user(db_session, "carol@example.com", "Carol Clark")
    await add_chat_message(db_session, user, alice)
    return user


@pytest_asyncio.fixture
async def dave(db_session: AsyncSession) -> User:
    """A user nobody has chatted with."""
    return await _create_user(db_session, "dave@example.com", "Dave Doe")


@pytest.fixture
def headers_for():
    """Build bearer auth headers for a user."""
    def _headers(user: User) -> dict:
        token = create_access_token(data={"sub": str(user.id), "email": user.email})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def auth_headers(alice: User, headers_for) -> dict:
    """Auth headers for alice."""
    return headers_for(alice)


# ============================================================================
# Tasks
# ============================================================================


@pytest.fixture
def make_task(db_session: AsyncSession):
    """Insert a task directly, bypassing request validation."""
    async def _make(creator: User, assignees: list, **overrides) -> Task:
        tags = overrides.pop("tags", [])
        values = {
            "title": "Prepare report",
            "description": "Collect the numbers and write the summary",
            "priority": "medium",
            "status": "pending",
            "due_date": datetime.utcnow() + timedelta(days=3),
        }
        values.update(overrides)
        task = Task(assigned_by_id=creator.id, **values)
        task.creator = creator
        task.assignees = list(assignees)
        task.tag_links = [TaskTag(tag=tag) for tag in tags]
        db_session.add(task)
        await db_session.commit()
        return task
    return _make


# ============================================================================
# WebSocket sessions
# ============================================================================


@pytest.fixture
def connect_user(connection_manager: ConnectionManager):
    """Register a live session backed by a mock socket for a user (or unbound)."""
    def _connect(user=None) -> Session:
        user_id = str(user.id) if isinstance(user, User) else user
        session = connection_manager.register(AsyncMock(), user_id)
        session.start()
        return session
    return _connect


async def sent_messages(session: Session) -> list:
    """Every message the session's writer has handed to its socket."""
    await session.drain()
    return [call.args[0] for call in session.websocket.send_json.call_args_list]


async def sent_types(session: Session) -> list:
    return [message["type"] for message in await sent_messages(session)]
