"""
Pytest configuration and fixtures for backend tests.
"""
import os

# Settings are read at import time; keep tests off the production database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from datetime import timedelta
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from httpx import ASGITransport, AsyncClient

from evote.main import app
from evote.chain.ledger_client import LedgerClient
from evote.core.database import Base, get_db
from evote.core.locks import KeyedLock
from evote.core.security import create_access_token, hash_aadhaar
from evote.core.timeutils import utcnow
from evote.models.election import Election, Candidate, ElectionStatus
from evote.models.voter import Voter
from evote.services.admin_actions import AdminActionLog
from evote.services.election_service import ElectionService
from evote.services.vote_service import VoteService


# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def ledger() -> LedgerClient:
    """In-memory blockchain mirror."""
    return LedgerClient(mode="mock")


@pytest.fixture
def action_log() -> AdminActionLog:
    return AdminActionLog(capacity=50)


@pytest_asyncio.fixture(scope="function")
async def client(
    test_db: AsyncSession,
    ledger: LedgerClient,
    action_log: AdminActionLog,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with the test database and fresh shared state."""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.state.admin_actions = action_log
    app.state.ledger = ledger
    app.state.election_locks = KeyedLock()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_auth_headers() -> dict:
    """Create authentication headers for the admin console."""
    token = create_access_token({"sub": "admin", "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


def voter_headers(voter) -> dict:
    """Session headers for a voter, as issued after verification."""
    token = create_access_token({"sub": str(voter.id), "role": "voter"})
    return {"Authorization": f"Bearer {token}"}


async def make_voter(
    db: AsyncSession,
    aadhaar_id: str,
    name: str = "Test Voter",
    verified: bool = True,
) -> Voter:
    voter = Voter(
        aadhaar_id=aadhaar_id,
        aadhaar_hash=hash_aadhaar(aadhaar_id),
        name=name,
        otp_verified=verified,
        biometric_verified=verified,
        is_verified=verified,
        voting_history=[],
    )
    db.add(voter)
    await db.commit()
    return voter


@pytest_asyncio.fixture
async def test_voter(test_db: AsyncSession) -> Voter:
    """A verified voter."""
    return await make_voter(test_db, "123456789012", "Voter One")


@pytest_asyncio.fixture
async def second_voter(test_db: AsyncSession) -> Voter:
    """Another verified voter."""
    return await make_voter(test_db, "210987654321", "Voter Two")


@pytest_asyncio.fixture
async def unverified_voter(test_db: AsyncSession) -> Voter:
    return await make_voter(test_db, "555566667777", "Pending Voter", verified=False)


async def make_election(
    db: AsyncSession,
    status: ElectionStatus = ElectionStatus.ACTIVE,
    title: str = "Test Election 2024",
) -> Election:
    election = Election(
        title=title,
        description="A test election for unit testing",
        status=status,
        start_date=utcnow() - timedelta(hours=1),
        end_date=utcnow() + timedelta(days=1),
        candidates=[
            Candidate(name="Candidate A", party="Party Alpha", position=0, vote_count=0),
            Candidate(name="Candidate B", party="Party Beta", position=1, vote_count=0),
        ],
        participations=[],
    )
    db.add(election)
    await db.commit()
    return election


@pytest_asyncio.fixture
async def test_election(test_db: AsyncSession) -> Election:
    """An active election with candidates A and B."""
    return await make_election(test_db)


@pytest_asyncio.fixture
async def upcoming_election(test_db: AsyncSession) -> Election:
    return await make_election(test_db, ElectionStatus.UPCOMING, "Upcoming Election")


@pytest.fixture
def vote_service(
    test_db: AsyncSession,
    ledger: LedgerClient,
    action_log: AdminActionLog,
) -> VoteService:
    return VoteService(test_db, KeyedLock(), ledger=ledger, actions=action_log)


async def reload_election(db: AsyncSession, election_id) -> Election:
    """Fresh copy of an election, bypassing the identity map's stale state."""
    return await ElectionService(db).get_election(election_id)
