"""Shared test fixtures for the content protection test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions). External
collaborators (ledger, account service) are replaced with in-process fakes.
"""

import asyncio
import io
import uuid

import pytest
from PIL import Image
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lifeline.core.exceptions import AccountServiceError
from lifeline.database import Base, get_db
from lifeline.main import app
from lifeline.models import *  # noqa: ensure all models are loaded for create_all
from lifeline.services.account_service import AccountNotifier, get_account_notifier
from lifeline.services.ledger_service import LedgerClient, LedgerUnavailableError, get_ledger_client


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Fakes for external collaborators
# ---------------------------------------------------------------------------

class FakeLedger(LedgerClient):
    """Ledger double: answers instantly or a little late, hangs past the timeout, or refuses."""

    network = "TestNet"

    def __init__(self, mode: str = "ok"):
        self.mode = mode
        self.calls: list[str] = []

    async def anchor(self, content_hash: str) -> str:
        self.calls.append(content_hash)
        if self.mode == "slow":
            await asyncio.sleep(0.05)
        if self.mode == "hang":
            await asyncio.sleep(5)
        if self.mode == "down":
            raise LedgerUnavailableError("ledger offline")
        return f"0xref{len(self.calls):04d}"


class RecordingAccountNotifier(AccountNotifier):
    def __init__(self, fail_enforcement: bool = False):
        self.fail_enforcement = fail_enforcement
        self.consents: list[tuple[str, str]] = []
        self.revocations: list[tuple[str, str]] = []
        self.enforcements: list[tuple[str, int]] = []

    async def consent_satisfied(self, user_id: str, document_version: str) -> None:
        self.consents.append((user_id, document_version))

    async def consent_revoked(self, user_id: str, reason: str) -> None:
        self.revocations.append((user_id, reason))

    async def enforcement_triggered(self, user_id: str, violation_count: int) -> None:
        if self.fail_enforcement:
            raise AccountServiceError("account suspension")
        self.enforcements.append((user_id, violation_count))


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def accounts():
    return RecordingAccountNotifier()


@pytest.fixture
def valid_biometric() -> dict:
    return {"type": "FACE_ID", "assertion": "device-assertion-ok"}


@pytest.fixture
async def client(ledger, accounts):
    """httpx AsyncClient wired to the FastAPI app with test DB and fakes."""
    import httpx

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_ledger_client] = lambda: ledger
    app.dependency_overrides[get_account_notifier] = lambda: accounts

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def make_user():
    """Factory fixture: return (user_id, jwt_token) for a fresh user."""
    from lifeline.core.auth import create_access_token

    def _make(username: str = None):
        user_id = _new_id()
        return user_id, create_access_token(user_id, username or f"user-{user_id[:8]}")

    return _make


@pytest.fixture
def auth_header():
    """Return a callable that builds an Authorization header from a JWT."""
    def _build(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}
    return _build


@pytest.fixture
def admin_user(make_user, monkeypatch):
    """A user whose id is listed in ADMIN_USER_IDS for the duration of the test."""
    from lifeline.config import settings

    user_id, token = make_user("admin")
    monkeypatch.setattr(settings, "admin_user_ids", user_id)
    return user_id, token


@pytest.fixture
async def consent_document(db: AsyncSession, accounts):
    """Publish version 1.0 of the consent document with a 30 second minimum read."""
    from lifeline.services.biometric_service import PlatformAttestationVerifier
    from lifeline.services.consent_service import ConsentGate

    gate = ConsentGate(db, PlatformAttestationVerifier(), accounts)
    return await gate.publish_document("1.0", "Keep Shadow Self reports confidential.", 30)


@pytest.fixture
def png_bytes():
    """Factory fixture: a noisy RGB PNG of the given size."""
    def _make(width: int = 128, height: int = 96) -> bytes:
        img = Image.effect_noise((width, height), 40).convert("RGB")
        out = io.BytesIO()
        img.save(out, format="PNG")
        return out.getvalue()
    return _make
