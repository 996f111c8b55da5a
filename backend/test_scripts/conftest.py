"""
Shared fixtures for the GoldLedger test suite.

Every test gets its own SQLite file under pytest's tmp_path with the schema
created from SQLModel metadata, so tests never share state.
"""
import sys
from pathlib import Path

import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Setup test database BEFORE importing app modules
from backend.test_scripts.test_db_config import setup_test_database, create_test_engine

setup_test_database()

from backend.app.db.models import Admin, Member, GoldRate
from backend.app.db.session import get_session_factory
from backend.app.services.trade_ledger import TradeLedgerFacade
from backend.test_scripts.test_utils import add_admin, add_member, publish_rate


# ============================================================================
# PYTEST FIXTURES
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async engine on a fresh database file."""
    engine = await create_test_engine(tmp_path / "goldledger_test.db")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return get_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    """Session for service-level tests; nothing is committed."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def facade(session_factory) -> TradeLedgerFacade:
    return TradeLedgerFacade(session_factory, max_retries=3, retry_backoff_ms=1)


@pytest_asyncio.fixture
async def admin(session_factory) -> Admin:
    return await add_admin(session_factory, "Admin One")


@pytest_asyncio.fixture
async def second_admin(session_factory) -> Admin:
    return await add_admin(session_factory, "Admin Two")


@pytest_asyncio.fixture
async def member(session_factory) -> Member:
    return await add_member(session_factory, "Asha Member")


@pytest_asyncio.fixture
async def other_member(session_factory) -> Member:
    return await add_member(session_factory, "Ravi Member")


@pytest_asyncio.fixture
async def active_rate(session_factory, admin) -> GoldRate:
    """Gold rate at 6000 (buy) / 5800 (sell) INR per gram."""
    return await publish_rate(session_factory, admin.id)
