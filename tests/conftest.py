"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
"""

import os
import tempfile

import pytest

# Point DATABASE_URL at a throwaway SQLite file and pin business settings.
# Must be set BEFORE any imports of database.connection or shared.config
_TEST_DB_DIR = tempfile.mkdtemp(prefix="booking-core-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'booking_test.db')}"
os.environ["TIMEZONE"] = "America/Sao_Paulo"
os.environ["BUSINESS_OPEN_TIME"] = "08:00"
os.environ["BUSINESS_CLOSE_TIME"] = "18:30"
os.environ["SLOT_GRANULARITY_MINUTES"] = "30"
os.environ["CLOSED_WEEKDAY"] = "6"
os.environ["PHONE_REGION"] = "BR"
os.environ["CUSTOMER_ID_PREFIX"] = "customer_"
os.environ["TRANSACTION_MAX_ATTEMPTS"] = "5"
os.environ["TRANSACTION_RETRY_INITIAL_DELAY"] = "0.01"
os.environ["TRANSACTION_RETRY_MAX_DELAY"] = "0.1"


@pytest.fixture(scope="function", autouse=True)
async def cleanup_engine():
    """
    Clean up database engine and notification listeners after each test.

    This ensures connection pools don't interfere between tests and
    prevents "Future attached to different loop" errors.
    """
    yield
    from booking.services.notification_service import clear_listeners
    from database.connection import engine

    clear_listeners()
    await engine.dispose()


@pytest.fixture
async def db_schema():
    """Create a fresh schema for the test and drop it afterwards."""
    from database.connection import engine
    from database.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def professionals(db_schema):
    """Seed an active professional "p1", a second active "p2" and an inactive "p3"."""
    from database.connection import AsyncSessionLocal
    from database.seeds.professionals import seed_professionals

    rows = [
        {"id": "p1", "name": "Sr. Cardoso", "is_active": True},
        {"id": "p2", "name": "Emanuel", "is_active": True},
        {"id": "p3", "name": "Former Barber", "is_active": False},
    ]
    async with AsyncSessionLocal() as session:
        async with session.begin():
            await seed_professionals(session, rows)

    return {row["id"]: row for row in rows}


@pytest.fixture
def customer_a():
    return {"first_name": "Ana", "last_name": "Souza", "phone": "(11) 98765-4321"}


@pytest.fixture
def customer_b():
    return {"first_name": "Bruno", "last_name": "Lima", "phone": "+55 21 99876-5432"}
