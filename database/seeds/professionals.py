"""
Seed script for professionals table.

Populates the database with the shop's barbers. Idempotent: existing ids are
left untouched.
"""

import asyncio
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import AsyncSessionLocal
from database.models import Professional

PROFESSIONALS_DATA: list[dict[str, Any]] = [
    {"id": "sr-cardoso", "name": "Sr. Cardoso", "is_active": True},
    {"id": "emanuel", "name": "Emanuel", "is_active": True},
    {"id": "thaynan", "name": "Thaynan", "is_active": True},
]


async def seed_professionals(
    session: AsyncSession | None = None,
    data: list[dict[str, Any]] | None = None,
) -> list[str]:
    """
    Seed the professionals table.

    Args:
        session: Existing session to use (opens its own transaction otherwise)
        data: Rows to insert (defaults to PROFESSIONALS_DATA)

    Returns:
        Ids of the professionals created by this call
    """
    rows = data if data is not None else PROFESSIONALS_DATA

    if session is None:
        async with AsyncSessionLocal() as own_session:
            async with own_session.begin():
                return await _insert_missing(own_session, rows)

    return await _insert_missing(session, rows)


async def _insert_missing(session: AsyncSession, rows: list[dict[str, Any]]) -> list[str]:
    created: list[str] = []
    for row in rows:
        if await session.get(Professional, row["id"]) is None:
            session.add(Professional(**row))
            created.append(row["id"])
            print(f"✓ Created professional: {row['name']} ({row['id']})")
        else:
            print(f"⊙ Professional already exists: {row['name']} ({row['id']})")
    await session.flush()
    return created


if __name__ == "__main__":
    print("Seeding professionals table...")
    print("=" * 60)
    asyncio.run(seed_professionals())
