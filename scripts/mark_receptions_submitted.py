#!/usr/bin/env python3
"""
Mark every service reception that was never submitted as submitted to staff.

Receptions created before staff review existed have ``submitted_to_staff``
unset and never show up in the review queue.

Usage:
    python scripts/mark_receptions_submitted.py
"""

import asyncio
import sys
from pathlib import Path

# Add server directory to path
sys.path.append(str(Path(__file__).parent.parent / "server"))

from evcenter.config import settings
from evcenter.services.reception_service import mark_unsubmitted_receptions
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


async def mark_receptions_submitted(database_url: str = None) -> int:
    engine = create_async_engine(database_url or settings.DATABASE_URL)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with async_session_maker() as db:
            return await mark_unsubmitted_receptions(db)
    finally:
        await engine.dispose()


def main() -> int:
    try:
        count = asyncio.run(mark_receptions_submitted())
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Updated {count} receptions")
    return 0


if __name__ == "__main__":
    sys.exit(main())
