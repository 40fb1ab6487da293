"""Periodic maintenance: conflict scan, expired payments, overdue invoices."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from evcenter.services.invoice_service import mark_overdue_invoices
from evcenter.services.part_conflict_service import detect_all_conflicts
from evcenter.services.transaction_service import process_expired_transactions
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from worker.config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _session(session_maker: Optional[async_sessionmaker] = None):
    """Session from ``session_maker``, or from a throwaway engine on DATABASE_URL."""
    if session_maker is not None:
        async with session_maker() as db:
            yield db
        return

    engine = create_async_engine(settings.DATABASE_URL)
    try:
        maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with maker() as db:
            yield db
    finally:
        await engine.dispose()


async def scan_part_conflicts(session_maker: Optional[async_sessionmaker] = None) -> int:
    """
    Re-run conflict detection for every stocked part.

    Returns:
        Number of pending conflicts found, or -1 when the scan failed
    """
    logger.info("Running part conflict scan...")
    try:
        async with _session(session_maker) as db:
            conflicts = await detect_all_conflicts(db)
    except Exception as e:
        logger.error(f"Error in part conflict scan: {e}", exc_info=True)
        return -1

    logger.info(f"Part conflict scan completed: {len(conflicts)} pending conflict(s)")
    return len(conflicts)


async def expire_pending_transactions(session_maker: Optional[async_sessionmaker] = None) -> int:
    logger.info("Running expired transaction sweep...")
    try:
        async with _session(session_maker) as db:
            count = await process_expired_transactions(db)
    except Exception as e:
        logger.error(f"Error in expired transaction sweep: {e}", exc_info=True)
        return -1

    logger.info(f"Expired transaction sweep completed: {count} expired")
    return count


async def flag_overdue_invoices(session_maker: Optional[async_sessionmaker] = None) -> int:
    logger.info("Running overdue invoice sweep...")
    try:
        async with _session(session_maker) as db:
            count = await mark_overdue_invoices(db)
    except Exception as e:
        logger.error(f"Error in overdue invoice sweep: {e}", exc_info=True)
        return -1

    logger.info(f"Overdue invoice sweep completed: {count} invoice(s) overdue")
    return count
