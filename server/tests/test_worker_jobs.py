"""Scheduled maintenance jobs run against the test database."""

from datetime import timedelta

from evcenter.models import PartConflict
from evcenter.models.base import utcnow
from evcenter.models.invoice import InvoiceStatus
from evcenter.models.transaction import TransactionStatus
from evcenter.services import part_conflict_service, transaction_service
from evcenter.utils.retry import RetryError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from worker.jobs.maintenance_jobs import (
    expire_pending_transactions,
    flag_overdue_invoices,
    scan_part_conflicts,
)
from worker.main import build_scheduler


def test_scheduler_registers_jobs():
    scheduler = build_scheduler()
    assert sorted(job.id for job in scheduler.get_jobs()) == [
        "expired_transactions",
        "overdue_invoices",
        "part_conflict_scan",
    ]


async def test_conflict_scan(session_maker, part_factory, reception_factory, db_session):
    contested = await part_factory(current_stock=1)
    plenty = await part_factory(current_stock=10)
    await reception_factory(parts=[(contested, 1), (plenty, 1)])
    await reception_factory(parts=[(contested, 1)])

    assert await scan_part_conflicts(session_maker) == 1
    # a second scan refreshes the same conflict
    assert await scan_part_conflicts(session_maker) == 1

    conflicts = (await db_session.execute(select(PartConflict))).scalars().all()
    assert [c.part_id for c in conflicts] == [contested.id]


async def test_conflict_scan_skips_failing_part(
    monkeypatch, session_maker, part_factory, reception_factory, db_session
):
    broken = await part_factory(current_stock=1)
    contested = await part_factory(current_stock=1)
    await reception_factory(parts=[(broken, 2), (contested, 2)])

    real_detect = part_conflict_service.detect_part_conflicts

    async def flaky_detect(db, part_id):
        if part_id == broken.id:
            raise RetryError(f"Conflict detection for part {part_id} failed after 3 attempts")
        return await real_detect(db, part_id)

    monkeypatch.setattr(part_conflict_service, "detect_part_conflicts", flaky_detect)

    assert await scan_part_conflicts(session_maker) == 1

    conflicts = (await db_session.execute(select(PartConflict))).scalars().all()
    assert [c.part_id for c in conflicts] == [contested.id]


async def test_expired_transaction_sweep(session_maker, customer, db_session):
    stale = await transaction_service.create_transaction(
        db_session, "vnpay", {"user_id": customer.id, "amount": 200000}
    )
    fresh = await transaction_service.create_transaction(
        db_session, "vnpay", {"user_id": customer.id, "amount": 200000}
    )
    stale.expires_at = utcnow() - timedelta(minutes=1)
    await db_session.commit()

    assert await expire_pending_transactions(session_maker) == 1

    await db_session.refresh(stale)
    await db_session.refresh(fresh)
    assert stale.status == TransactionStatus.EXPIRED
    assert fresh.status == TransactionStatus.PENDING


async def test_overdue_invoice_sweep(session_maker, invoice, db_session):
    assert await flag_overdue_invoices(session_maker) == 0

    invoice.due_date = utcnow() - timedelta(days=1)
    await db_session.commit()

    assert await flag_overdue_invoices(session_maker) == 1
    await db_session.refresh(invoice)
    assert invoice.status == InvoiceStatus.OVERDUE


async def test_jobs_report_failures():
    # no tables in this database
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    broken = async_sessionmaker(engine, expire_on_commit=False)
    try:
        assert await scan_part_conflicts(broken) == -1
        assert await expire_pending_transactions(broken) == -1
        assert await flag_overdue_invoices(broken) == -1
    finally:
        await engine.dispose()
