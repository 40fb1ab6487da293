"""Transaction history, statistics and refunds."""

from datetime import datetime
from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import get_current_user, require_staff
from evcenter.schemas import RefundCreate, TransactionStatusUpdate
from evcenter.services import transaction_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_many, serialize_transaction
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.get("/")
async def list_transactions(
    user_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
    invoice_id: Optional[int] = None,
    transaction_type: Optional[str] = None,
    status: Optional[str] = None,
    purpose: Optional[str] = None,
    limit: int = 50,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    transactions = await transaction_service.get_transaction_history(
        db,
        user,
        user_id=user_id,
        appointment_id=appointment_id,
        invoice_id=invoice_id,
        transaction_type=transaction_type,
        status=status,
        purpose=purpose,
        limit=limit,
    )
    return success(serialize_many(transactions, serialize_transaction), count=len(transactions))


@router.get("/my")
async def my_transactions(
    status: Optional[str] = None,
    limit: int = 50,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transactions = await transaction_service.get_transaction_history(
        db, user, user_id=user.id, status=status, limit=limit
    )
    return success(serialize_many(transactions, serialize_transaction), count=len(transactions))


@router.get("/stats")
async def transaction_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    stats = await transaction_service.get_transaction_statistics(db, start_date, end_date)
    return success(stats)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await transaction_service.get_transaction(db, transaction_id, user)
    return success(serialize_transaction(transaction))


@router.post("/{transaction_id}/refund")
async def refund(
    transaction_id: int,
    body: Optional[RefundCreate] = None,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    body = body or RefundCreate()
    refund_txn = await transaction_service.process_refund(db, transaction_id, user, body.amount, body.reason)
    return success(serialize_transaction(refund_txn), "Refund processed")


@router.put("/{transaction_id}/status")
async def update_status(
    transaction_id: int,
    body: TransactionStatusUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    transaction = await transaction_service.update_transaction_status(
        db,
        transaction_id,
        body.status,
        user,
        error_code=body.error_code,
        error_message=body.error_message,
        paid_amount=body.paid_amount,
    )
    return success(serialize_transaction(transaction), f"Transaction {transaction.status.value}")
