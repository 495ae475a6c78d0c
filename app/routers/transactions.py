from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.db import get_session
from app.deps import get_clock, require_admin, require_manager, require_user
from app.models import User
from app.schemas import CheckinUpdate, CheckoutCreate, SweepResult, TransactionView
from app.services import overdue, transactions

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("", response_model=list[TransactionView])
def list_transactions(
        tool_id: Optional[int] = Query(None, ge=1, description="only this tool"),
        user_id: Optional[int] = Query(None, ge=1, description="only this borrower"),
        open_only: bool = Query(False, description="only tools still out"),
        session: Session = Depends(get_session),
        clock: Callable[[], datetime] = Depends(get_clock),
        _user: User = Depends(require_user),
):
    return transactions.list_transactions(
        session, clock(), tool_id=tool_id, user_id=user_id, open_only=open_only,
    )


@router.post("/checkout", response_model=TransactionView, status_code=status.HTTP_201_CREATED)
def checkout_tool(
        data: CheckoutCreate,
        session: Session = Depends(get_session),
        clock: Callable[[], datetime] = Depends(get_clock),
        _user: User = Depends(require_manager),
):
    now = clock()
    txn = transactions.checkout(
        session,
        tool_id=data.tool_id,
        user_id=data.user_id,
        expected_return_date=data.expected_return_date,
        notes=data.notes,
        now=now,
    )
    return transactions.load_view(session, txn, now)


@router.put("/{transaction_id}/checkin", response_model=TransactionView)
def checkin_tool(
        transaction_id: int,
        data: Optional[CheckinUpdate] = None,
        session: Session = Depends(get_session),
        clock: Callable[[], datetime] = Depends(get_clock),
        _user: User = Depends(require_manager),
):
    now = clock()
    txn = transactions.checkin(
        session,
        transaction_id=transaction_id,
        notes=data.notes if data else None,
        now=now,
    )
    return transactions.load_view(session, txn, now, event_at=txn.actual_return_date)


@router.post("/sweep-overdue", response_model=SweepResult)
def sweep_overdue(
        session: Session = Depends(get_session),
        clock: Callable[[], datetime] = Depends(get_clock),
        _admin: User = Depends(require_admin),
):
    return {"updated_count": overdue.sweep(session, clock())}
