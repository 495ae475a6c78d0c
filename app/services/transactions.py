import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.error import Conflict, NotFound
from app.models import Tool, Transaction, User
from app.schemas import ToolStatus, TransactionType, TransactionView
from app.services.overdue import reset_if_overdue
from app.services.status import resolve_action, resolve_status

logger = logging.getLogger(__name__)

# Overdue is accepted only when no checkout is open (a status set by hand);
# a tool flagged by the sweep still holds its open row, so the partial index
# turns a re-checkout into a Conflict
CHECKOUT_READY = {ToolStatus.AVAILABLE.value, ToolStatus.OVERDUE.value}


def build_view(
    txn: Transaction,
    tool: Optional[Tool],
    user: Optional[User],
    now: datetime,
    event_at: Optional[datetime] = None,
) -> TransactionView:
    """Flatten a checkout row with its tool and user into the client view.

    ``event_timestamp`` is the row creation time unless ``event_at`` is given
    (the checkin response passes the return time).
    """
    is_checkout = txn.type == TransactionType.CHECKOUT.value
    return TransactionView(
        id=txn.id,
        tool_name=tool.tool_name if tool else "Unknown Tool",
        tool_code=tool.tool_code if tool else "Unknown ID",
        user_name=user.name if user else "Unknown User",
        user_email=user.email if user else "Unknown Email",
        action=resolve_action(txn),
        checkout_date=(txn.checkout_date or txn.created_at) if is_checkout else None,
        checkin_date=txn.actual_return_date,
        event_timestamp=event_at or txn.created_at,
        due_date=txn.expected_return_date if is_checkout else None,
        notes=txn.notes,
        status=resolve_status(txn, now),
    )


def checkout(
    session: Session,
    tool_id: int,
    user_id: int,
    expected_return_date: Optional[datetime],
    notes: Optional[str],
    now: datetime,
) -> Transaction:
    tool = session.get(Tool, tool_id)
    if not tool:
        raise NotFound("Tool not found")

    if tool.status not in CHECKOUT_READY:
        raise Conflict("Tool is not available for checkout", code="TOOL_UNAVAILABLE")

    user = session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    txn = Transaction(
        tool_id=tool.id,
        user_id=user.id,
        type=TransactionType.CHECKOUT.value,
        checkout_date=now,
        expected_return_date=expected_return_date,
        actual_return_date=None,
        notes=(notes or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    tool.status = ToolStatus.CHECKED_OUT.value
    tool.updated_at = now

    session.add(txn)
    session.add(tool)

    # the partial unique index rejects a second open checkout (a racing
    # writer, or a tool the sweep flagged); both writes roll back together
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning("tool %s already has an open checkout", tool_id)
        raise Conflict("Tool is not available for checkout", code="TOOL_UNAVAILABLE")

    session.refresh(txn)
    logger.info(
        "tool %s checked out to user %s (transaction %s, due %s)",
        tool_id, user_id, txn.id, expected_return_date,
    )
    return txn


def checkin(
    session: Session,
    transaction_id: int,
    notes: Optional[str],
    now: datetime,
) -> Transaction:
    txn = session.exec(
        select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.type == TransactionType.CHECKOUT.value,
        )
    ).first()
    if not txn:
        raise NotFound("Checkout transaction not found")

    if txn.actual_return_date is not None:
        raise Conflict("Tool already checked in", code="ALREADY_CHECKED_IN")

    txn.actual_return_date = now
    txn.updated_at = now
    if notes and notes.strip():
        txn.notes = notes.strip()
    session.add(txn)

    tool = session.get(Tool, txn.tool_id)
    if not tool:
        session.rollback()
        logger.error("tool %s missing for transaction %s", txn.tool_id, transaction_id)
        raise NotFound("Tool not found")

    if tool.status == ToolStatus.OVERDUE.value:
        reset_if_overdue(session, tool.id)
    else:
        tool.status = ToolStatus.AVAILABLE.value
        session.add(tool)
    tool.updated_at = now

    session.commit()
    session.refresh(txn)
    logger.info("transaction %s checked in, tool %s available", txn.id, txn.tool_id)
    return txn


def load_view(
    session: Session,
    txn: Transaction,
    now: datetime,
    event_at: Optional[datetime] = None,
) -> TransactionView:
    return build_view(txn, session.get(Tool, txn.tool_id), session.get(User, txn.user_id), now, event_at)


def list_transactions(
    session: Session,
    now: datetime,
    tool_id: Optional[int] = None,
    user_id: Optional[int] = None,
    open_only: bool = False,
) -> list[TransactionView]:
    stmt = (
        select(Transaction, Tool, User)
        .join(Tool, Transaction.tool_id == Tool.id, isouter=True)
        .join(User, Transaction.user_id == User.id, isouter=True)
        .where(Transaction.type == TransactionType.CHECKOUT.value)
    )
    if tool_id is not None:
        stmt = stmt.where(Transaction.tool_id == tool_id)
    if user_id is not None:
        stmt = stmt.where(Transaction.user_id == user_id)
    if open_only:
        stmt = stmt.where(Transaction.actual_return_date.is_(None))

    stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())

    return [build_view(txn, tool, user, now) for txn, tool, user in session.exec(stmt).all()]
