from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlmodel import Session, select

from app.db import get_session
from app.deps import require_user
from app.models import Tool, Transaction, User
from app.schemas import ActivityItem, DashboardStats, ToolStatus, TransactionType

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

RECENT_LIMIT = 10


def _count_tools(session: Session, status: ToolStatus | None = None) -> int:
    stmt = select(func.count()).select_from(Tool)
    if status is not None:
        stmt = stmt.where(Tool.status == status.value)
    return session.exec(stmt).one()


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    # counts read the cached Tool.status, so Overdue lags until the next sweep
    return DashboardStats(
        total_tools=_count_tools(session),
        tools_available=_count_tools(session, ToolStatus.AVAILABLE),
        tools_checked_out=_count_tools(session, ToolStatus.CHECKED_OUT),
        tools_overdue=_count_tools(session, ToolStatus.OVERDUE),
        total_users=session.exec(select(func.count()).select_from(User)).one(),
        recent_transactions=session.exec(select(func.count()).select_from(Transaction)).one(),
    )


@router.get("/overdue")
def overdue_tools(
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    stmt = (
        select(Tool)
        .where(Tool.status == ToolStatus.OVERDUE.value)
        .order_by(Tool.updated_at.desc())
        .limit(RECENT_LIMIT)
    )
    return session.exec(stmt).all()


@router.get("/recent", response_model=list[ActivityItem])
def recent_activity(
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    stmt = (
        select(Transaction, Tool, User)
        .join(Tool, Transaction.tool_id == Tool.id, isouter=True)
        .join(User, Transaction.user_id == User.id, isouter=True)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(RECENT_LIMIT)
    )
    items = []
    for txn, tool, user in session.exec(stmt).all():
        user_name = user.name if user else "Unknown User"
        tool_name = tool.tool_name if tool else "Unknown Tool"
        # checkins are stamped on the checkout row itself
        if txn.type == TransactionType.CHECKIN.value or txn.actual_return_date is not None:
            items.append(ActivityItem(
                action="Tool Returned",
                description=f"{user_name} returned {tool_name}",
                time=txn.actual_return_date or txn.created_at,
            ))
        else:
            items.append(ActivityItem(
                action="Tool Checked Out",
                description=f"{user_name} checked out {tool_name}",
                time=txn.created_at,
            ))
    return items
