import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.clock import localnow, utcnow
from app.models import Tool, Transaction
from app.schemas import ToolStatus, TransactionStatus, TransactionType
from app.services.status import resolve_status

logger = logging.getLogger(__name__)

SWEEP_INTERVAL = timedelta(hours=24)


def sweep(session: Session, now: datetime) -> int:
    """
    Flag every tool whose open checkout is past its due date as Overdue.

    Each tool is committed on its own; a failure on one is logged and
    rolled back and the sweep moves on. Returns how many tools changed.
    """
    stmt = select(Transaction).where(
        Transaction.type == TransactionType.CHECKOUT.value,
        Transaction.actual_return_date.is_(None),
        Transaction.expected_return_date.is_not(None),
        Transaction.expected_return_date < now,
    )
    lapsed = session.exec(stmt).all()

    tool_ids = []
    for txn in lapsed:
        if resolve_status(txn, now) == TransactionStatus.OVERDUE and txn.tool_id not in tool_ids:
            tool_ids.append(txn.tool_id)

    updated_count = 0
    for tool_id in tool_ids:
        try:
            tool = session.get(Tool, tool_id)
            if not tool or tool.status == ToolStatus.OVERDUE.value:
                continue
            tool.status = ToolStatus.OVERDUE.value
            tool.updated_at = now
            session.add(tool)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("failed to mark tool %s as overdue", tool_id)
            continue
        updated_count += 1
        logger.info("marked tool %s (%s) as Overdue", tool.tool_name, tool.tool_code)

    logger.info("overdue sweep finished, %d tools marked as overdue", updated_count)
    return updated_count


def reset_if_overdue(session: Session, tool_id: int) -> bool:
    """Put an Overdue tool back to Available. The caller commits."""
    tool = session.get(Tool, tool_id)
    if not tool or tool.status != ToolStatus.OVERDUE.value:
        return False
    tool.status = ToolStatus.AVAILABLE.value
    session.add(tool)
    session.flush()
    logger.info("reset tool %s (%s) from Overdue to Available", tool.tool_name, tool.tool_code)
    return True


def seconds_until_next_midnight(now: datetime) -> float:
    next_midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    if now.tzinfo is not None:
        next_midnight = next_midnight.replace(tzinfo=now.tzinfo)
    return (next_midnight - now).total_seconds()


class OverdueScheduler:
    """Runs :func:`sweep` at the next local midnight, then once a day."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Callable[[], datetime] = localnow,
        utc_clock: Callable[[], datetime] = utcnow,
        interval: timedelta = SWEEP_INTERVAL,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.utc_clock = utc_clock
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> int:
        with self.session_factory() as session:
            return sweep(session, self.utc_clock())

    async def run_forever(self) -> None:
        delay = seconds_until_next_midnight(self.clock())
        logger.info("first overdue sweep in %.0f seconds", delay)
        await asyncio.sleep(delay)
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                # keep the daily schedule alive; the next run retries
                logger.exception("overdue sweep failed")
            await asyncio.sleep(self.interval.total_seconds())

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
