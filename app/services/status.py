"""
Display status of a checkout transaction.

Every label shown to a client, and the overdue predicate the sweep uses,
comes from here so list views and the cached Tool.status agree on what
"Overdue" means.
"""
from datetime import datetime

from app.models import Transaction
from app.schemas import TransactionAction, TransactionStatus


def is_lapsed(expected_return_date: datetime | None, now: datetime) -> bool:
    return expected_return_date is not None and expected_return_date < now


def resolve_status(txn: Transaction, now: datetime) -> TransactionStatus:
    if txn.actual_return_date is not None:
        return TransactionStatus.AVAILABLE
    if is_lapsed(txn.expected_return_date, now):
        return TransactionStatus.OVERDUE
    return TransactionStatus.IN_USE


def resolve_action(txn: Transaction) -> TransactionAction:
    if txn.actual_return_date is not None:
        return TransactionAction.CHECKED_IN
    return TransactionAction.CHECKED_OUT
