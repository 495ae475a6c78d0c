from datetime import datetime, timedelta

from app.models import Transaction
from app.services.status import resolve_action, resolve_status

NOW = datetime(2026, 1, 12, 9, 0, 0)


def _txn(expected=None, actual=None):
    return Transaction(tool_id=1, user_id=1, checkout_date=NOW - timedelta(days=3),
                       expected_return_date=expected, actual_return_date=actual)


def test_returned_is_available_regardless_of_due_date():
    for expected in (None, NOW - timedelta(days=5), NOW + timedelta(days=5)):
        txn = _txn(expected=expected, actual=NOW - timedelta(hours=1))
        assert resolve_status(txn, NOW) == "Available"
        assert resolve_action(txn) == "Checked In"


def test_open_and_past_due_is_overdue():
    txn = _txn(expected=NOW - timedelta(milliseconds=1))
    assert resolve_status(txn, NOW) == "Overdue"
    assert resolve_action(txn) == "Checked Out"


def test_open_without_due_date_or_not_yet_due_is_in_use():
    assert resolve_status(_txn(), NOW) == "In Use"
    assert resolve_status(_txn(expected=NOW + timedelta(days=1)), NOW) == "In Use"
    # due exactly now is not yet late
    assert resolve_status(_txn(expected=NOW), NOW) == "In Use"
