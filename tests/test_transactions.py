from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.error import Conflict, NotFound
from app.models import Tool, Transaction
from app.services import transactions

NOW = datetime(2026, 1, 12, 9, 0, 0)


def test_checkout_then_checkin_round_trip(session, seed):
    tool = seed.tool()
    user = seed.user()

    txn = transactions.checkout(session, tool.id, user.id, NOW + timedelta(days=2), "site A", NOW)
    assert txn.type == "checkout"
    assert txn.checkout_date == NOW
    assert txn.actual_return_date is None
    assert session.get(Tool, tool.id).status == "Checked Out"

    later = NOW + timedelta(hours=3)
    returned = transactions.checkin(session, txn.id, None, later)
    assert returned.actual_return_date == later
    assert returned.notes == "site A"
    assert session.get(Tool, tool.id).status == "Available"

    rows = session.exec(select(Transaction)).all()
    assert len(rows) == 1
    assert rows[0].actual_return_date is not None


@pytest.mark.parametrize("status", ["Under Maintenance", "Retired", "Checked Out"])
def test_checkout_rejects_unavailable_tool(session, seed, status):
    tool = seed.tool(status=status)
    user = seed.user()

    with pytest.raises(Conflict) as exc:
        transactions.checkout(session, tool.id, user.id, None, None, NOW)
    assert exc.value.code == "TOOL_UNAVAILABLE"
    assert session.exec(select(Transaction)).all() == []


def test_checkout_allows_hand_set_overdue_tool_without_open_checkout(session, seed):
    tool = seed.tool(status="Overdue")
    user = seed.user()

    transactions.checkout(session, tool.id, user.id, None, None, NOW)
    assert session.get(Tool, tool.id).status == "Checked Out"


def test_checkout_missing_tool_or_user(session, seed):
    tool = seed.tool()
    user = seed.user()

    with pytest.raises(NotFound, match="Tool not found"):
        transactions.checkout(session, 999, user.id, None, None, NOW)
    with pytest.raises(NotFound, match="User not found"):
        transactions.checkout(session, tool.id, 999, None, None, NOW)
    assert session.get(Tool, tool.id).status == "Available"


def test_second_checkin_is_conflict_and_keeps_return_date(session, seed):
    tool = seed.tool()
    user = seed.user()
    txn = transactions.checkout(session, tool.id, user.id, None, None, NOW)
    first_return = NOW + timedelta(hours=1)
    transactions.checkin(session, txn.id, "fine", first_return)

    with pytest.raises(Conflict) as exc:
        transactions.checkin(session, txn.id, "again", NOW + timedelta(hours=2))
    assert exc.value.code == "ALREADY_CHECKED_IN"

    session.expire_all()
    stored = session.get(Transaction, txn.id)
    assert stored.actual_return_date == first_return
    assert stored.notes == "fine"


def test_checkin_unknown_or_checkin_typed_row(session, seed):
    tool = seed.tool()
    user = seed.user()
    with pytest.raises(NotFound, match="Checkout transaction not found"):
        transactions.checkin(session, 42, None, NOW)

    stray = Transaction(tool_id=tool.id, user_id=user.id, type="checkin", actual_return_date=NOW)
    session.add(stray)
    session.commit()
    with pytest.raises(NotFound):
        transactions.checkin(session, stray.id, None, NOW)


def test_checkin_resets_overdue_tool(session, seed):
    tool = seed.tool()
    user = seed.user()
    txn = transactions.checkout(session, tool.id, user.id, NOW - timedelta(days=1), None, NOW)
    tool = session.get(Tool, tool.id)
    tool.status = "Overdue"
    session.add(tool)
    session.commit()

    transactions.checkin(session, txn.id, None, NOW)
    session.expire_all()
    assert session.get(Tool, tool.id).status == "Available"


def test_checkin_with_missing_tool_rolls_back(session, seed):
    tool = seed.tool()
    user = seed.user()
    txn = transactions.checkout(session, tool.id, user.id, None, None, NOW)
    session.delete(session.get(Tool, tool.id))
    session.commit()

    with pytest.raises(NotFound, match="Tool not found"):
        transactions.checkin(session, txn.id, None, NOW)
    assert session.get(Transaction, txn.id).actual_return_date is None


def test_store_allows_only_one_open_transaction_per_tool(session, seed):
    tool = seed.tool()
    user = seed.user()
    session.add(Transaction(tool_id=tool.id, user_id=user.id))
    session.commit()

    session.add(Transaction(tool_id=tool.id, user_id=user.id))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()

    # closed rows do not count against the open slot
    session.add(Transaction(tool_id=tool.id, user_id=user.id, actual_return_date=NOW))
    session.commit()


def test_racing_checkout_loses_and_leaves_tool_untouched(session, seed):
    tool = seed.tool()
    first = seed.user("first@example.com")
    second = seed.user("second@example.com")

    # a concurrent writer already opened a checkout but the tool row still
    # reads Available to us
    session.add(Transaction(tool_id=tool.id, user_id=first.id, checkout_date=NOW))
    session.commit()

    with pytest.raises(Conflict):
        transactions.checkout(session, tool.id, second.id, None, None, NOW)

    session.expire_all()
    assert session.get(Tool, tool.id).status == "Available"
    open_rows = session.exec(
        select(Transaction).where(Transaction.tool_id == tool.id, Transaction.actual_return_date.is_(None))
    ).all()
    assert [t.user_id for t in open_rows] == [first.id]


def test_list_transactions_recomputes_status(session, seed):
    tool = seed.tool("T1")
    other = seed.tool("T2")
    user = seed.user()

    yesterday = NOW - timedelta(days=1)
    overdue_txn = transactions.checkout(session, tool.id, user.id, yesterday, None, NOW - timedelta(days=2))
    done_txn = transactions.checkout(session, other.id, user.id, None, None, NOW - timedelta(hours=5))
    transactions.checkin(session, done_txn.id, "ok", NOW - timedelta(hours=1))

    views = transactions.list_transactions(session, NOW)
    assert [v.id for v in views] == [done_txn.id, overdue_txn.id]

    done, late = views
    assert done.action == "Checked In"
    assert done.status == "Available"
    assert done.checkin_date == NOW - timedelta(hours=1)
    assert late.action == "Checked Out"
    assert late.status == "Overdue"
    assert late.due_date == yesterday
    assert late.tool_code == "T1"
    # the cached column is only updated by the sweep
    assert session.get(Tool, tool.id).status == "Checked Out"

    open_views = transactions.list_transactions(session, NOW, open_only=True)
    assert [v.id for v in open_views] == [overdue_txn.id]


def test_list_transactions_unknown_references(session, seed):
    tool = seed.tool()
    user = seed.user()
    txn = transactions.checkout(session, tool.id, user.id, None, None, NOW)
    session.delete(session.get(type(user), user.id))
    session.commit()

    (view,) = transactions.list_transactions(session, NOW)
    assert view.id == txn.id
    assert view.user_name == "Unknown User"
    assert view.user_email == "Unknown Email"
