from datetime import datetime, timedelta, timezone

import pytest

from tripledger.db.models import Expense, Member, Settlement, SplitPolicy
from tripledger.errors import InvariantViolation, ValidationError
from tripledger.services.settlement import (
    Transfer,
    settlement_history,
    settlement_reminders,
    settlement_summary,
    simplify_debts,
    validate_settlement,
)
from tripledger.services.split import split_equal

WHEN = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def member(member_id, name):
    return Member(id=member_id, group_id=1, display_name=name)


def test_settle_single_pair():
    assert simplify_debts({1: 10000, 3: -10000}) == [Transfer(from_member=3, to_member=1, amount_cents=10000)]


def test_settle_balances():
    balances = {
        1: 500,
        2: -300,
        3: -200,
    }

    transfers = simplify_debts(balances)

    assert transfers == [
        Transfer(from_member=2, to_member=1, amount_cents=300),
        Transfer(from_member=3, to_member=1, amount_cents=200),
    ]

    after = balances.copy()
    for t in transfers:
        after[t.to_member] -= t.amount_cents
        after[t.from_member] += t.amount_cents

    assert all(value == 0 for value in after.values())


def test_settle_preserves_debt_and_bounds_count():
    balances = {1: 700, 2: -250, 3: -250, 4: 300, 5: -500, 6: 0}

    transfers = simplify_debts(balances)

    assert sum(t.amount_cents for t in transfers) == 1000
    assert len(transfers) <= len(balances) - 1
    assert all(t.amount_cents > 0 for t in transfers)
    assert all(6 not in (t.from_member, t.to_member) for t in transfers)


def test_settle_ties_follow_member_order():
    balances = {1: 100, 2: 100, 3: -100, 4: -100}
    members = [member(2, "B"), member(1, "A"), member(4, "D"), member(3, "C")]

    assert simplify_debts(balances, members) == [
        Transfer(from_member=4, to_member=2, amount_cents=100),
        Transfer(from_member=3, to_member=1, amount_cents=100),
    ]
    assert simplify_debts(balances) == [
        Transfer(from_member=3, to_member=1, amount_cents=100),
        Transfer(from_member=4, to_member=2, amount_cents=100),
    ]


def test_settle_nothing_when_all_zero():
    assert simplify_debts({1: 0, 2: 0}) == []


def test_settle_unbalanced_input():
    with pytest.raises(InvariantViolation):
        simplify_debts({1: 100, 2: -50})


@pytest.mark.parametrize("from_id, to_id, amount", [(1, 1, 100), (1, 2, 0), (1, 2, -5)])
def test_validate_settlement_rejects(from_id, to_id, amount):
    with pytest.raises(ValidationError):
        validate_settlement(from_id, to_id, amount)


def test_settlement_summary():
    members = [member(1, "Alice"), member(2, "Bob"), member(3, "Carol")]
    expenses = [
        Expense(
            id=1,
            group_id=1,
            amount_cents=30000,
            category="Accommodation",
            paid_by=1,
            date=WHEN,
            split_policy=SplitPolicy.EQUAL,
            splits=split_equal(30000, [1, 2, 3]),
        )
    ]
    settlements = [Settlement(id=1, group_id=1, from_member_id=2, to_member_id=1, amount_cents=10000, date=WHEN)]

    summary = settlement_summary(members, expenses, settlements)

    assert summary.total_expenses == 30000
    assert summary.total_settled == 10000
    assert summary.total_owed == 10000
    assert summary.pending == [Transfer(from_member=3, to_member=1, amount_cents=10000)]
    assert summary.settled_members == 1
    assert summary.unsettled_members == 2
    assert summary.per_person_average == 10000
    assert summary.is_fully_settled is False


def test_settlement_summary_empty_group():
    summary = settlement_summary([member(1, "Alice")], [], [])
    assert summary.is_fully_settled is True
    assert summary.pending == []


def test_settlement_history_newest_first():
    older = Settlement(id=1, group_id=1, from_member_id=2, to_member_id=1, amount_cents=100, date=WHEN)
    newer = Settlement(
        id=2, group_id=1, from_member_id=9, to_member_id=1, amount_cents=50, date=WHEN + timedelta(days=1)
    )

    history = settlement_history([older, newer], [member(1, "Alice"), member(2, "Bob")])

    assert [entry.settlement.id for entry in history] == [2, 1]
    assert history[0].from_name == "Unknown"
    assert history[1].from_name == "Bob"
    assert history[1].to_name == "Alice"


def test_settlement_reminders():
    reminders = settlement_reminders(
        [Transfer(from_member=3, to_member=1, amount_cents=123450)],
        [member(1, "Alice"), member(3, "Carol")],
    )

    assert len(reminders) == 1
    assert reminders[0].message == "Carol owes ₹1,234.50 to Alice"
    assert reminders[0].kind == "settlement_reminder"
