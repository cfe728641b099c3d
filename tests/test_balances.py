from datetime import datetime, timezone

import pytest

from tripledger.db.models import Expense, Member, Settlement, Split, SplitPolicy
from tripledger.errors import InvariantViolation
from tripledger.services.balances import calculate_balances, is_fully_settled, member_balance
from tripledger.services.split import split_equal

WHEN = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

MEMBERS = [
    Member(id=1, group_id=1, display_name="Alice", is_admin=True),
    Member(id=2, group_id=1, display_name="Bob"),
    Member(id=3, group_id=1, display_name="Carol"),
]


def make_expense(expense_id, paid_by, amount_cents, splits):
    return Expense(
        id=expense_id,
        group_id=1,
        amount_cents=amount_cents,
        category="Food",
        paid_by=paid_by,
        date=WHEN,
        split_policy=SplitPolicy.CUSTOM,
        splits=splits,
    )


def make_settlement(settlement_id, from_member, to_member, amount_cents):
    return Settlement(
        id=settlement_id,
        group_id=1,
        from_member_id=from_member,
        to_member_id=to_member,
        amount_cents=amount_cents,
        date=WHEN,
    )


def test_equal_expense_balances():
    expense = make_expense(1, 1, 30000, split_equal(30000, [1, 2, 3]))

    balances = calculate_balances(MEMBERS, [expense], [])

    assert balances == {1: 20000, 2: -10000, 3: -10000}


def test_settlement_moves_balances():
    expense = make_expense(1, 1, 30000, split_equal(30000, [1, 2, 3]))
    before = calculate_balances(MEMBERS, [expense], [])

    after = calculate_balances(MEMBERS, [expense], [make_settlement(1, 2, 1, 10000)])

    assert after == {1: 10000, 2: 0, 3: -10000}
    assert after[2] - before[2] == 10000
    assert after[1] - before[1] == -10000
    assert after[3] == before[3]


def test_empty_ledger_is_settled():
    balances = calculate_balances(MEMBERS, [], [])

    assert balances == {1: 0, 2: 0, 3: 0}
    assert is_fully_settled(balances)


def test_conservation_across_many_records():
    expenses = [
        make_expense(1, 1, 1001, split_equal(1001, [1, 2, 3])),
        make_expense(2, 2, 4550, [Split(1, 1000), Split(3, 3550)]),
        make_expense(3, 3, 999, split_equal(999, [2, 3])),
    ]
    settlements = [make_settlement(1, 3, 2, 1234), make_settlement(2, 1, 3, 50)]

    balances = calculate_balances(MEMBERS, expenses, settlements)

    assert sum(balances.values()) == 0
    assert not is_fully_settled(balances)


def test_removed_member_with_zero_balance_keeps_conservation():
    expense = make_expense(1, 1, 2000, [Split(1, 1000), Split(3, 1000)])
    settlement = make_settlement(1, 3, 1, 1000)

    balances = calculate_balances(MEMBERS[:2], [expense], [settlement])

    assert balances == {1: 0, 2: 0}


def test_corrupted_expense_is_an_invariant_violation():
    expense = make_expense(1, 1, 3000, [Split(2, 1000), Split(3, 1000)])

    with pytest.raises(InvariantViolation):
        calculate_balances(MEMBERS, [expense], [])


def test_calculate_balances_is_idempotent():
    expenses = [make_expense(1, 2, 999, split_equal(999, [1, 2, 3]))]
    settlements = [make_settlement(1, 1, 2, 333)]

    first = calculate_balances(MEMBERS, expenses, settlements)
    second = calculate_balances(MEMBERS, expenses, settlements)

    assert first == second


def test_member_balance_defaults_to_zero():
    assert member_balance({1: 500}, 1) == 500
    assert member_balance({1: 500}, 9) == 0
