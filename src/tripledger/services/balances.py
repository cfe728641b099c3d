from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from tripledger.db.models import Expense, Member, Settlement
from tripledger.errors import InvariantViolation


def calculate_balances(
    members: Sequence[Member],
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
) -> dict[int, int]:
    """Derive each member's signed position in cents from the full ledger.

    Positive means the group owes the member, negative means the member owes
    the group. Entries that reference someone outside ``members`` are ignored
    for that side only, which is why removing a member must wait until their
    balance is zero.
    """
    balances: dict[int, int] = {member.id: 0 for member in members}

    for expense in expenses:
        if expense.paid_by in balances:
            balances[expense.paid_by] += expense.amount_cents
        for split in expense.splits:
            if split.member_id in balances:
                balances[split.member_id] -= split.amount_cents

    for settlement in settlements:
        if settlement.from_member_id in balances:
            balances[settlement.from_member_id] += settlement.amount_cents
        if settlement.to_member_id in balances:
            balances[settlement.to_member_id] -= settlement.amount_cents

    check_conservation(balances)
    return balances


def check_conservation(balances: Mapping[int, int]) -> None:
    total = sum(balances.values())
    if total != 0:
        raise InvariantViolation(f"Balances sum to {total} cents instead of 0")


def member_balance(balances: Mapping[int, int], member_id: int) -> int:
    return balances.get(member_id, 0)


def is_fully_settled(balances: Mapping[int, int]) -> bool:
    return all(balance == 0 for balance in balances.values())
