from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

from tripledger.db.models import Expense, Member, Settlement
from tripledger.errors import InvariantViolation, ValidationError
from tripledger.services.balances import calculate_balances
from tripledger.utils.money import format_amount

UNKNOWN_MEMBER = "Unknown"


@dataclass(slots=True)
class Transfer:
    from_member: int
    to_member: int
    amount_cents: int


@dataclass(slots=True)
class SettlementSummary:
    total_expenses: int
    total_settled: int
    total_owed: int
    pending: list[Transfer]
    settlement_count: int
    member_count: int
    settled_members: int
    unsettled_members: int
    is_fully_settled: bool
    per_person_average: int


@dataclass(slots=True)
class SettlementEntry:
    settlement: Settlement
    from_name: str
    to_name: str


@dataclass(slots=True)
class SettlementReminder:
    from_name: str
    to_name: str
    amount_cents: int
    message: str
    kind: str = "settlement_reminder"


def validate_settlement(from_member_id: int, to_member_id: int, amount_cents: int) -> None:
    if amount_cents <= 0:
        raise ValidationError("Amount must be greater than zero")
    if from_member_id == to_member_id:
        raise ValidationError("Payer and receiver cannot be the same")


def _ordered_ids(balances: Mapping[int, int], members: Optional[Sequence[Member]]) -> list[int]:
    if not members:
        return list(balances)
    ordered = [member.id for member in members if member.id in balances]
    seen = set(ordered)
    ordered.extend(member_id for member_id in balances if member_id not in seen)
    return ordered


def simplify_debts(balances: Mapping[int, int], members: Optional[Sequence[Member]] = None) -> List[Transfer]:
    """Reduce net balances to a short list of debtor -> creditor transfers.

    Greedy matching of the largest creditor against the largest debtor. Equal
    amounts keep their order from ``members`` (or from ``balances`` when no
    members are given) because the sort is stable. The result has at most
    ``min(creditors, debtors)`` transfers; cycles are not cancelled first, so
    the plan is not guaranteed minimal for every topology.
    """
    creditors: list[tuple[int, int]] = []
    debtors: list[tuple[int, int]] = []

    for member_id in _ordered_ids(balances, members):
        balance = balances[member_id]
        if balance > 0:
            creditors.append((member_id, balance))
        elif balance < 0:
            debtors.append((member_id, -balance))

    creditors.sort(key=lambda x: x[1], reverse=True)
    debtors.sort(key=lambda x: x[1], reverse=True)

    transfers: list[Transfer] = []
    i, j = 0, 0

    while i < len(creditors) and j < len(debtors):
        cred_id, cred_amount = creditors[i]
        debt_id, debt_amount = debtors[j]

        transfer_amount = min(cred_amount, debt_amount)
        transfers.append(Transfer(from_member=debt_id, to_member=cred_id, amount_cents=transfer_amount))

        cred_amount -= transfer_amount
        debt_amount -= transfer_amount

        if cred_amount == 0:
            i += 1
        else:
            creditors[i] = (cred_id, cred_amount)

        if debt_amount == 0:
            j += 1
        else:
            debtors[j] = (debt_id, debt_amount)

    if i < len(creditors) or j < len(debtors):
        raise InvariantViolation("Creditors and debtors did not settle together; balances are not conserved")

    return transfers


def settlement_summary(
    members: Sequence[Member],
    expenses: Sequence[Expense],
    settlements: Sequence[Settlement],
    balances: Optional[Mapping[int, int]] = None,
    pending: Optional[List[Transfer]] = None,
) -> SettlementSummary:
    """Totals and outstanding transfers for a group.

    ``balances`` and ``pending`` are derived from the records when not given.
    """
    if balances is None:
        balances = calculate_balances(members, expenses, settlements)
    if pending is None:
        pending = simplify_debts(balances, members)
    total_expenses = sum(expense.amount_cents for expense in expenses)
    total_owed = sum(-balance for balance in balances.values() if balance < 0)
    settled = sum(1 for balance in balances.values() if balance == 0)

    return SettlementSummary(
        total_expenses=total_expenses,
        total_settled=sum(settlement.amount_cents for settlement in settlements),
        total_owed=total_owed,
        pending=pending,
        settlement_count=len(settlements),
        member_count=len(members),
        settled_members=settled,
        unsettled_members=len(balances) - settled,
        is_fully_settled=total_owed == 0,
        per_person_average=total_expenses // len(members) if members else 0,
    )


def _names(members: Iterable[Member]) -> dict[int, str]:
    return {member.id: member.display_name for member in members}


def settlement_history(settlements: Iterable[Settlement], members: Iterable[Member]) -> list[SettlementEntry]:
    names = _names(members)
    ordered = sorted(settlements, key=lambda s: s.date, reverse=True)
    return [
        SettlementEntry(
            settlement=settlement,
            from_name=names.get(settlement.from_member_id, UNKNOWN_MEMBER),
            to_name=names.get(settlement.to_member_id, UNKNOWN_MEMBER),
        )
        for settlement in ordered
    ]


def settlement_reminders(
    transfers: Iterable[Transfer],
    members: Iterable[Member],
    currency: str = "INR",
) -> list[SettlementReminder]:
    names = _names(members)
    reminders: list[SettlementReminder] = []
    for transfer in transfers:
        from_name = names.get(transfer.from_member, UNKNOWN_MEMBER)
        to_name = names.get(transfer.to_member, UNKNOWN_MEMBER)
        reminders.append(
            SettlementReminder(
                from_name=from_name,
                to_name=to_name,
                amount_cents=transfer.amount_cents,
                message=f"{from_name} owes {format_amount(transfer.amount_cents, currency)} to {to_name}",
            )
        )
    return reminders
