from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from tripledger.db.models import Expense, Member
from tripledger.services.budget import spent_by_category


@dataclass(slots=True)
class MemberSpending:
    member_id: int
    name: str
    paid: int = 0
    share: int = 0


@dataclass(slots=True)
class CategoryShare:
    name: str
    amount_cents: int
    percentage: int


@dataclass(slots=True)
class SpendingInsights:
    has_data: bool
    total_spent: int = 0
    expense_count: int = 0
    average_expense: int = 0
    biggest_expense: Optional[Expense] = None
    top_category: Optional[CategoryShare] = None
    top_spender: Optional[MemberSpending] = None
    per_person: int = 0
    categories: list[CategoryShare] = field(default_factory=list)
    members: list[MemberSpending] = field(default_factory=list)
    daily: list[tuple[str, int]] = field(default_factory=list)


def filter_expenses(
    expenses: Iterable[Expense],
    category: Optional[str] = None,
    member_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[Expense]:
    result = []
    for expense in expenses:
        if category is not None and expense.category != category:
            continue
        if member_id is not None and expense.paid_by != member_id and all(
            split.member_id != member_id for split in expense.splits
        ):
            continue
        if start is not None and expense.date < start:
            continue
        if end is not None and expense.date > end:
            continue
        result.append(expense)
    return result


def member_spending(expenses: Iterable[Expense], members: Sequence[Member]) -> list[MemberSpending]:
    spending = {member.id: MemberSpending(member_id=member.id, name=member.display_name) for member in members}
    for expense in expenses:
        if expense.paid_by in spending:
            spending[expense.paid_by].paid += expense.amount_cents
        for split in expense.splits:
            if split.member_id in spending:
                spending[split.member_id].share += split.amount_cents
    return list(spending.values())


def spending_insights(expenses: Sequence[Expense], members: Sequence[Member]) -> SpendingInsights:
    if not expenses:
        return SpendingInsights(has_data=False)

    total = sum(expense.amount_cents for expense in expenses)
    categories = sorted(
        (
            CategoryShare(name=name, amount_cents=amount, percentage=round(amount * 100 / total))
            for name, amount in spent_by_category(expenses).items()
        ),
        key=lambda c: c.amount_cents,
        reverse=True,
    )
    spenders = member_spending(expenses, members)

    daily: dict[str, int] = {}
    for expense in expenses:
        key = expense.date.date().isoformat()
        daily[key] = daily.get(key, 0) + expense.amount_cents

    return SpendingInsights(
        has_data=True,
        total_spent=total,
        expense_count=len(expenses),
        average_expense=total // len(expenses),
        biggest_expense=max(expenses, key=lambda e: e.amount_cents),
        top_category=categories[0],
        top_spender=max(spenders, key=lambda s: s.paid) if spenders else None,
        per_person=total // len(members) if members else 0,
        categories=categories,
        members=spenders,
        daily=sorted(daily.items()),
    )
