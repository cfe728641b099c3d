from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from tripledger.db.models import Budget, Expense, Group, Member, Settlement
from tripledger.errors import ValidationError
from tripledger.utils.money import format_amount

DEFAULT_WARNING_PERCENT = 80
DEFAULT_TRIP_DAYS = 3

BUDGET_TEMPLATES: dict[str, dict[str, object]] = {
    "domestic_short": {
        "name": "Domestic Short Trip (2-3 days)",
        "categories": {
            "Accommodation": 30,
            "Transport": 25,
            "Food & Dining": 25,
            "Activities": 10,
            "Shopping": 5,
            "Other": 5,
        },
    },
    "domestic_long": {
        "name": "Domestic Long Trip (1 week+)",
        "categories": {
            "Accommodation": 35,
            "Transport": 20,
            "Food & Dining": 25,
            "Activities": 10,
            "Shopping": 5,
            "Other": 5,
        },
    },
    "international": {
        "name": "International Trip",
        "categories": {
            "Accommodation": 30,
            "Transport": 25,
            "Food & Dining": 20,
            "Activities": 15,
            "Shopping": 5,
            "Other": 5,
        },
    },
    "adventure": {
        "name": "Adventure Trip",
        "categories": {
            "Accommodation": 25,
            "Transport": 20,
            "Food & Dining": 20,
            "Activities": 25,
            "Shopping": 5,
            "Other": 5,
        },
    },
    "business": {
        "name": "Business Trip",
        "categories": {
            "Accommodation": 40,
            "Transport": 30,
            "Food & Dining": 20,
            "Activities": 5,
            "Shopping": 0,
            "Other": 5,
        },
    },
}

# Per-person daily rates in cents.
DAILY_RATES: dict[str, dict[str, int]] = {
    "budget": {"accommodation": 150_000, "food": 50_000, "transport": 30_000, "activities": 20_000},
    "moderate": {"accommodation": 350_000, "food": 100_000, "transport": 60_000, "activities": 50_000},
    "luxury": {"accommodation": 800_000, "food": 250_000, "transport": 150_000, "activities": 150_000},
}

INTERNATIONAL_MULTIPLIER = 3

# (max projected percent, score), checked in order.
HEALTH_BANDS = [(80, 100), (90, 80), (100, 60), (110, 40), (120, 20)]


class WarningLevel(str, Enum):
    WARNING = "warning"
    OVERSPEND = "overspend"


class CategoryState(str, Enum):
    OK = "ok"
    WARNING = "warning"
    OVER = "over"
    UNBUDGETED = "unbudgeted"


@dataclass(slots=True)
class BudgetWarning:
    level: WarningLevel
    message: str
    amount_cents: int
    category: Optional[str] = None


@dataclass(slots=True)
class BudgetStatus:
    budget_cents: int
    spent: int
    remaining: int
    progress: float
    by_category: dict[str, int]
    category_budgets: dict[str, int]
    warnings: list[BudgetWarning] = field(default_factory=list)


@dataclass(slots=True)
class CategoryProgress:
    budget_cents: int
    spent: int
    remaining: int
    progress: float
    state: CategoryState


@dataclass(slots=True)
class BudgetTracking:
    status: BudgetStatus
    categories: dict[str, CategoryProgress]
    daily_rate: int
    days_elapsed: int
    days_remaining: int
    projected_total: int
    projected_over_under: int
    health_score: int


@dataclass(slots=True)
class BudgetEstimate:
    total_cents: int
    per_person: int
    per_day: int
    per_person_per_day: int
    category_budgets: dict[str, int]
    breakdown: dict[str, int]


@dataclass(slots=True)
class TripSummary:
    name: str
    destination: Optional[str]
    duration_days: int
    member_count: int
    expense_count: int
    total_expenses: int
    budget_cents: int
    budget_variance: int
    per_person: int
    per_day: int
    per_person_per_day: int
    settlement_count: int
    total_settled: int
    is_fully_settled: bool
    categories: dict[str, CategoryProgress] = field(default_factory=dict)


def _percent(part: int, whole: int) -> float:
    return part * 100 / whole if whole > 0 else 0.0


def _share(amount_cents: int, percent: int) -> int:
    return (amount_cents * percent + 50) // 100


def _level(spent: int, limit: int, warning_percent: int) -> Optional[WarningLevel]:
    if limit <= 0:
        return None
    if spent >= limit:
        return WarningLevel.OVERSPEND
    if spent * 100 >= limit * warning_percent:
        return WarningLevel.WARNING
    return None


def spent_by_category(expenses: Iterable[Expense]) -> dict[str, int]:
    result: dict[str, int] = {}
    for expense in expenses:
        result[expense.category] = result.get(expense.category, 0) + expense.amount_cents
    return result


def budget_status(
    budget: Optional[Budget],
    expenses: Iterable[Expense],
    warning_percent: int = DEFAULT_WARNING_PERCENT,
    currency: str = "INR",
) -> BudgetStatus:
    """Compare spending against the group budget and its category envelopes.

    A warning is raised once spending reaches ``warning_percent`` of a limit
    and an overspend once it reaches the limit itself. Neither ``budget`` nor
    ``expenses`` is modified.
    """
    budget = budget or Budget()
    expenses = list(expenses)
    spent = sum(expense.amount_cents for expense in expenses)
    by_category = spent_by_category(expenses)
    remaining = budget.total_cents - spent
    progress = _percent(spent, budget.total_cents)

    warnings: list[BudgetWarning] = []
    level = _level(spent, budget.total_cents, warning_percent)
    if level == WarningLevel.OVERSPEND:
        warnings.append(
            BudgetWarning(
                level=level,
                message=f"Budget exceeded by {format_amount(-remaining, currency)}",
                amount_cents=-remaining,
            )
        )
    elif level == WarningLevel.WARNING:
        warnings.append(BudgetWarning(level=level, message=f"{progress:.0f}% of budget used", amount_cents=remaining))

    for category, limit in budget.categories.items():
        category_spent = by_category.get(category, 0)
        level = _level(category_spent, limit, warning_percent)
        if level == WarningLevel.OVERSPEND:
            warnings.append(
                BudgetWarning(
                    level=level,
                    message=f"{category} budget exceeded",
                    amount_cents=category_spent - limit,
                    category=category,
                )
            )
        elif level == WarningLevel.WARNING:
            warnings.append(
                BudgetWarning(
                    level=level,
                    message=f"{category}: {_percent(category_spent, limit):.0f}% used",
                    amount_cents=limit - category_spent,
                    category=category,
                )
            )

    return BudgetStatus(
        budget_cents=budget.total_cents,
        spent=spent,
        remaining=remaining,
        progress=progress,
        by_category=by_category,
        category_budgets=dict(budget.categories),
        warnings=warnings,
    )


def category_progress(status: BudgetStatus, warning_percent: int = DEFAULT_WARNING_PERCENT) -> dict[str, CategoryProgress]:
    result: dict[str, CategoryProgress] = {}
    for category, limit in status.category_budgets.items():
        spent = status.by_category.get(category, 0)
        level = _level(spent, limit, warning_percent)
        if level == WarningLevel.OVERSPEND:
            state = CategoryState.OVER
        elif level == WarningLevel.WARNING:
            state = CategoryState.WARNING
        else:
            state = CategoryState.OK
        result[category] = CategoryProgress(
            budget_cents=limit,
            spent=spent,
            remaining=limit - spent,
            progress=_percent(spent, limit),
            state=state,
        )

    for category, spent in status.by_category.items():
        if category not in result:
            result[category] = CategoryProgress(
                budget_cents=0,
                spent=spent,
                remaining=-spent,
                progress=100.0,
                state=CategoryState.UNBUDGETED,
            )
    return result


def health_score(budget_cents: int, projected_total: int) -> int:
    if budget_cents <= 0:
        return 100
    for max_percent, score in HEALTH_BANDS:
        if projected_total * 100 <= budget_cents * max_percent:
            return score
    return 0


def _days(delta_seconds: float) -> int:
    return math.ceil(delta_seconds / 86400)


def budget_tracking(
    status: BudgetStatus,
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    now: datetime,
    warning_percent: int = DEFAULT_WARNING_PERCENT,
) -> BudgetTracking:
    """Project the final spend of a trip from its spending rate so far."""
    days_elapsed = 0
    days_remaining = 0
    daily_rate = 0

    if start_date is not None:
        end = end_date or now
        days_elapsed = max(1, _days((now - start_date).total_seconds()))
        days_remaining = max(0, _days((end - now).total_seconds()))
        daily_rate = status.spent // days_elapsed

    projected = status.spent + daily_rate * days_remaining if days_remaining > 0 else status.spent

    return BudgetTracking(
        status=status,
        categories=category_progress(status, warning_percent),
        daily_rate=daily_rate,
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        projected_total=projected,
        projected_over_under=projected - status.budget_cents,
        health_score=health_score(status.budget_cents, projected),
    )


def apply_budget_template(template_key: str, total_cents: int) -> Budget:
    template = BUDGET_TEMPLATES.get(template_key)
    if template is None:
        raise ValidationError(f"Invalid template: {template_key}")
    if total_cents < 0:
        raise ValidationError("Budget total must not be negative")
    percentages: Mapping[str, int] = template["categories"]  # type: ignore[assignment]
    return Budget(
        total_cents=total_cents,
        categories={category: _share(total_cents, pct) for category, pct in percentages.items()},
    )


def estimate_budget(
    duration_days: int = DEFAULT_TRIP_DAYS,
    member_count: int = 2,
    level: str = "moderate",
    destination: str = "domestic",
    include_activities: bool = True,
    include_shopping: bool = True,
) -> BudgetEstimate:
    if duration_days <= 0 or member_count <= 0:
        raise ValidationError("Duration and member count must be positive")

    rates = DAILY_RATES.get(level, DAILY_RATES["moderate"])
    multiplier = INTERNATIONAL_MULTIPLIER if destination == "international" else 1
    person_days = duration_days * member_count * multiplier

    breakdown = {
        "accommodation": rates["accommodation"] * person_days,
        "food": rates["food"] * person_days,
        "transport": rates["transport"] * person_days,
        "activities": rates["activities"] * person_days if include_activities else 0,
    }
    base = sum(breakdown.values())
    breakdown["shopping"] = base // 10 if include_shopping else 0
    breakdown["contingency"] = base // 10
    total = base + breakdown["shopping"] + breakdown["contingency"]

    template_key = "international" if destination == "international" else "domestic_short"
    return BudgetEstimate(
        total_cents=total,
        per_person=total // member_count,
        per_day=total // duration_days,
        per_person_per_day=total // member_count // duration_days,
        category_budgets=apply_budget_template(template_key, total).categories,
        breakdown=breakdown,
    )


def trip_duration(start_date: Optional[datetime], end_date: Optional[datetime]) -> int:
    """Trip length in days, counting both the first and the last day."""
    if start_date is None or end_date is None:
        return 0
    return _days((end_date - start_date).total_seconds()) + 1


def _round_div(amount_cents: int, divisor: int) -> int:
    # Half-up division on whole cents.
    return (2 * amount_cents + divisor) // (2 * divisor)


def trip_summary(
    group: Group,
    members: Sequence[Member],
    expenses: Sequence[Expense],
    settlements: Sequence[Settlement],
    tracking: BudgetTracking,
    fully_settled: bool,
) -> TripSummary:
    total = tracking.status.spent
    budget_cents = tracking.status.budget_cents
    duration = trip_duration(group.start_date, group.end_date)
    member_count = len(members)

    return TripSummary(
        name=group.name,
        destination=group.destination,
        duration_days=duration,
        member_count=member_count,
        expense_count=len(expenses),
        total_expenses=total,
        budget_cents=budget_cents,
        budget_variance=total - budget_cents if budget_cents > 0 else 0,
        per_person=_round_div(total, member_count) if member_count else 0,
        per_day=_round_div(total, duration) if duration else total,
        per_person_per_day=_round_div(total, duration * member_count) if duration and member_count else 0,
        settlement_count=len(settlements),
        total_settled=sum(settlement.amount_cents for settlement in settlements),
        is_fully_settled=fully_settled,
        categories=tracking.categories,
    )
