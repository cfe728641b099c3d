from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Optional, Protocol, Sequence
from zoneinfo import ZoneInfo

from tripledger.config import Settings
from tripledger.db.models import (
    Budget,
    Expense,
    Group,
    GroupStatus,
    Member,
    Settlement,
    SettlementMethod,
    Split,
    SplitPolicy,
)
from tripledger.errors import InvariantViolation, NotFoundError, PreconditionError, ValidationError
from tripledger.logging import get_logger
from tripledger.services import budget as budget_service
from tripledger.services.authz import assert_group_admin, assert_group_member, is_group_admin
from tripledger.services.balances import calculate_balances, is_fully_settled, member_balance
from tripledger.services.insights import SpendingInsights, filter_expenses, spending_insights
from tripledger.services.settlement import (
    SettlementEntry,
    SettlementReminder,
    SettlementSummary,
    Transfer,
    settlement_history,
    settlement_reminders,
    settlement_summary,
    simplify_debts,
    validate_settlement,
)
from tripledger.services.split import compute_splits
from tripledger.utils.money import parse_amount
from tripledger.utils.parse import normalize_date


class LedgerRepository(Protocol):
    async def create_group(
        self,
        name: str,
        created_by: int,
        destination: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> Group: ...

    async def get_group(self, group_id: int) -> Optional[Group]: ...

    async def update_group(
        self,
        group_id: int,
        name: str,
        destination: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> Group: ...

    async def set_group_status(self, group_id: int, status: GroupStatus) -> None: ...

    async def set_budget(self, group_id: int, budget: Budget) -> None: ...

    async def list_members(self, group_id: int) -> list[Member]: ...

    async def get_member_by_user(self, group_id: int, user_id: int) -> Optional[Member]: ...

    async def add_member(
        self,
        group_id: int,
        display_name: str,
        is_admin: bool,
        user_id: Optional[int],
    ) -> Member: ...

    async def delete_member(self, member_id: int) -> None: ...

    async def list_expenses(self, group_id: int) -> list[Expense]: ...

    async def get_expense(self, expense_id: int) -> Optional[Expense]: ...

    async def add_expense(
        self,
        group_id: int,
        amount_cents: int,
        category: str,
        paid_by: int,
        date: datetime,
        split_policy: SplitPolicy,
        splits: Sequence[Split],
        description: str,
        added_by: int,
    ) -> Expense: ...

    async def delete_expense(self, expense_id: int) -> None: ...

    async def list_settlements(self, group_id: int) -> list[Settlement]: ...

    async def add_settlement(
        self,
        group_id: int,
        from_member_id: int,
        to_member_id: int,
        amount_cents: int,
        date: datetime,
        notes: str,
        method: SettlementMethod,
        reference: Optional[str],
        recorded_by: int,
    ) -> Settlement: ...


@dataclass(slots=True)
class LedgerSnapshot:
    group: Group
    members: list[Member]
    expenses: list[Expense]
    settlements: list[Settlement]


class TripLedgerService:
    """Group operations on top of a storage backend.

    Every read rebuilds balances from the full ledger snapshot; nothing derived
    is cached or written back.
    """

    def __init__(
        self,
        repo: LedgerRepository,
        currency: str = "INR",
        warning_percent: int = budget_service.DEFAULT_WARNING_PERCENT,
        tz: ZoneInfo = ZoneInfo("UTC"),
    ) -> None:
        self.repo = repo
        self.currency = currency
        self.warning_percent = warning_percent
        self.tz = tz
        self._log = get_logger(__name__)

    @classmethod
    def from_settings(cls, repo: LedgerRepository, settings: Settings) -> "TripLedgerService":
        return cls(
            repo,
            currency=settings.currency,
            warning_percent=settings.budget_warning_percent,
            tz=settings.zoneinfo,
        )

    async def _require_group(self, group_id: int) -> Group:
        group = await self.repo.get_group(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        return group

    async def _require_active_group(self, group_id: int, action: str) -> Group:
        group = await self._require_group(group_id)
        if group.is_archived:
            raise PreconditionError(f"Cannot {action} archived groups")
        return group

    async def snapshot(self, group_id: int) -> LedgerSnapshot:
        group = await self._require_group(group_id)
        members = await self.repo.list_members(group_id)
        expenses = await self.repo.list_expenses(group_id)
        settlements = await self.repo.list_settlements(group_id)
        return LedgerSnapshot(group=group, members=members, expenses=expenses, settlements=settlements)

    def _balances(self, snap: LedgerSnapshot) -> dict[int, int]:
        try:
            return calculate_balances(snap.members, snap.expenses, snap.settlements)
        except InvariantViolation:
            self._log.error("ledger.invariant_violation", group_id=snap.group.id)
            raise

    def _settle(self, snap: LedgerSnapshot, balances: Mapping[int, int]) -> list[Transfer]:
        try:
            return simplify_debts(balances, snap.members)
        except InvariantViolation:
            self._log.error("ledger.simplify_failed", group_id=snap.group.id)
            raise

    @staticmethod
    def _resolve_amount(value: int | str | Decimal) -> int:
        """Integers are taken as cents; strings and Decimals as major units ("12.50")."""
        if isinstance(value, (bool, float)):
            raise ValidationError(f"Unsupported amount: {value!r}")
        if isinstance(value, int):
            return value
        try:
            return parse_amount(value)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def _resolve_date(self, value: datetime | str | None) -> datetime:
        if value is None:
            return datetime.now(timezone.utc)
        try:
            return normalize_date(value, self.tz)
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc

    async def create_group(
        self,
        user_id: int,
        name: str,
        display_name: str,
        destination: Optional[str] = None,
        start_date: datetime | str | None = None,
        end_date: datetime | str | None = None,
    ) -> Group:
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        start = self._resolve_date(start_date) if start_date is not None else None
        end = self._resolve_date(end_date) if end_date is not None else None
        if start and end and end < start:
            raise ValidationError("Trip cannot end before it starts")

        group = await self.repo.create_group(name.strip(), user_id, destination, start, end)
        await self.repo.add_member(group.id, display_name.strip() or name.strip(), True, user_id)
        self._log.info("group.created", group_id=group.id, user_id=user_id)
        return group

    async def update_group(
        self,
        group_id: int,
        actor_user_id: int,
        name: Optional[str] = None,
        destination: Optional[str] = None,
        start_date: datetime | str | None = None,
        end_date: datetime | str | None = None,
    ) -> Group:
        """Change the trip details; arguments left as ``None`` keep their value."""
        await assert_group_admin(self.repo, group_id, actor_user_id)
        group = await self._require_active_group(group_id, "update")
        if name is not None and not name.strip():
            raise ValidationError("Group name is required")

        start = self._resolve_date(start_date) if start_date is not None else group.start_date
        end = self._resolve_date(end_date) if end_date is not None else group.end_date
        if start and end and end < start:
            raise ValidationError("Trip cannot end before it starts")

        updated = await self.repo.update_group(
            group_id,
            name.strip() if name is not None else group.name,
            destination if destination is not None else group.destination,
            start,
            end,
        )
        self._log.info("group.updated", group_id=group_id)
        return updated

    async def is_admin(self, group_id: int, user_id: int) -> bool:
        return await is_group_admin(self.repo, group_id, user_id)

    async def archive_group(self, group_id: int, actor_user_id: int) -> None:
        await self._require_group(group_id)
        await assert_group_admin(self.repo, group_id, actor_user_id)
        await self.repo.set_group_status(group_id, GroupStatus.ARCHIVED)
        self._log.info("group.archived", group_id=group_id)

    async def add_member(
        self,
        group_id: int,
        actor_user_id: int,
        display_name: str,
        user_id: Optional[int] = None,
        is_admin: bool = False,
    ) -> Member:
        await assert_group_admin(self.repo, group_id, actor_user_id)
        await self._require_active_group(group_id, "add members to")
        if not display_name or not display_name.strip():
            raise ValidationError("Member name is required")
        if user_id is not None and await self.repo.get_member_by_user(group_id, user_id) is not None:
            raise PreconditionError("Member already exists in this group")

        member = await self.repo.add_member(group_id, display_name.strip(), is_admin, user_id)
        self._log.info("member.added", group_id=group_id, member_id=member.id)
        return member

    async def remove_member(self, group_id: int, actor_user_id: int, member_id: int) -> None:
        await assert_group_admin(self.repo, group_id, actor_user_id)
        snap = await self.snapshot(group_id)
        member = next((m for m in snap.members if m.id == member_id), None)
        if member is None:
            raise NotFoundError("Member not found")

        balance = member_balance(self._balances(snap), member_id)
        if balance != 0:
            raise PreconditionError("Member must settle balance before leaving")
        if member.is_admin and sum(1 for m in snap.members if m.is_admin) == 1:
            raise PreconditionError("Cannot remove the only admin")

        await self.repo.delete_member(member_id)
        self._log.info("member.removed", group_id=group_id, member_id=member_id)

    async def add_expense(
        self,
        group_id: int,
        actor_user_id: int,
        amount: int | str | Decimal,
        description: str,
        paid_by: int,
        participants: Sequence[int],
        policy: SplitPolicy | str = SplitPolicy.EQUAL,
        params: Mapping[int, object] | None = None,
        category: str = "Other",
        date: datetime | str | None = None,
    ) -> Expense:
        actor = await assert_group_member(self.repo, group_id, actor_user_id)
        await self._require_active_group(group_id, "add expenses to")
        amount_cents = self._resolve_amount(amount)
        if not description or not description.strip():
            raise ValidationError("Description is required")

        member_ids = {member.id for member in await self.repo.list_members(group_id)}
        if paid_by not in member_ids:
            raise ValidationError("Paid by member is not part of this group")
        outsiders = [member_id for member_id in participants if member_id not in member_ids]
        if outsiders:
            raise ValidationError(f"Participants not in this group: {outsiders}")

        splits = compute_splits(amount_cents, participants, policy, params)
        expense = await self.repo.add_expense(
            group_id=group_id,
            amount_cents=amount_cents,
            category=category.strip() or "Other",
            paid_by=paid_by,
            date=self._resolve_date(date),
            split_policy=SplitPolicy(policy),
            splits=splits,
            description=description.strip(),
            added_by=actor.id,
        )
        self._log.info("expense.added", group_id=group_id, expense_id=expense.id, amount_cents=amount_cents)
        return expense

    async def delete_expense(self, group_id: int, actor_user_id: int, expense_id: int) -> None:
        actor = await assert_group_member(self.repo, group_id, actor_user_id)
        expense = await self.repo.get_expense(expense_id)
        if expense is None or expense.group_id != group_id:
            raise NotFoundError("Expense not found")
        if expense.added_by != actor.id:
            raise PreconditionError("Only the person who added the expense can delete it")

        await self.repo.delete_expense(expense_id)
        self._log.info("expense.deleted", group_id=group_id, expense_id=expense_id)

    async def record_settlement(
        self,
        group_id: int,
        actor_user_id: int,
        from_member_id: int,
        to_member_id: int,
        amount: int | str | Decimal,
        date: datetime | str | None = None,
        notes: str = "",
        method: SettlementMethod | str = SettlementMethod.CASH,
        reference: Optional[str] = None,
    ) -> Settlement:
        # Archived groups still accept repayments.
        actor = await assert_group_member(self.repo, group_id, actor_user_id)
        amount_cents = self._resolve_amount(amount)
        validate_settlement(from_member_id, to_member_id, amount_cents)
        try:
            method = SettlementMethod(method)
        except ValueError as exc:
            raise ValidationError(f"Unknown settlement method: {method}") from exc

        member_ids = {member.id for member in await self.repo.list_members(group_id)}
        if from_member_id not in member_ids or to_member_id not in member_ids:
            raise ValidationError("Both members must belong to this group")

        settlement = await self.repo.add_settlement(
            group_id=group_id,
            from_member_id=from_member_id,
            to_member_id=to_member_id,
            amount_cents=amount_cents,
            date=self._resolve_date(date),
            notes=(notes or "").strip(),
            method=method,
            reference=reference,
            recorded_by=actor.id,
        )
        self._log.info("settlement.recorded", group_id=group_id, settlement_id=settlement.id)
        return settlement

    async def set_budget(self, group_id: int, actor_user_id: int, budget: Budget) -> None:
        await assert_group_admin(self.repo, group_id, actor_user_id)
        if budget.total_cents < 0 or any(limit < 0 for limit in budget.categories.values()):
            raise ValidationError("Budget amounts must not be negative")
        await self.repo.set_budget(group_id, budget)

    async def apply_budget_template(
        self,
        group_id: int,
        actor_user_id: int,
        template_key: str,
        total_cents: int,
    ) -> Budget:
        budget = budget_service.apply_budget_template(template_key, total_cents)
        await self.set_budget(group_id, actor_user_id, budget)
        return budget

    async def balances(self, group_id: int) -> dict[int, int]:
        return self._balances(await self.snapshot(group_id))

    async def is_fully_settled(self, group_id: int) -> bool:
        return is_fully_settled(await self.balances(group_id))

    async def settle_up(self, group_id: int) -> list[Transfer]:
        snap = await self.snapshot(group_id)
        return self._settle(snap, self._balances(snap))

    async def summary(self, group_id: int) -> SettlementSummary:
        snap = await self.snapshot(group_id)
        balances = self._balances(snap)
        return settlement_summary(
            snap.members,
            snap.expenses,
            snap.settlements,
            balances=balances,
            pending=self._settle(snap, balances),
        )

    async def history(self, group_id: int) -> list[SettlementEntry]:
        snap = await self.snapshot(group_id)
        return settlement_history(snap.settlements, snap.members)

    async def reminders(self, group_id: int) -> list[SettlementReminder]:
        snap = await self.snapshot(group_id)
        transfers = self._settle(snap, self._balances(snap))
        return settlement_reminders(transfers, snap.members, self.currency)

    async def expenses(
        self,
        group_id: int,
        category: Optional[str] = None,
        member_id: Optional[int] = None,
        start: datetime | str | None = None,
        end: datetime | str | None = None,
    ) -> list[Expense]:
        """Expenses newest first, narrowed to a category, a member or a date window."""
        await self._require_group(group_id)
        return filter_expenses(
            await self.repo.list_expenses(group_id),
            category=category,
            member_id=member_id,
            start=self._resolve_date(start) if start is not None else None,
            end=self._resolve_date(end) if end is not None else None,
        )

    async def budget(self, group_id: int) -> budget_service.BudgetStatus:
        group = await self._require_group(group_id)
        expenses = await self.repo.list_expenses(group_id)
        return budget_service.budget_status(group.budget, expenses, self.warning_percent, self.currency)

    def _tracking(
        self, group: Group, expenses: Sequence[Expense], now: Optional[datetime]
    ) -> budget_service.BudgetTracking:
        status = budget_service.budget_status(group.budget, expenses, self.warning_percent, self.currency)
        return budget_service.budget_tracking(
            status,
            group.start_date,
            group.end_date,
            now or datetime.now(timezone.utc),
            self.warning_percent,
        )

    async def budget_tracking(self, group_id: int, now: Optional[datetime] = None) -> budget_service.BudgetTracking:
        group = await self._require_group(group_id)
        return self._tracking(group, await self.repo.list_expenses(group_id), now)

    async def estimate_budget(
        self,
        group_id: int,
        level: str = "moderate",
        destination: str = "domestic",
        include_activities: bool = True,
        include_shopping: bool = True,
    ) -> budget_service.BudgetEstimate:
        group = await self._require_group(group_id)
        members = await self.repo.list_members(group_id)
        duration = budget_service.trip_duration(group.start_date, group.end_date)
        return budget_service.estimate_budget(
            duration_days=duration or budget_service.DEFAULT_TRIP_DAYS,
            member_count=len(members),
            level=level,
            destination=destination,
            include_activities=include_activities,
            include_shopping=include_shopping,
        )

    async def trip_summary(self, group_id: int, now: Optional[datetime] = None) -> budget_service.TripSummary:
        snap = await self.snapshot(group_id)
        return budget_service.trip_summary(
            snap.group,
            snap.members,
            snap.expenses,
            snap.settlements,
            self._tracking(snap.group, snap.expenses, now),
            is_fully_settled(self._balances(snap)),
        )

    async def insights(self, group_id: int) -> SpendingInsights:
        snap = await self.snapshot(group_id)
        return spending_insights(snap.expenses, snap.members)
