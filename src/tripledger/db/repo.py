from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Sequence

import asyncpg

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
from tripledger.logging import get_logger, sql_logger
from tripledger.services.split import validate_splits


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                sql_logger.info("sql.transaction.begin")
                yield conn

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def _budget_from_row(row: Mapping[str, Any]) -> Optional[Budget]:
    total = row.get("budget_total_cents")
    raw = row.get("budget_categories")
    if total is None and not raw:
        return None
    categories = json.loads(raw) if isinstance(raw, str) else dict(raw or {})
    return Budget(total_cents=int(total or 0), categories={k: int(v) for k, v in categories.items()})


def group_from_row(row: Mapping[str, Any]) -> Group:
    return Group(
        id=row["id"],
        name=row["name"],
        created_by=row["created_by"],
        status=GroupStatus(row["status"]),
        destination=row.get("destination"),
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        budget=_budget_from_row(row),
    )


def member_from_row(row: Mapping[str, Any]) -> Member:
    return Member(
        id=row["id"],
        group_id=row["group_id"],
        display_name=row["display_name"],
        is_admin=row["is_admin"],
        user_id=row.get("user_id"),
    )


def split_from_row(row: Mapping[str, Any]) -> Split:
    percentage = row.get("percentage")
    return Split(
        member_id=row["member_id"],
        amount_cents=row["amount_cents"],
        percentage=Decimal(percentage) if percentage is not None else None,
    )


def expense_from_row(row: Mapping[str, Any], splits: Iterable[Split]) -> Expense:
    return Expense(
        id=row["id"],
        group_id=row["group_id"],
        amount_cents=row["amount_cents"],
        category=row["category"],
        paid_by=row["paid_by"],
        date=row["spent_at"],
        split_policy=SplitPolicy(row["split_policy"]),
        splits=list(splits),
        description=row.get("description") or "",
        added_by=row.get("added_by"),
    )


def settlement_from_row(row: Mapping[str, Any]) -> Settlement:
    return Settlement(
        id=row["id"],
        group_id=row["group_id"],
        from_member_id=row["from_member_id"],
        to_member_id=row["to_member_id"],
        amount_cents=row["amount_cents"],
        date=row["settled_at"],
        notes=row.get("notes") or "",
        method=SettlementMethod(row.get("method") or SettlementMethod.CASH.value),
        reference=row.get("reference"),
        recorded_by=row.get("recorded_by"),
    )


class TripLedgerRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def create_group(
        self,
        name: str,
        created_by: int,
        destination: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> Group:
        row = await self.db.fetchrow(
            """
            INSERT INTO trip_groups (name, created_by, destination, start_date, end_date)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            name,
            created_by,
            destination,
            start_date,
            end_date,
        )
        assert row is not None
        return group_from_row(dict(row))

    async def get_group(self, group_id: int) -> Optional[Group]:
        row = await self.db.fetchrow("SELECT * FROM trip_groups WHERE id = $1", group_id)
        return group_from_row(dict(row)) if row else None

    async def update_group(
        self,
        group_id: int,
        name: str,
        destination: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> Group:
        row = await self.db.fetchrow(
            """
            UPDATE trip_groups
            SET name = $1, destination = $2, start_date = $3, end_date = $4, updated_at = now()
            WHERE id = $5
            RETURNING *
            """,
            name,
            destination,
            start_date,
            end_date,
            group_id,
        )
        assert row is not None
        return group_from_row(dict(row))

    async def set_group_status(self, group_id: int, status: GroupStatus) -> None:
        await self.db.execute(
            "UPDATE trip_groups SET status = $1, updated_at = now() WHERE id = $2",
            status.value,
            group_id,
        )

    async def set_budget(self, group_id: int, budget: Budget) -> None:
        await self.db.execute(
            """
            UPDATE trip_groups
            SET budget_total_cents = $1, budget_categories = $2::jsonb, updated_at = now()
            WHERE id = $3
            """,
            budget.total_cents,
            json.dumps(budget.categories),
            group_id,
        )

    async def list_members(self, group_id: int) -> list[Member]:
        rows = await self.db.fetch(
            "SELECT * FROM trip_members WHERE group_id = $1 ORDER BY id",
            group_id,
        )
        return [member_from_row(dict(row)) for row in rows]

    async def get_member_by_user(self, group_id: int, user_id: int) -> Optional[Member]:
        row = await self.db.fetchrow(
            "SELECT * FROM trip_members WHERE group_id = $1 AND user_id = $2",
            group_id,
            user_id,
        )
        return member_from_row(dict(row)) if row else None

    async def add_member(
        self,
        group_id: int,
        display_name: str,
        is_admin: bool,
        user_id: Optional[int],
    ) -> Member:
        row = await self.db.fetchrow(
            """
            INSERT INTO trip_members (group_id, display_name, is_admin, user_id)
            VALUES ($1, $2, $3, $4)
            RETURNING *
            """,
            group_id,
            display_name,
            is_admin,
            user_id,
        )
        assert row is not None
        return member_from_row(dict(row))

    async def delete_member(self, member_id: int) -> None:
        await self.db.execute("DELETE FROM trip_members WHERE id = $1", member_id)

    async def _splits_for(self, expense_ids: Sequence[int]) -> dict[int, list[Split]]:
        if not expense_ids:
            return {}
        rows = await self.db.fetch(
            """
            SELECT * FROM trip_expense_splits
            WHERE expense_id = ANY($1::bigint[])
            ORDER BY expense_id, position
            """,
            list(expense_ids),
        )
        result: dict[int, list[Split]] = {}
        for row in rows:
            result.setdefault(row["expense_id"], []).append(split_from_row(dict(row)))
        return result

    async def list_expenses(self, group_id: int) -> list[Expense]:
        rows = await self.db.fetch(
            "SELECT * FROM trip_expenses WHERE group_id = $1 ORDER BY spent_at DESC, id DESC",
            group_id,
        )
        splits = await self._splits_for([row["id"] for row in rows])
        return [expense_from_row(dict(row), splits.get(row["id"], [])) for row in rows]

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        row = await self.db.fetchrow("SELECT * FROM trip_expenses WHERE id = $1", expense_id)
        if row is None:
            return None
        splits = await self._splits_for([expense_id])
        return expense_from_row(dict(row), splits.get(expense_id, []))

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
    ) -> Expense:
        validate_splits(amount_cents, splits)
        # Expense and its splits land together or not at all.
        async with self.db.transaction() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO trip_expenses
                    (group_id, amount_cents, category, paid_by, spent_at, split_policy, description, added_by)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING *
                """,
                group_id,
                amount_cents,
                category,
                paid_by,
                date,
                split_policy.value,
                description,
                added_by,
            )
            assert row is not None
            await conn.executemany(
                """
                INSERT INTO trip_expense_splits (expense_id, position, member_id, amount_cents, percentage)
                VALUES ($1, $2, $3, $4, $5)
                """,
                [
                    (row["id"], position, split.member_id, split.amount_cents, split.percentage)
                    for position, split in enumerate(splits)
                ],
            )
        return expense_from_row(dict(row), splits)

    async def delete_expense(self, expense_id: int) -> None:
        await self.db.execute("DELETE FROM trip_expenses WHERE id = $1", expense_id)

    async def list_settlements(self, group_id: int) -> list[Settlement]:
        rows = await self.db.fetch(
            "SELECT * FROM trip_settlements WHERE group_id = $1 ORDER BY settled_at DESC, id DESC",
            group_id,
        )
        return [settlement_from_row(dict(row)) for row in rows]

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
    ) -> Settlement:
        row = await self.db.fetchrow(
            """
            INSERT INTO trip_settlements
                (group_id, from_member_id, to_member_id, amount_cents, settled_at, notes, method, reference, recorded_by)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING *
            """,
            group_id,
            from_member_id,
            to_member_id,
            amount_cents,
            date,
            notes,
            method.value,
            reference,
            recorded_by,
        )
        assert row is not None
        return settlement_from_row(dict(row))
