from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class GroupStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class SplitPolicy(str, Enum):
    EQUAL = "equal"
    CUSTOM = "custom"
    PERCENTAGE = "percentage"


class SettlementMethod(str, Enum):
    CASH = "cash"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


@dataclass(slots=True)
class Budget:
    total_cents: int = 0
    categories: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class Group:
    id: int
    name: str
    created_by: int
    status: GroupStatus = GroupStatus.ACTIVE
    destination: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[Budget] = None

    @property
    def is_archived(self) -> bool:
        return self.status == GroupStatus.ARCHIVED


@dataclass(slots=True)
class Member:
    id: int
    group_id: int
    display_name: str
    is_admin: bool = False
    user_id: Optional[int] = None


@dataclass(slots=True)
class Split:
    member_id: int
    amount_cents: int
    percentage: Optional[Decimal] = None


@dataclass(slots=True)
class Expense:
    id: int
    group_id: int
    amount_cents: int
    category: str
    paid_by: int
    date: datetime
    split_policy: SplitPolicy
    splits: list[Split]
    description: str = ""
    added_by: Optional[int] = None

    def splits_total(self) -> int:
        return sum(split.amount_cents for split in self.splits)


@dataclass(slots=True)
class Settlement:
    id: int
    group_id: int
    from_member_id: int
    to_member_id: int
    amount_cents: int
    date: datetime
    notes: str = ""
    method: SettlementMethod = SettlementMethod.CASH
    reference: Optional[str] = None
    recorded_by: Optional[int] = None
