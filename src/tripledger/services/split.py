from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Mapping, Sequence

from tripledger.db.models import Split, SplitPolicy
from tripledger.errors import SplitMismatch, ValidationError

HUNDRED = Decimal(100)
PERCENT_TOLERANCE = Decimal("0.01")


def _check_participants(amount_cents: int, participants: Sequence[int]) -> None:
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be positive")
    if not participants:
        raise ValidationError("participants must not be empty")
    if len(set(participants)) != len(participants):
        raise ValidationError("participants must be unique")


def _absorb_residual(amount_cents: int, shares: list[int]) -> list[int]:
    # The last participant takes whatever rounding left over.
    shares[-1] = amount_cents - sum(shares[:-1])
    if shares[-1] < 0:
        raise SplitMismatch(expected=amount_cents, actual=sum(shares[:-1]))
    return shares


def _whole_cents(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"custom amount must be a whole number of cents: {value!r}")
    try:
        cents = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"custom amount must be a whole number of cents: {value!r}") from exc
    if not cents.is_finite() or cents != cents.to_integral_value():
        raise ValidationError(f"custom amount must be a whole number of cents: {value!r}")
    return int(cents)


def split_equal(amount_cents: int, participants: Sequence[int]) -> list[Split]:
    _check_participants(amount_cents, participants)

    base_share = amount_cents // len(participants)
    shares = _absorb_residual(amount_cents, [base_share for _ in participants])
    return [Split(member_id=member_id, amount_cents=share) for member_id, share in zip(participants, shares)]


def split_custom(amount_cents: int, participants: Sequence[int], amounts: Mapping[int, int]) -> list[Split]:
    _check_participants(amount_cents, participants)
    if set(amounts) != set(participants):
        raise ValidationError("custom amounts must be given for every participant and nobody else")

    shares = [_whole_cents(amounts[member_id]) for member_id in participants]
    if any(share < 0 for share in shares):
        raise ValidationError("custom amounts must be non-negative")

    total = sum(shares)
    if total != amount_cents:
        raise SplitMismatch(expected=amount_cents, actual=total)
    return [Split(member_id=member_id, amount_cents=share) for member_id, share in zip(participants, shares)]


def split_percentage(
    amount_cents: int,
    participants: Sequence[int],
    percentages: Mapping[int, Decimal | int | str],
) -> list[Split]:
    _check_participants(amount_cents, participants)
    if set(percentages) != set(participants):
        raise ValidationError("percentages must be given for every participant and nobody else")

    pcts = [Decimal(str(percentages[member_id])) for member_id in participants]
    if any(pct < 0 for pct in pcts):
        raise ValidationError("percentages must be non-negative")

    total_pct = sum(pcts, Decimal(0))
    if abs(total_pct - HUNDRED) > PERCENT_TOLERANCE:
        raise SplitMismatch(expected="100", actual=str(total_pct), unit="percentages")

    decimal_amount = Decimal(amount_cents)
    shares = [int((decimal_amount * pct / HUNDRED).quantize(Decimal("1"), rounding=ROUND_DOWN)) for pct in pcts]
    shares = _absorb_residual(amount_cents, shares)

    return [
        Split(member_id=member_id, amount_cents=share, percentage=pct)
        for member_id, share, pct in zip(participants, shares, pcts)
    ]


def compute_splits(
    amount_cents: int,
    participants: Sequence[int],
    policy: SplitPolicy | str = SplitPolicy.EQUAL,
    params: Mapping[int, object] | None = None,
) -> list[Split]:
    """Allocate ``amount_cents`` among ``participants`` according to ``policy``.

    ``params`` holds the per-participant cents for a custom split or the
    per-participant percentages for a percentage split; it is ignored for
    equal splits. The returned splits follow the order of ``participants``
    and always sum to exactly ``amount_cents``.
    """
    try:
        policy = SplitPolicy(policy)
    except ValueError as exc:
        raise ValidationError(f"Unknown split policy: {policy}") from exc

    if policy == SplitPolicy.EQUAL:
        return split_equal(amount_cents, participants)

    if params is None:
        raise ValidationError(f"{policy.value} split requires per-participant values")

    if policy == SplitPolicy.CUSTOM:
        return split_custom(amount_cents, participants, params)  # type: ignore[arg-type]
    return split_percentage(amount_cents, participants, params)  # type: ignore[arg-type]


def validate_splits(amount_cents: int, splits: Sequence[Split]) -> None:
    """Reject a split list that does not add up to the expense amount."""
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be positive")
    if not splits:
        raise ValidationError("at least one split participant is required")
    total = sum(split.amount_cents for split in splits)
    if total != amount_cents:
        raise SplitMismatch(expected=amount_cents, actual=total)
