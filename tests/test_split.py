from decimal import Decimal

import pytest

from tripledger.db.models import Split, SplitPolicy
from tripledger.errors import SplitMismatch, ValidationError
from tripledger.services.split import compute_splits, split_equal, validate_splits


def amounts(splits):
    return [split.amount_cents for split in splits]


def test_split_equal_even():
    splits = compute_splits(30000, [1, 2, 3], SplitPolicy.EQUAL)
    assert splits == [Split(1, 10000), Split(2, 10000), Split(3, 10000)]


def test_split_equal_last_absorbs_remainder():
    splits = split_equal(1000, [1, 2, 3])
    assert amounts(splits) == [333, 333, 334]


def test_split_equal_never_negative():
    splits = split_equal(7, list(range(1, 11)))
    assert sum(amounts(splits)) == 7
    assert min(amounts(splits)) == 0
    assert splits[-1].amount_cents == 7


@pytest.mark.parametrize("amount", [1, 99, 100, 1001, 33333, 250000])
@pytest.mark.parametrize("count", [1, 2, 3, 7])
def test_split_equal_sums_to_amount(amount, count):
    assert sum(amounts(split_equal(amount, list(range(count))))) == amount


def test_split_custom_mismatch():
    with pytest.raises(SplitMismatch):
        compute_splits(10000, [1, 2], "custom", {1: 6000, 2: 3999})


def test_split_custom_exact():
    splits = compute_splits(10000, [1, 2], "custom", {1: 6000, 2: 4000})
    assert amounts(splits) == [6000, 4000]


def test_split_custom_requires_every_participant():
    with pytest.raises(ValidationError):
        compute_splits(10000, [1, 2], "custom", {1: 10000})


def test_split_custom_rejects_negative_share():
    with pytest.raises(ValidationError):
        compute_splits(10000, [1, 2], "custom", {1: 12000, 2: -2000})


@pytest.mark.parametrize(
    "params",
    [
        {1: 5000.9, 2: 5000},
        {1: 5000.9, 2: 4999.6},
        {1: Decimal("5000.5"), 2: 4999},
        {1: True, 2: 9999},
        {1: "lots", 2: 5000},
    ],
)
def test_split_custom_rejects_fractional_cents(params):
    with pytest.raises(ValidationError) as exc:
        compute_splits(10000, [1, 2], "custom", params)
    assert not isinstance(exc.value, SplitMismatch)
    assert "whole number of cents" in str(exc.value)


def test_split_custom_accepts_integral_values():
    splits = compute_splits(10000, [1, 2], "custom", {1: 6000.0, 2: Decimal("4000")})
    assert amounts(splits) == [6000, 4000]
    assert all(type(split.amount_cents) is int for split in splits)


def test_split_percentage():
    splits = compute_splits(25000, [1, 2], SplitPolicy.PERCENTAGE, {1: 60, 2: 40})
    assert amounts(splits) == [15000, 10000]
    assert sum(amounts(splits)) == 25000
    assert splits[0].percentage == Decimal("60")
    assert splits[1].percentage == Decimal("40")


def test_split_percentage_residual_goes_to_last():
    splits = compute_splits(10000, [1, 2, 3], "percentage", {1: "33.33", 2: "33.33", 3: "33.34"})
    assert amounts(splits) == [3333, 3333, 3334]


def test_split_percentage_must_total_hundred():
    with pytest.raises(SplitMismatch):
        compute_splits(10000, [1, 2], "percentage", {1: 60, 2: 30})


def test_split_percentage_within_tolerance():
    splits = compute_splits(9000, [1, 2, 3], "percentage", {1: "33.33", 2: "33.33", 3: "33.33"})
    assert sum(amounts(splits)) == 9000


@pytest.mark.parametrize(
    "amount, participants",
    [
        (0, [1]),
        (-100, [1, 2]),
        (100, []),
        (100, [1, 1]),
    ],
)
def test_split_rejects_bad_input(amount, participants):
    with pytest.raises(ValidationError):
        compute_splits(amount, participants)


def test_split_unknown_policy():
    with pytest.raises(ValidationError):
        compute_splits(100, [1], "shares")


def test_split_custom_without_params():
    with pytest.raises(ValidationError):
        compute_splits(100, [1], SplitPolicy.CUSTOM)


def test_validate_splits():
    validate_splits(300, [Split(1, 100), Split(2, 200)])
    with pytest.raises(SplitMismatch):
        validate_splits(300, [Split(1, 100), Split(2, 199)])
    with pytest.raises(ValidationError):
        validate_splits(300, [])
