"""Tests for the target allocator."""

from __future__ import annotations

import pytest

from targets.allocation import TargetAllocator
from targets.errors import TargetValidationError
from tests.utils import confirmed, make_order, temp


def test_remaining_subtracts_all_targets() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=1.0)

    remaining = allocator.remaining(order, [confirmed(1, 0.3), temp("t1", 0.2)])

    assert remaining == pytest.approx(0.5)


def test_remaining_excluding_edited_target() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=1.0)
    targets = [confirmed(1, 0.3), confirmed(2, 0.6)]

    assert allocator.remaining(order, targets, excluding_key="2") == pytest.approx(0.7)


def test_remaining_never_negative() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=0.5)

    assert allocator.remaining(order, [confirmed(1, 0.8)]) == 0.0


def test_create_rejected_below_minimum_lot() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=1.0, min_lot_size=0.10)

    with pytest.raises(TargetValidationError) as excinfo:
        allocator.check_create(order, [], 0.05, 0, 0)

    assert "0.1" in excinfo.value.message
    assert excinfo.value.field == "lot"


def test_create_rejected_above_remaining() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=1.0)

    with pytest.raises(TargetValidationError) as excinfo:
        allocator.check_create(order, [confirmed(1, 0.8)], 0.3, 0, 0)

    assert excinfo.value.message == "Lot size exceeds remaining lot (0.20)."


def test_create_rejected_without_lot() -> None:
    allocator = TargetAllocator()

    with pytest.raises(TargetValidationError, match="required"):
        allocator.check_create(make_order(), [], 0, 0, 0)


def test_create_accepts_exact_fill_despite_float_noise() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=0.3)

    allocator.check_create(order, [confirmed(1, 0.1)], 0.2, 0, 0)


def test_create_reports_sl_tp_errors() -> None:
    allocator = TargetAllocator()
    order = make_order(reference_price=1.2)

    with pytest.raises(TargetValidationError) as excinfo:
        allocator.check_create(order, [], 0.1, 1.25, 0)

    assert excinfo.value.field == "stop_loss"

    with pytest.raises(TargetValidationError) as excinfo:
        allocator.check_create(order, [], 0.1, 0, 1.15)

    assert excinfo.value.field == "take_profit"


def test_update_may_grow_up_to_ceiling_minus_others() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=1.0)
    targets = [confirmed(1, 0.3), confirmed(2, 0.2)]

    allocator.check_update(order, targets, "2", 0.7, 0, 0)

    with pytest.raises(TargetValidationError):
        allocator.check_update(order, targets, "2", 0.75, 0, 0)


def test_next_default_lot_uses_step_precision() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=1.0, lot_step=0.01)

    assert allocator.next_default_lot(order, [confirmed(1, 0.25)]) == "0.75"
    assert allocator.next_default_lot(make_order(lot_size=2.0, lot_step=1), []) == "2"


def test_can_split_requires_lot_above_minimum() -> None:
    assert TargetAllocator.can_split(make_order(lot_size=1.0, min_lot_size=0.1))
    assert not TargetAllocator.can_split(make_order(lot_size=0.1, min_lot_size=0.1))
    assert not TargetAllocator.can_split(make_order(lot_size=1.0, min_lot_size=0.0))


def test_within_ceiling() -> None:
    allocator = TargetAllocator()
    order = make_order(lot_size=1.0)

    assert allocator.within_ceiling(order, [confirmed(1, 0.7), confirmed(2, 0.3)])
    assert not allocator.within_ceiling(order, [confirmed(1, 0.7), confirmed(2, 0.31)])
