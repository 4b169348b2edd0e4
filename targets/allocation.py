"""Target lot allocation against the parent order's lot size."""

from __future__ import annotations

from collections.abc import Sequence

from core.contracts import Order, Target
from targets.errors import TargetValidationError
from targets.identity import LOT_TOLERANCE, get_target_key
from targets.numeric import count_decimals, format_with_decimals, to_number_or_zero
from targets.validation import validate_sl_tp


class TargetAllocator:
    """Enforce the allocation ceiling and minimum lot for an order's targets.

    The sum of target lots may never exceed the order lot (within ``tolerance``),
    and every target must cover at least the instrument's minimum lot.
    """

    def __init__(self, tolerance: float = LOT_TOLERANCE) -> None:
        """Initialize allocator.

        Args:
            tolerance: Float slack allowed on the allocation ceiling
        """
        self.tolerance = tolerance

    def allocated(
        self,
        targets: Sequence[Target],
        excluding_key: str | None = None,
    ) -> float:
        return sum(
            to_number_or_zero(target.lot_size)
            for index, target in enumerate(targets)
            if excluding_key is None or get_target_key(target, index) != excluding_key
        )

    def remaining(
        self,
        order: Order,
        targets: Sequence[Target],
        excluding_key: str | None = None,
    ) -> float:
        """Lot still free for targets, optionally ignoring one target being edited.

        Args:
            order: Parent order
            targets: Current targets of the order
            excluding_key: Derived key of a target to leave out of the sum

        Returns:
            Remaining lot, never negative
        """
        return max(0.0, order.lot_size - self.allocated(targets, excluding_key))

    def check_create(
        self,
        order: Order,
        targets: Sequence[Target],
        lot: float,
        stop_loss: float,
        take_profit: float,
    ) -> None:
        """Raise TargetValidationError if a new target would break allocation rules."""

        self._check(order, self.remaining(order, targets), lot, stop_loss, take_profit)

    def check_update(
        self,
        order: Order,
        targets: Sequence[Target],
        target_key: str,
        lot: float,
        stop_loss: float,
        take_profit: float,
    ) -> None:
        """Like check_create, with headroom computed without the edited target."""

        remaining = self.remaining(order, targets, excluding_key=target_key)
        self._check(order, remaining, lot, stop_loss, take_profit)

    def next_default_lot(self, order: Order, targets: Sequence[Target]) -> str:
        """Remaining lot formatted to the lot step's precision, to seed the create form."""

        return format_with_decimals(self.remaining(order, targets), count_decimals(order.lot_step))

    def within_ceiling(self, order: Order, targets: Sequence[Target]) -> bool:
        return self.allocated(targets) <= order.lot_size + self.tolerance

    @staticmethod
    def can_split(order: Order) -> bool:
        """Multi-target needs a known minimum lot strictly below the order lot."""

        return order.min_lot_size > 0 and order.lot_size > order.min_lot_size

    def _check(
        self,
        order: Order,
        remaining: float,
        lot: float,
        stop_loss: float,
        take_profit: float,
    ) -> None:
        if lot <= 0:
            raise TargetValidationError("Lot size is required.", field="lot")
        if order.min_lot_size > 0 and lot < order.min_lot_size - self.tolerance:
            raise TargetValidationError(
                f"Lot size must be >= {order.min_lot_size:g}.", field="lot"
            )
        if lot > remaining + self.tolerance:
            shown = format_with_decimals(remaining, count_decimals(order.lot_step))
            raise TargetValidationError(f"Lot size exceeds remaining lot ({shown}).", field="lot")

        check = validate_sl_tp(order, stop_loss, take_profit)
        if check.ok:
            return
        if check.sl_error is not None:
            raise TargetValidationError(check.sl_error, field="stop_loss")
        if check.tp_error is not None:
            raise TargetValidationError(check.tp_error, field="take_profit")
