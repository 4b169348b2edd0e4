"""Target lifecycle: open, create, update, delete and hub reconciliation per order."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Protocol

import structlog

from core.contracts import Order, Target
from targets.allocation import TargetAllocator
from targets.book import TargetBook
from targets.errors import MissingTargetIdError, TargetError, TargetValidationError
from targets.identity import (
    LOT_TOLERANCE,
    PRICE_TOLERANCE,
    get_target_id,
    get_target_key,
    new_client_temp_id,
)
from targets.merge import merge_targets_from_hub
from targets.numeric import to_number_or_zero


class TargetsApiProto(Protocol):
    async def create_target(self, payload: dict[str, Any]) -> Any: ...

    async def update_target(self, target_id: int | str, payload: dict[str, Any]) -> Any: ...

    async def delete_target(self, target_id: int | str) -> Any: ...


@dataclass(frozen=True)
class OperationResult:
    ok: bool
    targets: tuple[Target, ...] = ()
    target: Target | None = None
    error: str | None = None
    field: str | None = None


@dataclass(frozen=True)
class TargetsChanged:
    order_id: str
    targets: tuple[Target, ...]
    remaining_lot: float | None
    default_lot: str


Listener = Callable[[TargetsChanged], None]


class TargetManager:
    """Owns every order's target list and the operations that change it.

    User operations validate against the latest list, persist through the REST
    API and then patch the list through :class:`TargetBook`. Operations on one
    order are serialised by a per-order lock so two of them can never validate
    against the same headroom. Hub merges are synchronous and may land while an
    operation awaits the API; every patch is therefore computed from the list as
    it is when the response arrives.

    Failures never escape: they are recorded in ``error`` and returned in the
    :class:`OperationResult`.
    """

    def __init__(
        self,
        api: TargetsApiProto,
        *,
        account_id: int | None = None,
        allocator: TargetAllocator | None = None,
        book: TargetBook | None = None,
        lot_tolerance: float = LOT_TOLERANCE,
        price_tolerance: float = PRICE_TOLERANCE,
        temp_id_factory: Callable[[], str] = new_client_temp_id,
    ) -> None:
        self.api = api
        self.account_id = account_id
        self.allocator = allocator or TargetAllocator(tolerance=lot_tolerance)
        self.book = book or TargetBook()
        self.lot_tolerance = lot_tolerance
        self.price_tolerance = price_tolerance
        self.error: str | None = None
        self.error_field: str | None = None
        self._temp_id_factory = temp_id_factory
        self._orders: dict[str, Order] = {}
        self._default_lots: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[Listener] = []
        self._deferred: set[asyncio.Task[None]] = set()
        self._log = structlog.get_logger("targets.manager")

    # ------------------------------------------------------------------ reads

    def targets_for(self, order_id: str | int) -> tuple[Target, ...]:
        return self.book.get(order_id)

    def default_lot(self, order_id: str | int) -> str:
        return self._default_lots.get(str(order_id), "")

    def saving(self, order_id: str | int) -> bool:
        lock = self._locks.get(str(order_id))
        return lock is not None and lock.locked()

    def remaining_lot(self, order: Order, excluding_key: str | None = None) -> float:
        return self.allocator.remaining(order, self.book.get(order.order_id), excluding_key)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------- operations

    def open_targets(self, order: Order | None) -> OperationResult:
        """Prepare the target list of ``order``.

        The targets carried by ``order`` only seed a list the book does not hold yet.
        Once a list exists, hub data reaches it through :meth:`apply_hub_orders` alone,
        so reopening with a rebuilt order never replays an older snapshot.
        """

        if order is None or not order.order_id:
            return self._fail(None, TargetError("Missing order id."), "target_open_refused")
        if not self.allocator.can_split(order):
            message = (
                "Multi target is only available when order lot is greater than the "
                f"minimum lot. Order lot: {order.lot_size:g}, min lot: "
                f"{order.min_lot_size:g}."
            )
            return self._fail(order.order_id, TargetError(message), "target_open_refused")

        seeded = order.order_id in self.book
        self._orders[order.order_id] = order
        self.book.ensure(order.order_id)
        self.error = None
        self.error_field = None
        if order.targets and not seeded:
            self._merge_hub_targets(order)
        targets = self.book.get(order.order_id)
        self._publish(order.order_id)
        return OperationResult(ok=True, targets=targets)

    async def create_target(
        self,
        order: Order,
        lot_size: Any,
        stop_loss: Any = 0.0,
        take_profit: Any = 0.0,
    ) -> OperationResult:
        """Validate, insert an optimistic entry, persist, then confirm or roll back.

        Args:
            order: Parent order
            lot_size: Requested lot (text-field values are coerced)
            stop_loss: Stop-loss price, 0 when unset
            take_profit: Take-profit price, 0 when unset

        Returns:
            OperationResult carrying the confirmed or pending target on success
        """
        order_id = order.order_id
        lot = to_number_or_zero(lot_size)
        sl = to_number_or_zero(stop_loss)
        tp = to_number_or_zero(take_profit)

        async with self._lock(order_id):
            self._orders[order_id] = order
            try:
                self.allocator.check_create(order, self.book.get(order_id), lot, sl, tp)
            except TargetValidationError as exc:
                return self._fail(order_id, exc, "target_validation_failed")

            temp = Target(
                id=None,
                order_id=order_id,
                lot_size=lot,
                stop_loss=sl,
                take_profit=tp,
                entry_price=order.entry_price,
                account_id=self._account_for(order),
                client_temp_id=self._temp_id_factory(),
                pending=True,
            )
            temp_key = get_target_key(temp)
            self.book.apply(order_id, lambda current: [*current, temp])
            self.error = None
            self.error_field = None
            self._publish(order_id)

            try:
                created = await self.api.create_target(temp.to_create_payload())
            except Exception as exc:
                # roll back the optimistic entry if a merge has not already replaced it
                self.book.apply(order_id, lambda current: _without_key(current, temp_key))
                self._publish(order_id)
                return self._fail(
                    order_id, _as_target_error(exc, "Failed to create target."), "target_api_failed"
                )

            created_id = get_target_id(created) if isinstance(created, Mapping) else None
            if created_id is None:
                self._log.info("target_created_unconfirmed", order_id=order_id, key=temp_key)
                result = temp
            else:
                result = replace(temp.confirm(created_id), raw=dict(created))
                self.book.apply(
                    order_id, lambda current: _confirm_temp(current, temp_key, result)
                )
                self._log.info("target_created", order_id=order_id, target_id=created_id)

            self._publish(order_id)
            return OperationResult(ok=True, targets=self.book.get(order_id), target=result)

    async def update_target(
        self,
        order: Order,
        target_ref: int | str | None,
        *,
        lot_size: Any = None,
        stop_loss: Any = None,
        take_profit: Any = None,
    ) -> OperationResult:
        """Resize or re-level a confirmed target; omitted fields keep their value."""

        order_id = order.order_id
        async with self._lock(order_id):
            self._orders[order_id] = order
            try:
                target = self._find_confirmed(order_id, target_ref)
            except TargetError as exc:
                return self._fail(order_id, exc, "target_update_refused")

            lot = to_number_or_zero(target.lot_size if lot_size is None else lot_size)
            sl = to_number_or_zero(target.stop_loss if stop_loss is None else stop_loss)
            tp = to_number_or_zero(target.take_profit if take_profit is None else take_profit)
            target_key = get_target_key(target)
            try:
                self.allocator.check_update(order, self.book.get(order_id), target_key, lot, sl, tp)
            except TargetValidationError as exc:
                return self._fail(order_id, exc, "target_validation_failed")

            updated = target.with_levels(lot_size=lot, stop_loss=sl, take_profit=tp)
            self.error = None
            self.error_field = None
            try:
                await self.api.update_target(target.id, updated.to_update_payload())  # type: ignore[arg-type]
            except Exception as exc:
                return self._fail(
                    order_id, _as_target_error(exc, "Failed to update target."), "target_api_failed"
                )

            self.book.apply(
                order_id,
                lambda current: [
                    t.with_levels(lot_size=lot, stop_loss=sl, take_profit=tp)
                    if t.id is not None and str(t.id) == target_key
                    else t
                    for t in current
                ],
            )
            self._log.info("target_updated", order_id=order_id, target_id=target.id, lot=lot)
            self._publish(order_id)
            return OperationResult(ok=True, targets=self.book.get(order_id), target=updated)

    async def remove_target(self, order: Order, target_ref: int | str | None) -> OperationResult:
        """Delete a confirmed target on the server, then drop it locally."""

        order_id = order.order_id
        async with self._lock(order_id):
            self._orders[order_id] = order
            try:
                target = self._find_confirmed(order_id, target_ref)
            except TargetError as exc:
                return self._fail(order_id, exc, "target_delete_refused")

            target_key = get_target_key(target)
            self.error = None
            self.error_field = None
            try:
                await self.api.delete_target(target.id)  # type: ignore[arg-type]
            except Exception as exc:
                return self._fail(
                    order_id, _as_target_error(exc, "Failed to delete target."), "target_api_failed"
                )

            self.book.mark_deleted(order_id, target_key)
            self.book.apply(
                order_id,
                lambda current: [t for t in current if t.id is None or str(t.id) != target_key],
            )
            self._log.info("target_deleted", order_id=order_id, target_id=target.id)
            self._publish(order_id)
            return OperationResult(ok=True, targets=self.book.get(order_id), target=target)

    def remove_local_temp_target(self, order_id: str | int, temp_key: str) -> OperationResult:
        """Abandon an unconfirmed entry locally; no request is sent.

        Confirmed targets are refused: dropping them here would free lot the server
        still allocates.
        """
        key = str(order_id)
        before = self.book.get(key)
        for index, target in enumerate(before):
            if target.id is not None and get_target_key(target, index) == str(temp_key):
                return self._fail(
                    key,
                    MissingTargetIdError("Confirmed targets must be deleted on the server."),
                    "target_cancel_refused",
                )
        after = self.book.apply(key, lambda current: _without_key(current, str(temp_key)))
        if len(after) != len(before):
            self._log.info("target_temp_removed", order_id=key, key=str(temp_key))
            self._publish(key)
        return OperationResult(ok=True, targets=after)

    def apply_hub_orders(self, orders: Iterable[Order]) -> list[str]:
        """Merge the targets carried by hub order snapshots; returns changed order ids."""

        changed: list[str] = []
        for order in orders:
            self._orders[order.order_id] = order
            if not order.targets:
                continue
            before = self.book.get(order.order_id)
            after = self._merge_hub_targets(order)
            if after != before:
                changed.append(order.order_id)
                self._publish(order.order_id)
            if not self.allocator.within_ceiling(order, after):
                self._log.warning(
                    "target_allocation_exceeded",
                    order_id=order.order_id,
                    allocated=self.allocator.allocated(after),
                    order_lot=order.lot_size,
                )
        return changed

    def forget(self, order_id: str | int) -> bool:
        """Release all state held for an order that left the hub.

        While an operation on the order is in flight the release is deferred until
        the operation finishes, and False is returned.
        """
        key = str(order_id)
        if self.saving(key):
            self._log.info("target_forget_deferred", order_id=key)
            task = asyncio.get_running_loop().create_task(self._forget_when_idle(key))
            self._deferred.add(task)
            task.add_done_callback(self._deferred.discard)
            return False
        self.book.drop(key)
        self._orders.pop(key, None)
        self._default_lots.pop(key, None)
        self._locks.pop(key, None)
        return True

    async def _forget_when_idle(self, order_id: str) -> None:
        async with self._lock(order_id):
            pass
        self.forget(order_id)

    # ---------------------------------------------------------------- helpers

    def _merge_hub_targets(self, order: Order) -> tuple[Target, ...]:
        order_id = order.order_id
        for target in order.targets:
            if target.is_deleted and target.id is not None:
                self.book.mark_deleted(order_id, target.id)
        incoming = [
            target for target in order.targets if not self.book.is_deleted(order_id, target.id)
        ]
        return self.book.apply(
            order_id,
            lambda current: merge_targets_from_hub(
                [t for t in current if not self.book.is_deleted(order_id, t.id)],
                incoming,
                lot_tolerance=self.lot_tolerance,
                price_tolerance=self.price_tolerance,
            ),
        )

    def _find_confirmed(self, order_id: str, target_ref: int | str | None) -> Target:
        if target_ref is None:
            raise MissingTargetIdError("Target has no server id yet.")
        ref = str(target_ref)
        for index, target in enumerate(self.book.get(order_id)):
            if get_target_key(target, index) == ref:
                if target.id is None:
                    raise MissingTargetIdError(
                        "Target is still syncing. Wait for confirmation or cancel it."
                    )
                return target
        raise TargetError("Target not found.")

    def _account_for(self, order: Order) -> int | None:
        return self.account_id if self.account_id is not None else order.account_id

    def _lock(self, order_id: str) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = self._locks[order_id] = asyncio.Lock()
        return lock

    def _fail(self, order_id: str | None, exc: TargetError, event: str) -> OperationResult:
        self.error = exc.message
        self.error_field = getattr(exc, "field", None)
        self._log.warning(event, order_id=order_id, error=exc.message)
        targets = self.book.get(order_id) if order_id is not None else ()
        if order_id is not None:
            self._publish(order_id)
        return OperationResult(
            ok=False, targets=targets, error=exc.message, field=self.error_field
        )

    def _publish(self, order_id: str) -> None:
        targets = self.book.get(order_id)
        order = self._orders.get(order_id)
        remaining: float | None = None
        if order is not None:
            remaining = self.allocator.remaining(order, targets)
            self._default_lots[order_id] = self.allocator.next_default_lot(order, targets)
        event = TargetsChanged(
            order_id=order_id,
            targets=targets,
            remaining_lot=remaining,
            default_lot=self._default_lots.get(order_id, ""),
        )
        for listener in self._listeners:
            listener(event)


def _without_key(targets: Sequence[Target], key: str) -> list[Target]:
    return [t for index, t in enumerate(targets) if get_target_key(t, index) != key]


def _confirm_temp(current: Sequence[Target], temp_key: str, confirmed: Target) -> list[Target]:
    """Swap the optimistic entry for its confirmed copy.

    A hub push may already have delivered the confirmed id (and superseded the
    temp entry); in that case the temp entry is only removed.
    """
    confirmed_key = str(confirmed.id)
    if any(t.id is not None and str(t.id) == confirmed_key for t in current):
        return _without_key(current, temp_key)

    result: list[Target] = []
    swapped = False
    for index, target in enumerate(current):
        if not swapped and get_target_key(target, index) == temp_key:
            result.append(confirmed)
            swapped = True
        else:
            result.append(target)
    if not swapped:
        result.append(confirmed)
    return result


def _as_target_error(exc: Exception, fallback: str) -> TargetError:
    if isinstance(exc, TargetError):
        return exc if exc.message else TargetError(fallback)
    return TargetError(fallback)
