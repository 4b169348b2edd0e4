"""Order hub feed: keeps the pushed order lists and forwards their targets."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from core.contracts import Order
from targets.manager import TargetManager
from targets.schema import (
    extract_targets_from_order,
    get_order_id,
    is_pending_order,
    normalize_orders_payload,
    parse_order,
)


def merge_orders_by_id(
    prev: Mapping[str, dict[str, Any]],
    incoming: Iterable[dict[str, Any]],
) -> dict[str, dict[str, Any]]:
    """Shallow-merge pushed order records over the held ones, keyed by order id."""

    merged = dict(prev)
    for record in incoming:
        order_id = get_order_id(record)
        if order_id is None:
            continue
        held = merged.get(order_id)
        merged[order_id] = {**held, **record} if held else dict(record)
    return merged


class OrderHubFeed:
    """Applies hub pushes to the held order lists and reconciles their targets.

    Updates are partial: an order record only overrides the fields it carries,
    and an order missing from a push is left alone. Removals are explicit.
    """

    def __init__(
        self,
        manager: TargetManager,
        *,
        symbol_meta: Mapping[str, Mapping[str, Any]] | None = None,
        default_lot_step: float = 0.01,
    ) -> None:
        self.manager = manager
        self.symbol_meta = dict(symbol_meta or {})
        self.default_lot_step = default_lot_step
        self.orders: dict[str, dict[str, Any]] = {}
        self.pending_orders: dict[str, dict[str, Any]] = {}
        self._log = structlog.get_logger("targets.hub")

    def on_order_update(self, payload: Any) -> list[str]:
        """Handle one ``ReceiveOrderUpdate`` push; returns order ids whose targets changed."""

        incoming = normalize_orders_payload(payload)
        if not incoming:
            return []
        pending = [record for record in incoming if is_pending_order(record)]
        ongoing = [record for record in incoming if not is_pending_order(record)]
        self.orders = merge_orders_by_id(self.orders, ongoing)
        self.pending_orders = merge_orders_by_id(self.pending_orders, pending)

        parsed: list[Order] = []
        for record in incoming:
            order_id = get_order_id(record)
            held = self.orders.get(order_id or "") if not is_pending_order(record) else None
            held = held or self.pending_orders.get(order_id or "")
            if held is None:
                continue
            # only targets carried by this push are reconciled, never the held copy's
            view = {**held, "targets": extract_targets_from_order(record)}
            order = parse_order(view, self.symbol_meta, default_lot_step=self.default_lot_step)
            if order is not None:
                parsed.append(order)
        changed = self.manager.apply_hub_orders(parsed)
        if changed:
            self._log.info("hub_targets_merged", order_ids=changed)
        return changed

    def on_order_removed(self, order_id: Any) -> None:
        if order_id is None:
            return
        key = str(order_id)
        self.orders.pop(key, None)
        self.pending_orders.pop(key, None)
        self.manager.forget(key)
        self._log.info("hub_order_removed", order_id=key)

    def current_orders(self) -> list[Order]:
        records = [*self.orders.values(), *self.pending_orders.values()]
        parsed = (
            parse_order(record, self.symbol_meta, default_lot_step=self.default_lot_step)
            for record in records
        )
        return [order for order in parsed if order is not None]

    def get_order(self, order_id: str | int) -> Order | None:
        key = str(order_id)
        record = self.orders.get(key) or self.pending_orders.get(key)
        if record is None:
            return None
        return parse_order(record, self.symbol_meta, default_lot_step=self.default_lot_step)
