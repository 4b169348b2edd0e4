"""Schema mapping for hub and REST records.

The order hub and the REST API have shipped several spellings for the same fields
over time. Every alias is resolved here, once, at ingestion; the rest of the
package only sees :class:`core.contracts.Order` and :class:`core.contracts.Target`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from core.contracts import Order, OrderSide, Target
from targets.identity import get_target_id
from targets.numeric import to_number_or_zero

DEFAULT_LOT_STEP = 0.01

ORDER_ID_FIELDS = ("id", "orderId", "ticket", "positionId", "dealId")
ORDER_LOT_FIELDS = ("lotSize", "remainingLotSize", "lotSizeForPendingOrders", "volume")
MIN_LOT_FIELDS = ("minLotSize", "minLot", "minLotSizeForOrder")
LOT_STEP_FIELDS = ("lotStepSize", "lotStep", "volumeStep")
SIDE_FIELDS = ("side", "direction", "orderSide", "orderType", "type")
REFERENCE_PRICE_FIELDS = (
    "marketPrice",
    "currentPrice",
    "price",
    "ask",
    "bid",
    "entryPrice",
    "entryPriceForPendingOrders",
)
ENTRY_PRICE_FIELDS = ("entryPrice", "entryPriceForPendingOrders", "price")
SYMBOL_FIELDS = ("symbol", "instrument", "instrumentName")
STOP_LEVEL_FIELDS = (
    "limitAndStopLevelPoints",
    "limitStopLevelPoints",
    "stopLevelPoints",
    "stopLevel",
    "limitLevel",
)
TARGET_LIST_FIELDS = (
    "targets",
    "orderTargets",
    "orderTarget",
    "orderTargetList",
    "orderTargetsList",
    "childOrders",
    "children",
    "multiTargets",
    "targetOrders",
)
PENDING_STATUSES = frozenset({"pending", "placed", "new"})


def _first(record: Mapping[str, Any], names: Sequence[str]) -> Any:
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return None


def unwrap_response(payload: Any) -> Any:
    """Strip the ``data`` / ``result`` envelope the API wraps responses in."""

    if isinstance(payload, Mapping):
        if "data" in payload:
            return payload["data"]
        if "result" in payload:
            return payload["result"]
    return payload


def get_order_id(record: Any) -> str | None:
    if not isinstance(record, Mapping):
        return None
    value = _first(record, ORDER_ID_FIELDS)
    return None if value is None else str(value)


def normalize_orders_payload(payload: Any) -> list[dict[str, Any]]:
    """Hub updates arrive as a list, an ``orders``/``data`` wrapper, or a single order."""

    if not payload:
        return []
    if isinstance(payload, list):
        items: list[Any] = payload
    elif isinstance(payload, Mapping) and isinstance(payload.get("orders"), list):
        items = payload["orders"]
    elif isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        items = payload["data"]
    else:
        items = [payload]
    return [dict(item) for item in items if isinstance(item, Mapping)]


def is_pending_order(record: Any) -> bool:
    if not isinstance(record, Mapping):
        return False
    flag = record.get("isPending")
    if isinstance(flag, bool):
        return flag
    status = record.get("status")
    if status is None:
        status = record.get("orderStatus")
    return str(status or "").lower() in PENDING_STATUSES


def extract_targets_from_order(record: Any) -> list[Any]:
    """Return the raw target records attached to a hub order snapshot."""

    if not isinstance(record, Mapping):
        return []
    for name in TARGET_LIST_FIELDS:
        candidate = record.get(name)
        if isinstance(candidate, list):
            return candidate
        if isinstance(candidate, Mapping) and isinstance(candidate.get("data"), list):
            return list(candidate["data"])
    return []


def parse_side(value: Any) -> OrderSide | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        if value == 0:
            return OrderSide.BUY
        if value == 1:
            return OrderSide.SELL
        return None
    text = str(value).lower()
    if "buy" in text:
        return OrderSide.BUY
    if "sell" in text:
        return OrderSide.SELL
    return None


def parse_target(record: Any, order_id: str | None = None) -> Target | None:
    """Map a raw target record onto :class:`Target`; non-mappings yield None."""

    if isinstance(record, Target):
        return record
    if not isinstance(record, Mapping):
        return None

    target_id = get_target_id(record)
    parent = record.get("orderId")
    parent_id = str(parent) if parent is not None else (order_id or "")
    account = record.get("accountId")
    temp_id = record.get("clientTempId") if target_id is None else None
    return Target(
        id=target_id,
        order_id=parent_id,
        lot_size=to_number_or_zero(record.get("lotSize")),
        stop_loss=to_number_or_zero(record.get("stopLoss")),
        take_profit=to_number_or_zero(record.get("takeProfit")),
        entry_price=to_number_or_zero(record.get("entryPrice")),
        account_id=int(to_number_or_zero(account)) if account is not None else None,
        client_temp_id=str(temp_id) if temp_id is not None else None,
        is_closed=bool(record.get("isClosed", False)),
        is_deleted=bool(record.get("isDeleted", False)),
        pending=target_id is None and bool(record.get("pending", False)),
        raw=dict(record),
    )


def parse_targets(records: Sequence[Any], order_id: str | None = None) -> list[Target]:
    parsed = (parse_target(record, order_id) for record in records)
    return [target for target in parsed if target is not None]


def stop_level_points(symbol_meta: Mapping[str, Any] | None) -> float:
    if not symbol_meta:
        return 0.0
    points = to_number_or_zero(_first(symbol_meta, STOP_LEVEL_FIELDS))
    return points if points > 0 else 0.0


def parse_order(
    record: Any,
    symbol_meta: Mapping[str, Mapping[str, Any]] | None = None,
    *,
    default_lot_step: float = DEFAULT_LOT_STEP,
) -> Order | None:
    """Build the order read model from a hub/REST order record.

    Args:
        record: Raw order record
        symbol_meta: Instrument metadata keyed by upper-case symbol
        default_lot_step: Lot step used when neither metadata nor order defines one

    Returns:
        Order, or None when the record carries no usable order id
    """
    order_id = get_order_id(record)
    if order_id is None:
        return None

    symbol = str(_first(record, SYMBOL_FIELDS) or "").upper()
    meta: Mapping[str, Any] = {}
    if symbol and symbol_meta:
        meta = symbol_meta.get(symbol) or {}

    min_lot = to_number_or_zero(_first(meta, MIN_LOT_FIELDS))
    if min_lot <= 0:
        min_lot = to_number_or_zero(record.get("minLotSize") or record.get("minLot"))
    min_lot = max(0.0, min_lot)

    lot_step = to_number_or_zero(_first(meta, LOT_STEP_FIELDS) or _first(record, LOT_STEP_FIELDS))
    if lot_step <= 0:
        lot_step = min_lot if min_lot > 0 else default_lot_step

    reference = 0.0
    for name in REFERENCE_PRICE_FIELDS:
        candidate = to_number_or_zero(record.get(name))
        if candidate > 0:
            reference = candidate
            break

    digits_raw = record.get("digits")
    if digits_raw is None:
        digits_raw = record.get("symbolDigits")
    digits: int | None = None
    if digits_raw is not None and not isinstance(digits_raw, bool):
        candidate_digits = to_number_or_zero(digits_raw)
        if 0 <= candidate_digits <= 10 and candidate_digits == int(candidate_digits):
            digits = int(candidate_digits)

    account = record.get("accountId")
    return Order(
        order_id=order_id,
        lot_size=to_number_or_zero(_first(record, ORDER_LOT_FIELDS)),
        min_lot_size=min_lot,
        lot_step=lot_step,
        reference_price=reference,
        entry_price=to_number_or_zero(_first(record, ENTRY_PRICE_FIELDS)),
        side=parse_side(_first(record, SIDE_FIELDS)),
        account_id=int(to_number_or_zero(account)) if account is not None else None,
        symbol=symbol,
        digits=digits,
        is_pending=is_pending_order(record),
        targets=tuple(parse_targets(extract_targets_from_order(record), order_id)),
        raw=dict(record),
    )


def get_price_digits(order: Order) -> int:
    """Price decimals: explicit digits, else inferred from the reference price."""

    if order.digits is not None:
        return order.digits
    reference = order.reference_price
    floor = 5 if reference < 10 else 2
    text = repr(reference)
    if "." not in text or "e" in text.lower():
        return floor
    decimals = len(text) - text.index(".") - 1
    if text.endswith(".0"):
        return floor
    return min(10, max(floor, decimals))


def get_price_step(order: Order, level_points: float = 0.0) -> float:
    base_step = 10.0 ** -get_price_digits(order)
    from_points = level_points * base_step if level_points > 0 else 0.0
    return max(base_step, from_points)
