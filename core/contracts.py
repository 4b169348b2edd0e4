from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class Target:
    """Partial take-profit/stop-loss instruction attached to an order.

    Attributes:
        id: Server-assigned identifier (None while unconfirmed)
        client_temp_id: Locally generated key, only set while id is None
        order_id: Parent order identifier
        account_id: Parent account identifier
        lot_size: Lot covered by this target
        stop_loss: Stop-loss price (0 means unset)
        take_profit: Take-profit price (0 means unset)
        entry_price: Entry price of the parent order at creation time
        is_closed: Server lifecycle flag
        is_deleted: Server lifecycle flag
        pending: True for local entries the server has not confirmed yet
        raw: Source record as received from the server
    """

    id: int | str | None
    order_id: str
    lot_size: float
    stop_loss: float = 0.0
    take_profit: float = 0.0
    entry_price: float = 0.0
    account_id: int | None = None
    client_temp_id: str | None = None
    is_closed: bool = False
    is_deleted: bool = False
    pending: bool = False
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def confirmed(self) -> bool:
        return self.id is not None

    def with_levels(self, *, lot_size: float, stop_loss: float, take_profit: float) -> Target:
        return replace(self, lot_size=lot_size, stop_loss=stop_loss, take_profit=take_profit)

    def confirm(self, target_id: int | str) -> Target:
        return replace(self, id=target_id, client_temp_id=None, pending=False)

    def to_create_payload(self) -> dict[str, Any]:
        return {
            "orderId": _numeric_id(self.order_id),
            "accountId": int(self.account_id or 0),
            "takeProfit": self.take_profit,
            "stopLoss": self.stop_loss,
            "lotSize": self.lot_size,
            "entryPrice": self.entry_price,
            "isClosed": False,
            "isDeleted": False,
        }

    def to_update_payload(self) -> dict[str, Any]:
        if self.id is None:
            raise ValueError("update payload requires a confirmed target id")
        return {
            "id": _numeric_id(self.id),
            "takeProfit": self.take_profit,
            "stopLoss": self.stop_loss,
            "lotSize": self.lot_size,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "clientTempId": self.client_temp_id,
            "orderId": self.order_id,
            "accountId": self.account_id,
            "lotSize": self.lot_size,
            "stopLoss": self.stop_loss,
            "takeProfit": self.take_profit,
            "entryPrice": self.entry_price,
            "isClosed": self.is_closed,
            "isDeleted": self.is_deleted,
            "pending": self.pending,
        }


@dataclass(frozen=True)
class Order:
    """Read model of an open or pending order, as far as target allocation needs it."""

    order_id: str
    lot_size: float
    min_lot_size: float = 0.0
    lot_step: float = 0.01
    reference_price: float = 0.0
    entry_price: float = 0.0
    side: OrderSide | None = None
    account_id: int | None = None
    symbol: str = ""
    digits: int | None = None
    is_pending: bool = False
    targets: tuple[Target, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class SlTpCheck:
    sl_error: str | None = None
    tp_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.sl_error is None and self.tp_error is None


def _numeric_id(value: int | str) -> int | str:
    """Server ids are numeric; keep non-numeric ids untouched."""

    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except ValueError:
        return value
