"""Directional SL/TP checks against the order reference price."""

from __future__ import annotations

from typing import Any

from core.contracts import Order, OrderSide, SlTpCheck
from targets.numeric import to_number_or_zero


def validate_sl_tp_values(
    side: OrderSide | None,
    reference_price: Any,
    stop_loss: Any,
    take_profit: Any,
) -> SlTpCheck:
    """Check that SL/TP sit on the correct side of the reference price.

    A level of 0 means "not set" and is always valid. Without a known side or a
    positive reference price nothing can be checked and no error is reported.
    """
    sl = to_number_or_zero(stop_loss)
    tp = to_number_or_zero(take_profit)
    market = to_number_or_zero(reference_price)

    if market <= 0 or side is None:
        return SlTpCheck()

    sl_error: str | None = None
    tp_error: str | None = None
    if side is OrderSide.BUY:
        if sl > 0 and sl >= market:
            sl_error = "SL must be < Market for BUY."
        if tp > 0 and tp <= market:
            tp_error = "TP must be > Market for BUY."
    else:
        if sl > 0 and sl <= market:
            sl_error = "SL must be > Market for SELL."
        if tp > 0 and tp >= market:
            tp_error = "TP must be < Market for SELL."
    return SlTpCheck(sl_error=sl_error, tp_error=tp_error)


def validate_sl_tp(order: Order | None, stop_loss: Any, take_profit: Any) -> SlTpCheck:
    if order is None:
        return SlTpCheck()
    return validate_sl_tp_values(order.side, order.reference_price, stop_loss, take_profit)

