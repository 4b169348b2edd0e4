"""Target identity: derived keys and tolerance-based value matching."""

from __future__ import annotations

import secrets
import time
from collections.abc import Mapping
from typing import Any

from core.contracts import Target
from targets.numeric import to_number_or_zero

LOT_TOLERANCE = 1e-6
PRICE_TOLERANCE = 1e-6

# Field names the server has used for a target id, in lookup order.
TARGET_ID_FIELDS = ("id", "targetId", "orderTargetId", "orderTargetsId", "ordertargetId")


def get_target_id(target: Any) -> int | str | None:
    if isinstance(target, Target):
        return target.id
    if isinstance(target, Mapping):
        for name in TARGET_ID_FIELDS:
            value = target.get(name)
            if value is not None:
                return value  # type: ignore[no-any-return]
    return None


def get_target_key(target: Any, fallback_index: int = 0) -> str:
    """Key used for diffing and uniqueness; never the bare list position when avoidable."""

    target_id = get_target_id(target)
    if target_id is not None:
        return str(target_id)
    if isinstance(target, Target):
        temp_id = target.client_temp_id
    elif isinstance(target, Mapping):
        temp_id = target.get("clientTempId")
    else:
        temp_id = None
    if temp_id is not None:
        return str(temp_id)
    return f"tmp-{fallback_index}"


def targets_match(
    a: Target,
    b: Target,
    *,
    lot_tolerance: float = LOT_TOLERANCE,
    price_tolerance: float = PRICE_TOLERANCE,
) -> bool:
    """True when lot, SL and TP of both targets agree within tolerance."""

    return (
        abs(to_number_or_zero(a.lot_size) - to_number_or_zero(b.lot_size)) <= lot_tolerance
        and abs(to_number_or_zero(a.stop_loss) - to_number_or_zero(b.stop_loss))
        <= price_tolerance
        and abs(to_number_or_zero(a.take_profit) - to_number_or_zero(b.take_profit))
        <= price_tolerance
    )


def new_client_temp_id() -> str:
    return f"tmp-{time.time_ns() // 1_000_000}-{secrets.token_hex(6)}"
