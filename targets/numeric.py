"""Number coercion and step formatting shared by lot and price inputs.

All helpers are pure and total: bad input degrades to ``0`` (or ``""`` when
formatting) so a NaN can never leak into the allocation math.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any

MAX_DECIMALS = 10


def to_number_or_zero(value: Any) -> float:
    """Coerce ``value`` to a finite float, returning 0.0 when that is not possible."""

    if value is None or value == "":
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def count_decimals(step: Any) -> int:
    """Return the number of decimal places implied by ``step`` (0.01 -> 2)."""

    number = to_number_or_zero(step)
    if number == 0.0:
        return 0
    try:
        exponent = Decimal(repr(number)).normalize().as_tuple().exponent
    except InvalidOperation:  # pragma: no cover - repr of a finite float always parses
        return 0
    if not isinstance(exponent, int):
        return 0
    return max(0, -exponent)


def format_with_decimals(value: Any, decimals: Any) -> str:
    """Fixed-point string with ``decimals`` clamped to [0, MAX_DECIMALS]."""

    number = _finite_or_none(value)
    if number is None:
        return ""
    places = max(0, min(MAX_DECIMALS, int(to_number_or_zero(decimals))))
    return f"{number:.{places}f}"


def format_with_digits(value: Any, digits: int) -> str:
    number = _finite_or_none(value)
    if number is None:
        return ""
    return f"{number:.{max(0, int(digits))}f}"


def adjust_number_input_by_step(
    current: Any,
    step: Any,
    direction: int,
    decimals: Any,
    *,
    min_value: float = 0.0,
) -> str:
    """Step a text-field value up (direction=1) or down (direction=-1).

    Args:
        current: Current text of the field
        step: Increment applied per press (non-numeric steps count as 0)
        direction: +1 or -1
        decimals: Decimal places of the returned string
        min_value: Lower clamp

    Returns:
        New field text formatted to ``decimals`` places
    """
    base = to_number_or_zero(current)
    increment = _finite_or_none(step) or 0.0
    next_value = max(min_value, base + direction * increment)
    return format_with_decimals(next_value, decimals)


def adjust_input_by_step(current: Any, step: Any, direction: int, digits: int) -> str:
    """Price stepper variant: floors at zero and renders zero as a bare ``"0"``."""

    base = to_number_or_zero(current)
    increment = _finite_or_none(step) or 0.0
    next_value = max(0.0, base + direction * increment)
    if next_value == 0.0:
        return "0"
    return format_with_digits(next_value, digits)


def _finite_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None
