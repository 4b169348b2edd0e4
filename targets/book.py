"""Per-order target lists with a single mutator entry point."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import structlog

from core.contracts import Target
from targets.identity import get_target_key

Reducer = Callable[[tuple[Target, ...]], Sequence[Target]]


class TargetBook:
    """Order id -> ordered targets.

    Lists are only ever replaced through :meth:`apply`, which runs the reducer
    against the latest list and stores the result in one synchronous step. Callers
    running on the event loop therefore cannot interleave a read and a write.
    """

    def __init__(self) -> None:
        self._lists: dict[str, tuple[Target, ...]] = {}
        self._deleted_ids: dict[str, set[str]] = {}
        self._log = structlog.get_logger("targets.book")

    def __contains__(self, order_id: object) -> bool:
        return str(order_id) in self._lists

    def get(self, order_id: str | int) -> tuple[Target, ...]:
        return self._lists.get(str(order_id), ())

    def ensure(self, order_id: str | int) -> tuple[Target, ...]:
        return self._lists.setdefault(str(order_id), ())

    def apply(self, order_id: str | int, reducer: Reducer) -> tuple[Target, ...]:
        key = str(order_id)
        current = self._lists.get(key, ())
        updated = self._unique(key, reducer(current))
        self._lists[key] = updated
        return updated

    def mark_deleted(self, order_id: str | int, target_id: int | str) -> None:
        self._deleted_ids.setdefault(str(order_id), set()).add(str(target_id))

    def is_deleted(self, order_id: str | int, target_id: int | str | None) -> bool:
        if target_id is None:
            return False
        return str(target_id) in self._deleted_ids.get(str(order_id), set())

    def drop(self, order_id: str | int) -> None:
        key = str(order_id)
        self._lists.pop(key, None)
        self._deleted_ids.pop(key, None)

    def _unique(self, order_id: str, targets: Sequence[Target]) -> tuple[Target, ...]:
        seen: set[str] = set()
        kept: list[Target] = []
        for index, target in enumerate(targets):
            target_key = get_target_key(target, index)
            if target_key in seen:
                self._log.warning("target_duplicate_key_dropped", order_id=order_id, key=target_key)
                continue
            seen.add(target_key)
            kept.append(target)
        return tuple(kept)
