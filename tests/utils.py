from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any, cast

from core.config import Config
from core.contracts import Order, OrderSide, Target
from targets.errors import TargetApiError


class InMemoryBus:
    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue[Any]] = defaultdict(asyncio.Queue)
        self.published: dict[str, list[Any]] = defaultdict(list)

    async def publish_json(self, topic: str, payload: Any) -> None:
        self.published[topic].append(payload)
        await self._queues[topic].put(payload)

    def subscribe(self, topic: str) -> AsyncIterator[Any]:
        queue = self._queues[topic]

        async def generator() -> AsyncIterator[Any]:
            while True:
                item = await queue.get()
                yield item

        return generator()


class FakeTargetsApi:
    """Records persistence calls; ``gate`` holds every call until it is set."""

    def __init__(self, *, next_id: int = 100, return_id: bool = True) -> None:
        self.next_id = next_id
        self.return_id = return_id
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, Any, Any]] = []

    async def _maybe_wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    async def create_target(self, payload: dict[str, Any]) -> Any:
        self.calls.append(("create", None, payload))
        await self._maybe_wait()
        if not self.return_id:
            return {"success": True}
        created = {**payload, "id": self.next_id}
        self.next_id += 1
        return created

    async def update_target(self, target_id: int | str, payload: dict[str, Any]) -> Any:
        self.calls.append(("update", target_id, payload))
        await self._maybe_wait()
        return None

    async def delete_target(self, target_id: int | str) -> Any:
        self.calls.append(("delete", target_id, None))
        await self._maybe_wait()
        return None

    def fail(self, message: str = "Server rejected", status_code: int | None = 400) -> None:
        self.fail_with = TargetApiError(message, status_code=status_code)


def make_order(
    order_id: str = "1001",
    *,
    lot_size: float = 1.0,
    min_lot_size: float = 0.01,
    lot_step: float = 0.01,
    reference_price: float = 1.2,
    side: OrderSide | None = OrderSide.BUY,
    account_id: int | None = 7,
    targets: tuple[Target, ...] = (),
) -> Order:
    return Order(
        order_id=order_id,
        lot_size=lot_size,
        min_lot_size=min_lot_size,
        lot_step=lot_step,
        reference_price=reference_price,
        entry_price=reference_price,
        side=side,
        account_id=account_id,
        symbol="EURUSD",
        targets=targets,
    )


def confirmed(
    target_id: int,
    lot_size: float,
    stop_loss: float = 0.0,
    take_profit: float = 0.0,
    order_id: str = "1001",
) -> Target:
    return Target(
        id=target_id,
        order_id=order_id,
        lot_size=lot_size,
        stop_loss=stop_loss,
        take_profit=take_profit,
    )


def temp(
    temp_id: str,
    lot_size: float,
    stop_loss: float = 0.0,
    take_profit: float = 0.0,
    order_id: str = "1001",
) -> Target:
    return Target(
        id=None,
        client_temp_id=temp_id,
        order_id=order_id,
        lot_size=lot_size,
        stop_loss=stop_loss,
        take_profit=take_profit,
        pending=True,
    )


def build_test_config(journal_dir: Path) -> Config:
    cfg_dict = {
        "app": {"name": "test", "env": "test", "timezone": "UTC"},
        "logging": {"level": "INFO", "json_lines": False, "journal_dir": str(journal_dir)},
        "redis": {
            "url": "redis://localhost:6379/0",
            "topics": {
                "order_updates": "hub.orders.update",
                "order_removed": "hub.orders.removed",
                "target_commands": "targets.command",
                "target_snapshots": "targets.snapshot",
            },
        },
        "api": {"base_url": "https://api.test/api", "timeout_s": 5},
        "targets": {"lot_tolerance": 1e-6, "price_tolerance": 1e-6, "default_lot_step": 0.01},
    }
    return cast(Config, Config.model_validate(cfg_dict))
