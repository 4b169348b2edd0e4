"""Target engine service: hub pushes and user commands in, target snapshots out."""

from __future__ import annotations

import argparse
import asyncio
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from apps.target_engine.hub import OrderHubFeed
from apps.target_engine.rest import OrderTargetsClient
from core.bus import Bus, BusProto
from core.config import Config, load_config
from core.logging import setup_console_logging, setup_json_logging
from targets.manager import OperationResult, TargetManager, TargetsChanged

COMMAND_OPS = ("open", "create", "update", "delete", "cancel")


@dataclass
class TargetEngineService:
    bus: BusProto
    config: Config
    manager: TargetManager
    feed: OrderHubFeed
    _changes: asyncio.Queue[TargetsChanged] = field(init=False)
    _tasks: set[asyncio.Task[OperationResult]] = field(default_factory=set, init=False)

    def __post_init__(self) -> None:
        self._changes = asyncio.Queue()
        self.manager.add_listener(self._changes.put_nowait)
        self._log = structlog.get_logger("targets.service")

    async def run(self) -> None:
        await asyncio.gather(
            self._consume_order_updates(),
            self._consume_order_removals(),
            self._consume_commands(),
            self._publish_changes(),
        )

    async def handle_command(self, payload: dict[str, Any]) -> OperationResult:
        """Dispatch one JSON command from the order list UI."""

        op = str(payload.get("op", "")).lower()
        if op not in COMMAND_OPS:
            return self._reject(payload, f"Unknown command: {op or '<missing>'}")

        order_id = payload.get("order_id")
        if op == "cancel":
            return self.manager.remove_local_temp_target(
                str(order_id), str(payload.get("temp_key", ""))
            )

        order = self.feed.get_order(order_id) if order_id is not None else None
        if order is None:
            return self._reject(payload, "Unknown order.")
        if op == "open":
            return self.manager.open_targets(order)
        if op == "create":
            return await self.manager.create_target(
                order,
                payload.get("lot_size"),
                payload.get("stop_loss", 0.0),
                payload.get("take_profit", 0.0),
            )
        if op == "update":
            return await self.manager.update_target(
                order,
                payload.get("target_id"),
                lot_size=payload.get("lot_size"),
                stop_loss=payload.get("stop_loss"),
                take_profit=payload.get("take_profit"),
            )
        return await self.manager.remove_target(order, payload.get("target_id"))

    def snapshot(self, change: TargetsChanged) -> dict[str, Any]:
        return {
            "order_id": change.order_id,
            "targets": [target.to_dict() for target in change.targets],
            "remaining_lot": change.remaining_lot,
            "default_lot": change.default_lot,
            "saving": self.manager.saving(change.order_id),
            "error": self.manager.error,
        }

    async def publish_pending_changes(self) -> int:
        """Flush queued change notifications to the snapshot topic."""

        published = 0
        while not self._changes.empty():
            change = self._changes.get_nowait()
            await self.bus.publish_json(
                self.config.redis.topics.target_snapshots, self.snapshot(change)
            )
            published += 1
        return published

    async def _consume_order_updates(self) -> None:
        async for payload in self.bus.subscribe(self.config.redis.topics.order_updates):
            self.feed.on_order_update(payload)

    async def _consume_order_removals(self) -> None:
        async for payload in self.bus.subscribe(self.config.redis.topics.order_removed):
            order_id = payload.get("order_id") if isinstance(payload, dict) else payload
            self.feed.on_order_removed(order_id)

    async def _consume_commands(self) -> None:
        async for payload in self.bus.subscribe(self.config.redis.topics.target_commands):
            if not isinstance(payload, dict):
                continue
            task = asyncio.create_task(self.handle_command(payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _publish_changes(self) -> None:
        while True:
            change = await self._changes.get()
            await self.bus.publish_json(
                self.config.redis.topics.target_snapshots, self.snapshot(change)
            )

    def _reject(self, payload: dict[str, Any], message: str) -> OperationResult:
        self.manager.error = message
        self._log.warning("target_command_rejected", op=payload.get("op"), error=message)
        return OperationResult(ok=False, error=message)


def build_service(bus: BusProto, config: Config, api: Any) -> TargetEngineService:
    targets_cfg = config.targets
    manager = TargetManager(
        api,
        account_id=targets_cfg.account_id,
        lot_tolerance=targets_cfg.lot_tolerance,
        price_tolerance=targets_cfg.price_tolerance,
    )
    feed = OrderHubFeed(manager, default_lot_step=targets_cfg.default_lot_step)
    return TargetEngineService(bus=bus, config=config, manager=manager, feed=feed)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Order target engine")
    parser.add_argument(
        "--config-root",
        default=".",
        help="Directory containing config/ (defaults to current working directory)",
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Log to stderr instead of the NDJSON journal",
    )
    return parser


async def _run(config_root: str, console_logs: bool = False) -> None:
    cfg = load_config(config_root)
    if console_logs or not cfg.logging.json_lines:
        setup_console_logging(cfg.logging.level)
    else:
        setup_json_logging(str(Path(cfg.logging.journal_dir)), cfg.logging.level)

    token = cfg.secrets.access_token
    bus = Bus(cfg.redis.url)
    api = OrderTargetsClient(
        cfg.api.base_url,
        timeout_s=cfg.api.timeout_s,
        client_app=cfg.api.client_app,
        token_provider=lambda: token,
    )
    service = build_service(bus, cfg, api)

    runner = asyncio.create_task(service.run())
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runner.cancel)
    try:
        await runner
    except asyncio.CancelledError:
        pass
    finally:
        await api.close()
        await bus.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        asyncio.run(_run(args.config_root, args.console_logs))
    except KeyboardInterrupt:  # pragma: no cover
        return 0
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
