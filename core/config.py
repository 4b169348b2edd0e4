from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, cast

from pydantic import BaseModel, Field


class AppCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    name: str
    env: str
    timezone: str


class LoggingCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    level: str = "INFO"
    json_lines: bool = True
    journal_dir: Path


class RedisTopicsCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    order_updates: str
    order_removed: str
    target_commands: str
    target_snapshots: str


class RedisCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    url: str
    topics: RedisTopicsCfg


class ApiCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    base_url: str
    timeout_s: float = 20.0
    client_app: str = "targets-engine"


class TargetsCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    lot_tolerance: float = 1e-6
    price_tolerance: float = 1e-6
    default_lot_step: float = 0.01
    account_id: int | None = None


class SecretsCfg(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    access_token: str | None = None


class Config(BaseModel):
    model_config: ClassVar[dict[str, Any]] = {"extra": "forbid"}

    app: AppCfg
    logging: LoggingCfg
    redis: RedisCfg
    api: ApiCfg
    targets: TargetsCfg = Field(default_factory=TargetsCfg)
    secrets: SecretsCfg = Field(default_factory=SecretsCfg)


def _read_yaml(path: Path) -> dict[str, Any]:
    """Safe YAML read; returns {} if file missing/empty."""
    import yaml  # lazy import

    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data or {}


def load_config(base_dir: str | Path) -> Config:
    """Load config models from ./config/base.yaml and optional secrets."""

    base_path = Path(base_dir)
    base_yaml = base_path / "config" / "base.yaml"
    data = _read_yaml(base_yaml)
    if not data:
        msg = f"Missing or empty config file: {base_yaml}"
        raise FileNotFoundError(msg)

    secrets_path = base_path / "config" / "secrets.enc.yaml"
    secrets = _read_yaml(secrets_path)
    if secrets:
        merged = data.setdefault("secrets", {}) or {}
        merged.update(secrets)
        data["secrets"] = merged

    return cast(Config, Config.model_validate(data))
