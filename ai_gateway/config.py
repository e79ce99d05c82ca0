"""
Gateway configuration
=====================
Loaded from CONFIG_DIR/config.json. Every key is optional:

{
  "defaults": {"priority": "balanced", "timeout": 120, "retryAttempts": 3,
               "useCache": true, "costLimit": null},
  "circuitBreaker": {"failureThreshold": 5, "cooldownSeconds": 60,
                     "windowSeconds": 300},
  "cache": {"enabled": true, "maxEntries": 100, "ttlSeconds": 3600,
            "policy": "lru", "path": "~/.ai_gateway/cache.db"},
  "maxParallel": 5,
  "providers": {"claude": {"enabled": true, "model": "...", "baseUrl": "...",
                           "retries": 3, "timeout": 120}},
  "logging": {"level": "INFO", "file": "~/.ai_gateway/gateway.log"},
  "budgets": [{"name": "monthly", "limit": 25.0, "warningThreshold": 80,
               "provider": null}]
}
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .credentials import CONFIG_DIR

CONFIG_FILE = CONFIG_DIR / "config.json"


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    return value if isinstance(value, dict) else {}


@dataclass
class BreakerConfig:
    failure_threshold: int = 5
    cooldown: float = 60.0
    window: float = 300.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BreakerConfig:
        return cls(
            failure_threshold=int(data.get("failureThreshold", 5)),
            cooldown=float(data.get("cooldownSeconds", 60.0)),
            window=float(data.get("windowSeconds", 300.0)),
        )


@dataclass
class CacheConfig:
    enabled: bool = True
    max_entries: int = 100
    ttl: float = 3600.0
    policy: str = "lru"
    path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheConfig:
        policy = str(data.get("policy", "lru")).lower()
        if policy not in {"lru", "lfu"}:
            print(f"Warning: Unknown cache policy '{policy}', using lru.")
            policy = "lru"
        return cls(
            enabled=bool(data.get("enabled", True)),
            max_entries=int(data.get("maxEntries", 100)),
            ttl=float(data.get("ttlSeconds", 3600.0)),
            policy=policy,
            path=data.get("path") or None,
        )


@dataclass
class ProviderConfig:
    enabled: bool = True
    model: str | None = None
    base_url: str | None = None
    retries: int = 3
    timeout: float = 120.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        return cls(
            enabled=bool(data.get("enabled", True)),
            model=data.get("model") or None,
            base_url=data.get("baseUrl") or data.get("base_url") or None,
            retries=int(data.get("retries", 3)),
            timeout=float(data.get("timeout", 120.0)),
        )


@dataclass
class GatewayConfig:
    defaults: dict[str, Any] = field(default_factory=dict)
    circuit_breaker: BreakerConfig = field(default_factory=BreakerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    max_parallel: int = 5
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    logging: dict[str, Any] = field(default_factory=dict)
    budgets: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GatewayConfig:
        providers = {
            str(name).lower(): ProviderConfig.from_dict(value)
            for name, value in _section(data, "providers").items()
            if isinstance(value, dict)
        }
        budgets = data.get("budgets", [])
        if not isinstance(budgets, list):
            print("Warning: budgets must be a list, ignoring.")
            budgets = []
        max_parallel = data.get("maxParallel", 5)
        if not isinstance(max_parallel, int) or max_parallel < 1:
            print(f"Warning: Invalid maxParallel {max_parallel!r}, using 5.")
            max_parallel = 5
        return cls(
            defaults=_section(data, "defaults"),
            circuit_breaker=BreakerConfig.from_dict(_section(data, "circuitBreaker")),
            cache=CacheConfig.from_dict(_section(data, "cache")),
            max_parallel=max_parallel,
            providers=providers,
            logging=_section(data, "logging"),
            budgets=[b for b in budgets if isinstance(b, dict)],
        )

    def provider(self, name: str) -> ProviderConfig:
        return self.providers.get(name, ProviderConfig())


def load_config(path: Path | None = None) -> GatewayConfig:
    """Read the config file, falling back to defaults when absent or invalid"""
    config_path = path or CONFIG_FILE
    if not config_path.exists():
        return GatewayConfig()

    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            loaded = json.load(config_file)
    except (OSError, ValueError) as exc:
        # Logging is not configured yet
        print(f"Warning: Failed to load config from {config_path}: {exc}")
        return GatewayConfig()

    if not isinstance(loaded, dict):
        print(f"Warning: Config file {config_path} did not contain an object.")
        return GatewayConfig()

    try:
        return GatewayConfig.from_dict(loaded)
    except (TypeError, ValueError) as exc:
        print(f"Warning: Invalid values in {config_path}: {exc}")
        return GatewayConfig()


def setup_logging(config: GatewayConfig, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO

    log_config = config.logging
    if not verbose and "level" in log_config:
        level = getattr(logging, str(log_config["level"]).upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = log_config.get("file")
    if log_file:
        try:
            handlers.append(logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8"))
        except OSError as e:
            print(f"Failed to setup log file {log_file}: {e}")

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )
