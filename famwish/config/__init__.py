"""Configuration helpers for the bid service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"


@dataclass(frozen=True)
class StorageConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class BiddingConfig:
    min_increment: int
    max_attempts: int
    auto_retry: bool
    enforce_end_date: bool

    @property
    def attempts(self) -> int:
        """Number of read-validate-write rounds a single bid may take."""
        return self.max_attempts if self.auto_retry else 1


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class ServerConfig:
    listen: Mapping[str, Any]
    storage: StorageConfig
    bidding: BiddingConfig
    logging: LoggingConfig


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def parse_server_config(data: Mapping[str, Any]) -> ServerConfig:
    storage = data.get("storage", {})
    bidding = data.get("bidding", {})
    log_section = data.get("logging", {})
    min_increment = int(bidding.get("min_increment", 50))
    if min_increment <= 0:
        raise ValueError("bidding.min_increment must be positive")
    max_attempts = int(bidding.get("max_attempts", 3))
    if max_attempts < 1:
        raise ValueError("bidding.max_attempts must be at least 1")
    return ServerConfig(
        listen=data.get("listen", {}),
        storage=StorageConfig(
            backend=str(storage.get("backend", "in_memory")),
            options=dict(storage.get("options") or {}),
        ),
        bidding=BiddingConfig(
            min_increment=min_increment,
            max_attempts=max_attempts,
            auto_retry=bool(bidding.get("auto_retry", True)),
            enforce_end_date=bool(bidding.get("enforce_end_date", False)),
        ),
        logging=LoggingConfig(level=str(log_section.get("level", "INFO")).upper()),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("FAMWISH_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return parse_server_config(_load_yaml(path))
