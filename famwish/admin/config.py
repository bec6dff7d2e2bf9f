"""Expose currently loaded server config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


@router.get("/config")
async def config(
    request: Request,
    config: ServerConfig = Depends(_get_config),
) -> dict:
    bidding = config.bidding
    # Storage options can hold credentials and are never echoed.
    return {
        "version": request.app.version,
        "storage_backend": config.storage.backend,
        "bidding": {
            "min_increment": bidding.min_increment,
            "max_attempts": bidding.max_attempts,
            "auto_retry": bidding.auto_retry,
            "enforce_end_date": bidding.enforce_end_date,
        },
        "log_level": config.logging.level,
    }
