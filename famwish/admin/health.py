"""Liveness and storage reachability for the bid service."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request, Response, status

from ..storage import StoreUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health")
async def health(request: Request, response: Response) -> dict[str, Any]:
    """Ping the auction store; a failed ping reports ``degraded`` with a 503."""
    settings = request.app.state.server_config
    storage = request.app.state.storage
    try:
        await storage.ping()
        reachable, error = True, None
    except StoreUnavailable as exc:
        logger.warning("health check: store unreachable: %s", exc)
        reachable, error = False, str(exc)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "healthy" if reachable else "degraded",
        "version": request.app.version,
        "storage": {
            "backend": settings.storage.backend,
            "reachable": reachable,
            "error": error,
        },
        "bidding": {
            "auto_retry": settings.bidding.auto_retry,
            "max_attempts": settings.bidding.attempts,
        },
    }
