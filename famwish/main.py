from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, NoReturn

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from jsonschema import ValidationError

from .admin import config as admin_config
from .admin import health as admin_health
from .admin import stats as admin_stats
from .auctions.service import AuctionService
from .auth.identity import Capability, Identity, get_identity
from .config import ServerConfig, get_server_config
from .ledger.bids import BidLedger
from .ledger.errors import (
    AuctionClosed,
    AuctionNotFound,
    BidConflict,
    BidError,
    BidTooLow,
    Forbidden,
    InvalidAmount,
)
from .storage import AuctionStore, StoreUnavailable, build_storage
from .validation.validator import SchemaRegistry, get_schema_registry

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[BidError], int] = {
    AuctionNotFound: status.HTTP_404_NOT_FOUND,
    InvalidAmount: status.HTTP_400_BAD_REQUEST,
    Forbidden: status.HTTP_403_FORBIDDEN,
    BidTooLow: status.HTTP_400_BAD_REQUEST,
    BidConflict: status.HTTP_409_CONFLICT,
    AuctionClosed: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    logging.getLogger("famwish").setLevel(server_config.logging.level)
    schema_registry = get_schema_registry()
    storage = build_storage(server_config)
    await storage.open()
    bid_ledger = BidLedger(storage=storage, config=server_config.bidding)
    auction_service = AuctionService(
        storage=storage,
        min_increment=server_config.bidding.min_increment,
    )

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.storage = storage
    app.state.bid_ledger = bid_ledger
    app.state.auction_service = auction_service
    logger.info("famwish started storage=%s", server_config.storage.backend)

    yield

    await storage.close()


app = FastAPI(
    title="Famwish Bid Service",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_storage_backend(request: Request) -> AuctionStore:
    return request.app.state.storage


def get_bid_ledger(request: Request) -> BidLedger:
    return request.app.state.bid_ledger


def get_auction_service(request: Request) -> AuctionService:
    return request.app.state.auction_service


def raise_http_error(exc: Exception) -> NoReturn:
    if isinstance(exc, BidError):
        code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        raise HTTPException(status_code=code, detail=exc.to_detail()) from exc
    if isinstance(exc, StoreUnavailable):
        logger.error("store unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "store_unavailable", "message": "storage temporarily unavailable"},
        ) from exc
    raise exc


def validate_body(schemas: SchemaRegistry, schema_name: str, payload: Any) -> None:
    try:
        schemas.validate(schema_name, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc.message)) from exc


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "famwish",
        "version": app.version,
        "bidding": {
            "min_increment": settings.bidding.min_increment,
            "auto_retry": settings.bidding.auto_retry,
            "enforce_end_date": settings.bidding.enforce_end_date,
        },
    }


@app.get("/auctions", tags=["auctions"])
async def list_auctions(
    search: str | None = None,
    created_by: str | None = None,
    service: AuctionService = Depends(get_auction_service),
) -> list[dict[str, Any]]:
    try:
        auctions = await service.list_auctions(search=search, created_by=created_by)
    except StoreUnavailable as exc:
        raise_http_error(exc)
    return [service.summarize(auction) for auction in auctions]


@app.post("/auctions", tags=["auctions"], status_code=status.HTTP_201_CREATED)
async def create_auction(
    payload: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    schemas: SchemaRegistry = Depends(get_schema_service),
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    try:
        identity.require(Capability.CREATE_AUCTION)
    except Forbidden as exc:
        raise_http_error(exc)
    validate_body(schemas, "auction_create", payload)
    try:
        auction = await service.create_auction(identity.user_id, payload)
    except (BidError, StoreUnavailable) as exc:
        raise_http_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"message": "Auction created successfully", "auction_id": auction.auction_id}


@app.get("/auctions/{auction_id}", tags=["auctions"])
async def get_auction(
    auction_id: str,
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    try:
        auction = await service.get_auction(auction_id)
    except (BidError, StoreUnavailable) as exc:
        raise_http_error(exc)
    return service.describe(auction)


@app.put("/auctions/{auction_id}", tags=["auctions"])
async def update_auction(
    auction_id: str,
    payload: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    schemas: SchemaRegistry = Depends(get_schema_service),
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    try:
        identity.require(Capability.MANAGE_AUCTION)
    except Forbidden as exc:
        raise_http_error(exc)
    validate_body(schemas, "auction_update", payload)
    try:
        auction = await service.update_auction(auction_id, identity.user_id, payload)
    except (BidError, StoreUnavailable) as exc:
        raise_http_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return service.describe(auction)


@app.delete("/auctions/{auction_id}", tags=["auctions"])
async def delete_auction(
    auction_id: str,
    identity: Identity = Depends(get_identity),
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, bool]:
    try:
        identity.require(Capability.MANAGE_AUCTION)
        await service.delete_auction(auction_id, identity.user_id)
    except (BidError, StoreUnavailable) as exc:
        raise_http_error(exc)
    return {"success": True}


@app.get("/auctions/{auction_id}/bids", tags=["bids"])
async def bid_history(
    auction_id: str,
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    try:
        auction = await service.get_auction(auction_id)
    except (BidError, StoreUnavailable) as exc:
        raise_http_error(exc)
    return {
        "auction_id": auction.auction_id,
        "title": auction.title,
        "bid_count": auction.bid_count,
        "bid_history": [bid.to_document() for bid in auction.bid_history],
    }


@app.post("/auctions/{auction_id}/bids", tags=["bids"], status_code=status.HTTP_201_CREATED)
async def place_bid(
    auction_id: str,
    payload: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    schemas: SchemaRegistry = Depends(get_schema_service),
    ledger: BidLedger = Depends(get_bid_ledger),
) -> dict[str, Any]:
    try:
        identity.require(Capability.PLACE_BID)
    except Forbidden as exc:
        raise_http_error(exc)
    validate_body(schemas, "bid_request", payload)
    try:
        receipt = await ledger.place_bid(
            auction_id,
            identity.user_id,
            identity.name,
            payload["amount"],
        )
    except (BidError, StoreUnavailable) as exc:
        raise_http_error(exc)
    return receipt.to_response()
