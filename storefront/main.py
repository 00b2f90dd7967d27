from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.api.routes_checkout import router as checkout_router
from storefront.api.routes_orders import router as orders_router
from storefront.core.config import get_settings
from storefront.core.errors import (
    CouponError,
    CouponStoreUnavailableError,
    FieldValidationError,
    InvalidMethodForZoneError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderPersistenceError,
    StaleQuoteError,
    StorefrontError,
)
from storefront.core.logging import configure_logging
from storefront.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

# Most specific first; the first isinstance match wins.
ERROR_STATUS: tuple[tuple[type[StorefrontError], int], ...] = (
    (OrderNotFoundError, 404),
    (StaleQuoteError, 409),
    (InvalidTransitionError, 409),
    (CouponStoreUnavailableError, 503),
    (OrderPersistenceError, 502),
    (CouponError, 422),
    (InvalidMethodForZoneError, 422),
    (FieldValidationError, 422),
)


def status_for(exc: StorefrontError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("storefront api ready env=%s", settings.env)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(_: Request, exc: StorefrontError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("upstream failure: %s", exc)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(checkout_router)
app.include_router(orders_router)
