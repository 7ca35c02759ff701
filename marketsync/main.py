# marketsync/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from marketsync import __version__
from marketsync import models  # noqa: F401  registers every table on Base
from marketsync.core.config import get_settings
from marketsync.core.logging_config import configure_logging
from marketsync.routes import accounts, exchange_rates, health, orders, sync
from marketsync.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger.info(f"Starting marketsync {__version__} ({settings.ENVIRONMENT})")

    await start_scheduler()
    try:
        yield  # This is where the app runs
    finally:
        await stop_scheduler()


app = FastAPI(
    title="Marketplace Sync & Reconciliation",
    version=__version__,
    lifespan=lifespan
)


# Add middleware to handle HTTPS behind proxy
@app.middleware("http")
async def proxy_headers_middleware(request: Request, call_next):
    forwarded_proto = request.headers.get("x-forwarded-proto")
    if forwarded_proto == "https":
        request.scope["scheme"] = "https"
    response = await call_next(request)
    return response


app.include_router(sync.router)
app.include_router(orders.router)
app.include_router(exchange_rates.router)
app.include_router(accounts.router)
app.include_router(health.router)
