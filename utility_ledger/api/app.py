"""FastAPI application for the utility ledger."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from utility_ledger.api.billing import router as billing_router
from utility_ledger.api.errors import register_error_handlers
from utility_ledger.config import settings
from utility_ledger.models import Base
from utility_ledger.services import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.api_title,
    description="Billing cycle and payment reconciliation engine",
    version=settings.api_version,
    lifespan=lifespan,
)

register_error_handlers(app)
app.include_router(billing_router)


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {"status": "ok"}


__all__ = ["app"]
