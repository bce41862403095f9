"""FastAPI entry point for the partner desk application."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response

from app import __version__
from app.database import init_db
from app.errors import StoreUnavailable
from app.routers import admin, auth, documents, sellers

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="Partner Desk", version=__version__, lifespan=lifespan)

app.include_router(auth.router)
app.include_router(sellers.router)
app.include_router(admin.router)
app.include_router(admin.orders_router)
app.include_router(documents.router)


@app.get("/health")
def health() -> Response:
    """Simple health endpoint for load balancers and platform checks."""
    return Response(content='{"status":"ok"}', media_type="application/json")


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    """Generic retryable error; internal detail stays in the logs."""
    logger.error("[app] Store unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable, please retry."},
    )
