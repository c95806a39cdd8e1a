"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api import auth, insights, plaid, spending_patterns, transactions, webhooks
from config import settings
from database import check_connection, get_db, init_db
from integrations.exceptions import ProviderError, ProviderNotConfiguredError
from logging_config import setup_logging

API_NAME = "North API"
API_VERSION = "1.0.0-alpha"

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup."""
    try:
        init_db()
        logger.info("Database initialized")
    except SQLAlchemyError:
        logger.error("Database initialization failed on startup", exc_info=True)
    yield


app = FastAPI(
    title=API_NAME,
    description="Bank account linking, transaction sync and spending insights",
    version=API_VERSION,
    lifespan=lifespan,
)

# CORS configuration for the mobile and web clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    # Credentialed requests are never allowed from a wildcard origin
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(auth.router)
app.include_router(plaid.router)
app.include_router(transactions.router)
app.include_router(insights.router)
app.include_router(spending_patterns.router)
app.include_router(webhooks.router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400)."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error("Provider error on %s: %s", request.url.path, exc)
    if isinstance(exc, ProviderNotConfiguredError):
        return JSONResponse(status_code=503, content={"detail": "Bank linking is not configured"})
    return JSONResponse(status_code=502, content={"detail": "Provider request failed"})


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint, including database connectivity."""
    try:
        check_connection(db)
    except SQLAlchemyError as e:
        logger.error("Health check database error: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected"},
        )
    return {"status": "ok", "database": "connected"}


@app.get("/api")
def api_info():
    return {"name": API_NAME, "version": API_VERSION, "status": "running"}
