"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from policy_engine.api.v1.router import api_router
from policy_engine.config import settings
from policy_engine.core.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    PolicyNotFoundError,
    PolicyValidationError,
)
from policy_engine.db.session import dispose_engine
from policy_engine.deps import build_lifecycle_manager, store_scope
from policy_engine.services.templates import seed_templates

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SEED_POLICY_TEMPLATES:
        async with store_scope() as store:
            await seed_templates(build_lifecycle_manager(store))
    yield
    await dispose_engine()


# Create FastAPI application
app = FastAPI(
    title="Policy Engine API",
    description="API for managing versioned loan policies and evaluating applications against them",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Error Handlers ====================


@app.exception_handler(PolicyNotFoundError)
async def policy_not_found_handler(request: Request, exc: PolicyNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": exc.message, "error": "not_found"},
    )


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": exc.message, "error": "invalid_state"},
    )


@app.exception_handler(ConcurrencyConflictError)
async def concurrency_conflict_handler(
    request: Request, exc: ConcurrencyConflictError
) -> JSONResponse:
    logger.info(f"Concurrency conflict on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": exc.message,
            "error": "concurrency_conflict",
            "expectedLockVersion": exc.expected_lock_version,
            "actualLockVersion": exc.actual_lock_version,
        },
    )


@app.exception_handler(PolicyValidationError)
async def policy_validation_handler(request: Request, exc: PolicyValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.message, "error": "validation_error", "errors": exc.errors},
    )


# Include API router with v1 prefix
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "message": "Policy Engine API",
        "version": "1.0.0",
        "docs": "/api/docs",
    }
