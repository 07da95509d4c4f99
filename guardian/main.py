"""
Guardian FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guardian import config, db
from guardian.middleware.rate_limit import rate_limiter
from guardian.routes import auth_routes, ws
from guardian.routes import children as children_routes
from guardian.routes import messages as message_routes
from guardian.routes import users as user_routes

logger = logging.getLogger(__name__)


async def cleanup_task():
    """
    Background task pruning old rate limit entries.

    Runs every 60 seconds.
    """
    while True:
        try:
            rate_limiter.cleanup_old_entries(max_age_hours=2)
        except Exception as e:
            logger.error("Error in cleanup task: %s", e)

        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize database pool
    - Start background cleanup task
    - Close database pool on shutdown
    """
    logging.basicConfig(
        level=logging.INFO if config.settings.is_production else logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    await db.init_pool()
    logger.info("Database pool initialized")

    cleanup_task_handle = asyncio.create_task(cleanup_task())
    logger.info("Background cleanup task started")

    yield

    cleanup_task_handle.cancel()
    try:
        await cleanup_task_handle
    except asyncio.CancelledError:
        logger.info("Background cleanup task stopped")

    await db.close_pool()
    logger.info("Database pool closed")


app = FastAPI(
    title="Guardian",
    docs_url=None if config.settings.is_production else "/docs",
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.settings.CORS_ORIGINS,
    allow_credentials="*" not in config.settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed ids, missing fields and bad enum values are client errors (400)."""
    errors = [{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": errors},
    )


# Register routes
app.include_router(auth_routes.router)
app.include_router(user_routes.router)
app.include_router(children_routes.router)
app.include_router(message_routes.router)
app.include_router(ws.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok"}
