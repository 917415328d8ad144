"""
FastAPI application entry point for the Lead Router API.

Configures logging, builds the process-wide runtime objects in the lifespan
and registers the API routers and the RoutingError handler.

Lifespan:
- startup: database pool, routing tables, monday.com client, assignee
  resolver, and the external write queue (started on the running loop)
- shutdown: drain and stop the write queue, close the client, close the pool
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lead_router.api import api_router
from lead_router.core.config import get_settings
from lead_router.core.database import close_db, init_db
from lead_router.core.exceptions import RoutingError
from lead_router.services.monday_client import MondayClient
from lead_router.services.people import AssigneeResolver
from lead_router.services.routing_state import UserCacheRepository, ensure_tables
from lead_router.services.write_queue import ExternalWriteQueue

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.
    """
    # Startup
    logger.info("Lead Router API starting")
    try:
        await init_db()
        await ensure_tables()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        # Continue startup; queue metrics and health do not need the DB

    client = MondayClient.from_settings(settings)
    queue = ExternalWriteQueue.from_settings(settings)
    queue.start()

    app.state.monday_client = client
    app.state.write_queue = queue
    app.state.assignee_resolver = AssigneeResolver(
        client,
        UserCacheRepository(),
        ttl_seconds=settings.user_cache_ttl_seconds,
    )

    yield

    # Shutdown
    logger.info("Lead Router API shutting down")
    try:
        await queue.close()
    except Exception as e:
        logger.error(f"Error stopping write queue: {e}")
    try:
        await client.aclose()
    except Exception as e:
        logger.error(f"Error closing monday.com client: {e}")
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


# Create FastAPI application
app = FastAPI(
    title="Lead Router API",
    version="1.0.0",
    description=(
        "Routes monday.com leads to sales agents: rule evaluation, agent "
        "scoring, manager approval and exactly-once write-back."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RoutingError)
async def routing_error_handler(request: Request, exc: RoutingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: [{exc.code}] {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring and load balancer health checks."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {
        "name": "Lead Router API",
        "version": "1.0.0",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lead_router.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
