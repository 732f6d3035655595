"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from evote.core.config import settings
from evote.core.database import init_db, close_db
from evote.core.exceptions import VotingError
from evote.core.locks import KeyedLock
from evote.core.logging import configure_logging
from evote.chain.ledger_client import LedgerClient
from evote.api.router import api_router
from evote.services.admin_actions import AdminActionLog


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    await init_db()
    logger.info("%s started (blockchain mirror: %s)", settings.APP_NAME, app.state.ledger.mode)
    yield
    # Shutdown
    await close_db()


async def voting_error_handler(request: Request, exc: VotingError) -> JSONResponse:
    """Render domain errors as {"detail", "code"} with the error's status."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
        Aadhaar E-Voting System API

        Voter registration with Aadhaar ID, OTP and biometric verification,
        election management and vote casting with revoting.

        ## Key Features
        - One vote per voter per election; revotes move the vote
        - Results gated by election close and an explicit release
        - Best-effort blockchain mirror of every vote
        - Admin action feed for client sync
        """,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=f"{settings.API_PREFIX}/redoc",
        lifespan=lifespan,
    )

    # Process-wide shared state
    app.state.admin_actions = AdminActionLog()
    app.state.ledger = LedgerClient()
    app.state.election_locks = KeyedLock()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Gzip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_exception_handler(VotingError, voting_error_handler)

    # Include API router
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.APP_VERSION}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": f"{settings.API_PREFIX}/docs"
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "evote.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=settings.WORKERS if not settings.DEBUG else 1,
    )
