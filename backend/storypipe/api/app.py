"""FastAPI application setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storypipe import __version__
from storypipe.config import settings
from storypipe.db import init_database, shutdown
from storypipe.api.routes import router
from storypipe.orchestrator import JobNotFoundError
from storypipe.pipeline.storyboard import DecompositionError
from storypipe.services.vertex_client import clear_clients

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the checkpoint schema on startup, dispose the engine on shutdown.

    Storyboards left in progress by a previous process are not resumed
    automatically; POST /api/storyboards/{id}/resume continues them.
    """
    logger.info(f"Starting Storypipe API {__version__}")
    await init_database()

    yield

    logger.info("Shutting down Storypipe API")
    await shutdown()
    clear_clients()


app = FastAPI(
    title="Storypipe API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(DecompositionError)
async def decomposition_error_handler(request: Request, exc: DecompositionError):
    """The model could not plan the storyboard; nothing was persisted."""
    logger.warning(f"Decomposition failed for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": f"Storyboard generation failed: {exc}"},
    )


@app.exception_handler(JobNotFoundError)
async def job_not_found_handler(request: Request, exc: JobNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler to prevent stack traces in API responses."""
    logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
        }
    )
