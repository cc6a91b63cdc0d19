"""
FastAPI application entry point.
Quote-to-policy insurance workflow service.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from policyflow import __version__
from policyflow.api.routes import router
from policyflow.config import Settings, get_settings
from policyflow.core.exceptions import PolicyflowError
from policyflow.core.ids import utc_now
from policyflow.jobs import IssuanceWorker, UnderwritingWorker
from policyflow.pipeline.catalog import seed_products
from policyflow.pipeline.orchestrator import InsurancePipeline
from policyflow.store.factory import Repositories, build_repositories


# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def problem(status: int, title: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"type": "about:blank", "title": title, "status": status, "detail": detail},
        media_type="application/problem+json",
    )


async def workflow_error_handler(request: Request, exc: PolicyflowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return problem(exc.status_code, exc.title, exc.message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return problem(500, "Internal Server Error", "internal error")


def create_app(
    settings: Optional[Settings] = None,
    repositories: Optional[Repositories] = None,
    clock: Callable[[], datetime] = utc_now
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (cached environment settings if not provided)
        repositories: Pre-built repositories; built from settings at startup if not provided
        clock: Time source for every pipeline service
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.
        Builds storage and pipeline on startup, stops the workers on shutdown.
        """
        logger.info("Starting Policyflow API...")
        logger.info(f"API Version: {__version__}")
        logger.info(f"Environment: {'Production' if settings.is_production else 'Development'}")

        repos = repositories or build_repositories(settings)
        if repos.backend == "memory":
            for product in seed_products():
                repos.products.upsert_by_slug(product)
            logger.info("Seeded in-memory product catalog")

        pipeline = InsurancePipeline(repos, settings=settings, clock=clock)
        workers = [
            UnderwritingWorker(
                repos.applications,
                pipeline.underwriting,
                interval=settings.worker_interval_sec,
                batch_limit=settings.worker_batch_limit,
            ),
            IssuanceWorker(
                repos.offers,
                pipeline.policies,
                interval=settings.worker_interval_sec,
                batch_limit=settings.worker_batch_limit,
            ),
        ]

        app.state.repositories = repos
        app.state.pipeline = pipeline
        app.state.workers = workers

        if settings.workers_enabled:
            for worker in workers:
                worker.start()
        else:
            logger.info("Background workers disabled")

        yield

        logger.info("Shutting down Policyflow API...")
        for worker in workers:
            worker.stop()
        repos.close()
        logger.info("Cleanup complete")

    app = FastAPI(
        title="Policyflow API",
        description="""
    Quote-to-policy insurance workflow

    ## Flow

    1. POST a quote request to `/api/v1/quotes`
    2. Create an application from the quote and submit it
    3. The underwriting worker scores the application; low-risk applications
       are approved automatically and receive an offer, others are referred
       to `/api/v1/underwriting/cases`
    4. Accept the offer; the issuance worker issues the policy
    """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PolicyflowError, workflow_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)

    @app.get("/", tags=["Root"])
    def root():
        """Root endpoint with API information."""
        return {
            "name": "Policyflow API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "policyflow.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )
