"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vahan_extractor import __version__
from vahan_extractor.api import auth_router, jobs_router
from vahan_extractor.api.deps import init_services
from vahan_extractor.core.config import settings
from vahan_extractor.core.logging import configure_logging
from vahan_extractor.database import init_db
from vahan_extractor.services.extractor import VahanExtractor
from vahan_extractor.services.job_store import JobStore
from vahan_extractor.services.orchestrator import JobOrchestrator
from vahan_extractor.services.progress_hub import ProgressHub
from vahan_extractor.services.session_manager import BrowserSession

# Configure logging
configure_logging(settings.logging)
logger = logging.getLogger(__name__)

# Service instances
job_store = JobStore()
progress_hub = ProgressHub(job_store.get_job)
browser_session = BrowserSession(settings.browser)
orchestrator = JobOrchestrator(
    store=job_store,
    hub=progress_hub,
    sessions=browser_session,
    extractor=VahanExtractor(settings.extraction, settings.browser.home_url),
    auth_config=settings.auth,
    extraction_config=settings.extraction,
    storage_config=settings.storage,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting Vahan Extractor v{__version__}")
    settings.ensure_dirs()

    logger.info("Initializing database...")
    await init_db()
    await job_store.fail_interrupted_jobs()
    logger.info("Database initialized")

    init_services(job_store, orchestrator, browser_session)

    logger.info(f"Server ready on {settings.host}:{settings.port}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await orchestrator.stop()
    await browser_session.release()


app = FastAPI(
    title="Vahan Extractor",
    description="Bulk vehicle detail extraction from the Vahan portal",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs_router)
app.include_router(auth_router)


@app.get("/")
async def root() -> dict:
    """Root endpoint with server info."""
    return {
        "name": "Vahan Extractor",
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "browser_open": browser_session.is_live(),
        "active_job": orchestrator.active_job_id,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vahan_extractor.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
