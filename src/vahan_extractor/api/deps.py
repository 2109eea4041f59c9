"""API dependencies."""

from typing import Annotated

from fastapi import Depends

from vahan_extractor.core.config import Settings, settings
from vahan_extractor.services.job_store import JobStore
from vahan_extractor.services.orchestrator import JobOrchestrator
from vahan_extractor.services.session_manager import BrowserSession

# Global service instances
_job_store: JobStore | None = None
_orchestrator: JobOrchestrator | None = None
_browser_session: BrowserSession | None = None


def init_services(
    job_store: JobStore,
    orchestrator: JobOrchestrator,
    browser_session: BrowserSession,
) -> None:
    """Initialize service instances."""
    global _job_store, _orchestrator, _browser_session
    _job_store = job_store
    _orchestrator = orchestrator
    _browser_session = browser_session


def get_job_store() -> JobStore:
    """Get the job store instance."""
    if _job_store is None:
        raise RuntimeError("Services not initialized")
    return _job_store


def get_orchestrator() -> JobOrchestrator:
    """Get the job orchestrator instance."""
    if _orchestrator is None:
        raise RuntimeError("Services not initialized")
    return _orchestrator


def get_browser_session() -> BrowserSession:
    """Get the browser session instance."""
    if _browser_session is None:
        raise RuntimeError("Services not initialized")
    return _browser_session


def get_settings() -> Settings:
    """Get the application settings."""
    return settings


# Type aliases for dependency injection
JobStoreDep = Annotated[JobStore, Depends(get_job_store)]
OrchestratorDep = Annotated[JobOrchestrator, Depends(get_orchestrator)]
BrowserSessionDep = Annotated[BrowserSession, Depends(get_browser_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
