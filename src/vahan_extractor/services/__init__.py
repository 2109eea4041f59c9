"""Services for vahan-extractor."""

from .job_store import JobStore
from .orchestrator import JobNotFound, JobNotStartable, JobOrchestrator, SessionBusy
from .progress_hub import ProgressHub
from .session_manager import BrowserSession, SessionUnavailable

__all__ = [
    "BrowserSession",
    "JobNotFound",
    "JobNotStartable",
    "JobOrchestrator",
    "JobStore",
    "ProgressHub",
    "SessionBusy",
    "SessionUnavailable",
]
