"""Job-related models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Status of a job."""

    PENDING = "pending"
    WAITING_AUTH = "waiting_auth"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Statuses from which a job may be (re)started
STARTABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.FAILED})
TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


class Job(BaseModel):
    """A bulk extraction job."""

    id: str
    status: JobStatus = JobStatus.PENDING

    input_file_path: Optional[str] = None
    input_file_name: Optional[str] = None
    output_file_path: Optional[str] = None

    total_vehicles: int = 0
    processed_vehicles: int = 0
    successful_extractions: int = 0
    failed_extractions: int = 0

    error_message: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_startable(self) -> bool:
        return self.status in STARTABLE_STATUSES


class JobList(BaseModel):
    """Paged list of jobs."""

    jobs: list[Job]
    total: int
    page: int
    page_size: int


class JobProgress(BaseModel):
    """Point-in-time progress snapshot pushed to observers."""

    job_id: str
    status: JobStatus
    processed: int = 0
    total: int = 0
    successful: int = 0
    failed: int = 0
    current_vehicle: Optional[str] = None
    message: str = ""

    @classmethod
    def from_job(
        cls,
        job: Job,
        message: str,
        current_vehicle: Optional[str] = None,
    ) -> "JobProgress":
        """Build a progress event from a persisted job record."""
        return cls(
            job_id=job.id,
            status=job.status,
            processed=job.processed_vehicles,
            total=job.total_vehicles,
            successful=job.successful_extractions,
            failed=job.failed_extractions,
            current_vehicle=current_vehicle,
            message=message,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
