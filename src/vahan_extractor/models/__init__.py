"""Data models."""

from .job import (
    STARTABLE_STATUSES,
    TERMINAL_STATUSES,
    Job,
    JobList,
    JobProgress,
    JobStatus,
)
from .vehicle import (
    COLUMN_DEFINITIONS,
    ColumnDefinition,
    DownloadRequest,
    ExportFormat,
    ResultPage,
    SectionStatus,
    VehicleResult,
)

__all__ = [
    "COLUMN_DEFINITIONS",
    "ColumnDefinition",
    "DownloadRequest",
    "ExportFormat",
    "Job",
    "JobList",
    "JobProgress",
    "JobStatus",
    "ResultPage",
    "STARTABLE_STATUSES",
    "SectionStatus",
    "TERMINAL_STATUSES",
    "VehicleResult",
]
