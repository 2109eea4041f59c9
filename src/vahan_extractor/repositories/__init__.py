"""Repository layer for database operations."""

from .job_repository import JobRepository
from .result_repository import VehicleResultRepository

__all__ = [
    "JobRepository",
    "VehicleResultRepository",
]
