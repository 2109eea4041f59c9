"""Database ORM models."""

from .job import JobORM
from .vehicle_result import VehicleResultORM

__all__ = [
    "JobORM",
    "VehicleResultORM",
]
