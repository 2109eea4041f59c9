"""Job ORM model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base


class JobORM(Base):
    """ORM model for jobs table."""

    __tablename__ = "jobs"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # Input/output files
    input_file_path: Mapped[Optional[str]] = mapped_column(String(512))
    input_file_name: Mapped[Optional[str]] = mapped_column(String(255))
    output_file_path: Mapped[Optional[str]] = mapped_column(String(512))

    # Counters
    total_vehicles: Mapped[int] = mapped_column(Integer, default=0)
    processed_vehicles: Mapped[int] = mapped_column(Integer, default=0)
    successful_extractions: Mapped[int] = mapped_column(Integer, default=0)
    failed_extractions: Mapped[int] = mapped_column(Integer, default=0)

    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(default=func.now())
