"""Vehicle result ORM model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base


class VehicleResultORM(Base):
    """ORM model for vehicle_results table. One row per attempted vehicle."""

    __tablename__ = "vehicle_results"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    job_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("jobs.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=func.now())
    # Insertion order within a job; created_at ties at second resolution
    sequence: Mapped[int] = mapped_column(default=0)

    vehicle_number: Mapped[str] = mapped_column(String(32), index=True)
    success: Mapped[bool] = mapped_column(default=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # Vehicle details
    maker: Mapped[Optional[str]] = mapped_column(String(255))
    maker_model: Mapped[Optional[str]] = mapped_column(String(255))
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(255))
    vehicle_class: Mapped[Optional[str]] = mapped_column(String(255))
    vehicle_category: Mapped[Optional[str]] = mapped_column(String(255))
    seating_capacity: Mapped[Optional[str]] = mapped_column(String(64))
    unladen_weight: Mapped[Optional[str]] = mapped_column(String(64))
    laden_weight: Mapped[Optional[str]] = mapped_column(String(64))

    # Speed limiting device
    sld_status: Mapped[Optional[str]] = mapped_column(String(20))
    speed_governor_number: Mapped[Optional[str]] = mapped_column(String(255))
    speed_governor_manufacturer: Mapped[Optional[str]] = mapped_column(String(255))
    speed_governor_type: Mapped[Optional[str]] = mapped_column(String(255))
    speed_governor_approval_no: Mapped[Optional[str]] = mapped_column(String(255))
    speed_governor_test_report_no: Mapped[Optional[str]] = mapped_column(String(255))
    speed_governor_fitment_cert_no: Mapped[Optional[str]] = mapped_column(String(255))

    # Permit
    permit_status: Mapped[Optional[str]] = mapped_column(String(20))
    permit_type: Mapped[Optional[str]] = mapped_column(String(255))
    permit_category: Mapped[Optional[str]] = mapped_column(String(255))
    service_type: Mapped[Optional[str]] = mapped_column(String(255))
    office: Mapped[Optional[str]] = mapped_column(String(255))
