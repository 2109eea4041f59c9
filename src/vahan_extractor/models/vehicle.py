"""Vehicle result models and export column definitions."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# Extracted attribute names, in export order
VEHICLE_FIELD_NAMES = (
    "maker",
    "maker_model",
    "vehicle_type",
    "vehicle_class",
    "vehicle_category",
    "seating_capacity",
    "unladen_weight",
    "laden_weight",
)
SLD_FIELD_NAMES = (
    "speed_governor_number",
    "speed_governor_manufacturer",
    "speed_governor_type",
    "speed_governor_approval_no",
    "speed_governor_test_report_no",
    "speed_governor_fitment_cert_no",
)
PERMIT_FIELD_NAMES = (
    "permit_type",
    "permit_category",
    "service_type",
    "office",
)
EXTRACTED_FIELD_NAMES = (
    VEHICLE_FIELD_NAMES
    + ("sld_status",)
    + SLD_FIELD_NAMES
    + ("permit_status",)
    + PERMIT_FIELD_NAMES
)


class SectionStatus(str, Enum):
    """Whether an optional portal section was found for a vehicle."""

    PRESENT = "Present"
    MISSING = "Missing"


class VehicleResult(BaseModel):
    """Outcome of one vehicle's extraction."""

    id: Optional[str] = None
    job_id: Optional[str] = None
    created_at: Optional[datetime] = None

    vehicle_number: str
    success: bool = False
    error_message: Optional[str] = None

    maker: Optional[str] = None
    maker_model: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_class: Optional[str] = None
    vehicle_category: Optional[str] = None
    seating_capacity: Optional[str] = None
    unladen_weight: Optional[str] = None
    laden_weight: Optional[str] = None

    sld_status: SectionStatus = SectionStatus.MISSING
    speed_governor_number: Optional[str] = None
    speed_governor_manufacturer: Optional[str] = None
    speed_governor_type: Optional[str] = None
    speed_governor_approval_no: Optional[str] = None
    speed_governor_test_report_no: Optional[str] = None
    speed_governor_fitment_cert_no: Optional[str] = None

    permit_status: SectionStatus = SectionStatus.MISSING
    permit_type: Optional[str] = None
    permit_category: Optional[str] = None
    service_type: Optional[str] = None
    office: Optional[str] = None

    @classmethod
    def failure(cls, vehicle_number: str, error_message: str) -> "VehicleResult":
        return cls(vehicle_number=vehicle_number, success=False, error_message=error_message)

    def extracted_fields(self) -> dict[str, Optional[str]]:
        """Extracted attributes only, with enums as plain strings."""
        data = self.model_dump(include=set(EXTRACTED_FIELD_NAMES), mode="json")
        return {name: data[name] for name in EXTRACTED_FIELD_NAMES}


class ResultPage(BaseModel):
    """Paged, optionally filtered list of vehicle results."""

    results: list[VehicleResult]
    total: int
    page: int
    page_size: int


class ColumnCategory(str, Enum):
    """Grouping used by the export column picker."""

    BASIC = "basic"
    VEHICLE = "vehicle"
    SLD = "sld"
    PERMIT = "permit"


class ColumnDefinition(BaseModel):
    """A column available for export."""

    id: str
    label: str
    category: ColumnCategory
    default: bool = False


class ExportFormat(str, Enum):
    """Download file format."""

    XLSX = "xlsx"
    CSV = "csv"


class DownloadRequest(BaseModel):
    """Request to export selected result columns."""

    columns: list[str] = Field(default_factory=list)
    format: ExportFormat = ExportFormat.XLSX


def _col(column_id: str, label: str, category: ColumnCategory, default: bool = False) -> ColumnDefinition:
    return ColumnDefinition(id=column_id, label=label, category=category, default=default)


COLUMN_DEFINITIONS: list[ColumnDefinition] = [
    _col("vehicle_number", "Vehicle Number", ColumnCategory.BASIC, True),
    _col("success", "Success", ColumnCategory.BASIC, True),
    _col("error_message", "Error Message", ColumnCategory.BASIC),
    _col("maker", "Maker", ColumnCategory.VEHICLE, True),
    _col("maker_model", "Maker Model", ColumnCategory.VEHICLE, True),
    _col("vehicle_type", "Vehicle Type", ColumnCategory.VEHICLE, True),
    _col("vehicle_class", "Vehicle Class", ColumnCategory.VEHICLE),
    _col("vehicle_category", "Vehicle Category", ColumnCategory.VEHICLE),
    _col("seating_capacity", "Seating Capacity", ColumnCategory.VEHICLE),
    _col("unladen_weight", "Unladen Weight", ColumnCategory.VEHICLE),
    _col("laden_weight", "Laden Weight", ColumnCategory.VEHICLE),
    _col("sld_status", "SLD Status", ColumnCategory.SLD, True),
    _col("speed_governor_number", "Speed Governor Number", ColumnCategory.SLD),
    _col("speed_governor_manufacturer", "Speed Governor Manufacturer", ColumnCategory.SLD),
    _col("speed_governor_type", "Speed Governor Type", ColumnCategory.SLD),
    _col("speed_governor_approval_no", "Speed Governor Approval No", ColumnCategory.SLD),
    _col("speed_governor_test_report_no", "Speed Governor Test Report No", ColumnCategory.SLD),
    _col("speed_governor_fitment_cert_no", "Speed Governor Fitment Cert No", ColumnCategory.SLD),
    _col("permit_status", "Permit Status", ColumnCategory.PERMIT, True),
    _col("permit_type", "Permit Type", ColumnCategory.PERMIT),
    _col("permit_category", "Permit Category", ColumnCategory.PERMIT),
    _col("service_type", "Service Type", ColumnCategory.PERMIT),
    _col("office", "Office", ColumnCategory.PERMIT),
]

COLUMNS_BY_ID = {column.id: column for column in COLUMN_DEFINITIONS}
