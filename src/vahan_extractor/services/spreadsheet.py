"""Spreadsheet input reading and result writing."""

import csv
import io
import re
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from openpyxl import Workbook, load_workbook

from ..models.vehicle import COLUMNS_BY_ID, ColumnDefinition, ExportFormat, VehicleResult

VEHICLE_NUMBER_COLUMN = "vehicle_number"
SUPPORTED_INPUT_SUFFIXES = (".xlsx", ".csv")

# Header labels of the results workbook written at job completion
RESULT_HEADERS = [
    ("vehicle_number", "vehicle_number"),
    ("maker", "Maker"),
    ("maker_model", "Maker Model"),
    ("vehicle_type", "Vehicle Type"),
    ("vehicle_class", "Vehicle Class"),
    ("vehicle_category", "Vehicle Category"),
    ("seating_capacity", "Seating Capacity"),
    ("unladen_weight", "Unladen Weight (Kg.)"),
    ("laden_weight", "Laden Weight (Kg.)"),
    ("speed_governor_number", "Speed Governor Number"),
    ("speed_governor_manufacturer", "Speed Governor Manufacturer Name"),
    ("speed_governor_type", "Speed Governor Type"),
    ("speed_governor_approval_no", "Speed Governor Type Approval No"),
    ("speed_governor_test_report_no", "Speed Governor Test Report No"),
    ("speed_governor_fitment_cert_no", "Speed Governor Fitment Cert No"),
    ("permit_type", "Permit Type"),
    ("permit_category", "Permit Category"),
    ("service_type", "Service Type"),
    ("office", "Office"),
    ("sld_status", "SLD_Status"),
    ("permit_status", "Permit_Status"),
]

_WHITESPACE = re.compile(r"\s+")


class InputFileError(ValueError):
    """The uploaded spreadsheet cannot be used as job input."""


def normalize_vehicle_number(value: Any) -> str:
    """Uppercase a registration number and strip all whitespace."""
    return _WHITESPACE.sub("", str(value)).upper()


def _iter_rows(path: Path) -> Iterator[list[Any]]:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        with open(path, newline="", encoding="utf-8-sig") as f:
            yield from csv.reader(f)
    elif suffix == ".xlsx":
        workbook = load_workbook(path, read_only=True, data_only=True)
        try:
            sheet = workbook.worksheets[0]
            for row in sheet.iter_rows(values_only=True):
                yield list(row)
        finally:
            workbook.close()
    else:
        raise InputFileError(
            f"Unsupported file type '{suffix}'. Use one of: {', '.join(SUPPORTED_INPUT_SUFFIXES)}"
        )


def read_vehicle_numbers(path: str | Path) -> list[str]:
    """Read normalized vehicle numbers, in sheet order, from the first sheet.

    Raises:
        InputFileError: If the file is unreadable or lacks a vehicle_number column
    """
    path = Path(path)
    try:
        rows = _iter_rows(path)
        header = next(rows, None)
        if header is None:
            raise InputFileError("File is empty")

        names = [str(cell).strip() if cell is not None else "" for cell in header]
        if VEHICLE_NUMBER_COLUMN not in names:
            raise InputFileError(f"File must have a '{VEHICLE_NUMBER_COLUMN}' column")
        column = names.index(VEHICLE_NUMBER_COLUMN)

        numbers = []
        for row in rows:
            if column >= len(row) or row[column] is None:
                continue
            number = normalize_vehicle_number(row[column])
            if number:
                numbers.append(number)
        return numbers
    except InputFileError:
        raise
    except Exception as e:
        raise InputFileError(f"Failed to read file: {e}") from e


def count_vehicle_numbers(path: str | Path) -> int:
    """Validate an uploaded input file and return how many vehicles it lists.

    Raises:
        InputFileError: If the file is unusable or lists no vehicles
    """
    total = len(read_vehicle_numbers(path))
    if total == 0:
        raise InputFileError("No vehicle numbers found in file")
    return total


def write_results(results_dir: str | Path, job_id: str, rows: Iterable[VehicleResult]) -> str:
    """Write a job's results workbook and return its path."""
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    output_path = results_dir / f"{job_id}_results.xlsx"

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Results"
    sheet.append([label for _, label in RESULT_HEADERS])
    for row in rows:
        data = row.model_dump(mode="json")
        sheet.append([data.get(name) or "" for name, _ in RESULT_HEADERS])
    workbook.save(output_path)

    return str(output_path)


def resolve_columns(column_ids: list[str]) -> list[ColumnDefinition]:
    """Map requested column ids to definitions.

    Raises:
        ValueError: If no columns are given or any id is unknown
    """
    if not column_ids:
        raise ValueError("No columns selected")
    invalid = [c for c in column_ids if c not in COLUMNS_BY_ID]
    if invalid:
        raise ValueError(f"Invalid columns: {', '.join(invalid)}")
    return [COLUMNS_BY_ID[c] for c in column_ids]


def export_results(
    results: list[VehicleResult],
    columns: list[ColumnDefinition],
    export_format: ExportFormat,
) -> bytes:
    """Render selected result columns as xlsx or csv bytes."""
    header = [column.label for column in columns]
    body = []
    for result in results:
        data = result.model_dump(mode="json")
        body.append([_cell(data.get(column.id)) for column in columns])

    if export_format == ExportFormat.CSV:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(header)
        writer.writerows(body)
        return buffer.getvalue().encode("utf-8")

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Results"
    sheet.append(header)
    for row in body:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _cell(value: Optional[Any]) -> Any:
    return "" if value is None else value


def export_filename(input_file_name: Optional[str], export_format: ExportFormat) -> str:
    """Download name derived from the uploaded file name."""
    base = Path(input_file_name or "results").stem
    return f"results_{base}.{export_format.value}"
