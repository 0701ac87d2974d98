# Overview: Service-layer operations for CSV import/export of the component catalogue.

"""
CSV Import / Export

EXPORT:
Fixed column order, one row per active component.

IMPORT:
Rows are independent. A bad row is reported and skipped; good rows are
created through component_service, so the same validation and part-number
uniqueness rules apply. Imported quantity is the ledger baseline of the new
component (no movement rows are written).
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field

from ..extensions import db
from ..models import Component
from ..models.enums import ComponentCategory
from ..validation import (
    ConflictError,
    ValidationError,
    coerce_decimal,
    coerce_int,
)
from .component_service import create_component, list_active_components
from compstock.time_utils import to_utc_z


EXPORT_COLUMNS = [
    "Name",
    "Part Number",
    "Quantity",
    "Unit Price",
    "Critical Low Threshold",
    "Added Date",
    "Manufacturer",
    "Category",
    "Location",
    "Description",
    "Datasheet Link",
    "Last Updated",
]

NAME_HEADERS = ("Name", "Component Name")
DEFAULT_LOCATION = "Unassigned"


@dataclass
class ImportReport:
    created: list[Component] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": len(self.created),
            "failed": len(self.errors),
            "items": [c.to_dict() for c in self.created],
            "errors": self.errors,
        }


def _export_row(component: Component) -> list:
    return [
        component.name,
        component.part_number,
        component.quantity,
        f"{component.unit_price:.2f}",
        component.critical_low_threshold,
        to_utc_z(component.created_at) or "",
        component.manufacturer,
        component.category,
        component.location,
        component.description or "",
        component.datasheet_link or "",
        to_utc_z(component.updated_at) or "",
    ]


def export_components_csv(components: list[Component] | None = None) -> str:
    if components is None:
        components = list_active_components()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for component in components:
        writer.writerow(_export_row(component))
    return buffer.getvalue()


def _cell(row: dict, *keys: str) -> str | None:
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        text = str(value).strip()
        if text:
            return text
    return None


def _row_to_payload(row: dict) -> dict:
    name = _cell(row, *NAME_HEADERS)
    part_number = _cell(row, "Part Number")
    manufacturer = _cell(row, "Manufacturer")

    missing = [
        label for label, value in (
            ("name", name),
            ("part_number", part_number),
            ("manufacturer", manufacturer),
        )
        if value is None
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    quantity = _cell(row, "Quantity")
    unit_price = _cell(row, "Unit Price")
    threshold = _cell(row, "Critical Low Threshold")

    payload = {
        "name": name,
        "part_number": part_number,
        "manufacturer": manufacturer,
        "category": _cell(row, "Category") or ComponentCategory.OTHER.value,
        "location": _cell(row, "Location") or DEFAULT_LOCATION,
        "quantity": coerce_int("quantity", quantity) if quantity is not None else 0,
        "unit_price": coerce_decimal("unit_price", unit_price) if unit_price is not None else 0,
        "critical_low_threshold": coerce_int("critical_low_threshold", threshold) if threshold is not None else 0,
    }

    description = _cell(row, "Description")
    if description is not None:
        payload["description"] = description
    datasheet_link = _cell(row, "Datasheet Link")
    if datasheet_link is not None:
        payload["datasheet_link"] = datasheet_link
    return payload


def import_component_rows(rows: list[dict], actor=None, *, first_row_number: int = 2) -> ImportReport:
    """
    Create components from header-keyed rows.

    first_row_number is the file line of rows[0] (2 for a CSV with a header line).
    """
    report = ImportReport()
    for offset, row in enumerate(rows):
        row_number = first_row_number + offset
        try:
            report.created.append(create_component(_row_to_payload(row), actor))
        except (ValidationError, ConflictError) as exc:
            db.session.rollback()
            report.errors.append({"row": row_number, "error": str(exc)})
    return report


def parse_csv(text: str) -> list[dict]:
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationError("CSV file is empty")
    return [row for row in reader]


def import_components_csv(text: str, actor=None) -> ImportReport:
    return import_component_rows(parse_csv(text), actor)
