"""Spreadsheet ingestion for bulk generation.

Headers are matched to field labels exactly. Cells stay strings unless they
look like a JSON array or object, which table fields need as structured rows.
"""

import csv
import io
import json
from dataclasses import dataclass
from datetime import date
from typing import Any

from compositor.schemas.field import TemplateField

SUPPLIER_NAME_COLUMNS = ("supplier_name", "supplier")
SUPPLIER_EMAIL_COLUMNS = ("supplier_email", "email")
AMOUNT_COLUMNS = ("amount", "total")
DESCRIPTION_COLUMNS = ("description", "invoice_description")
RESERVED_COLUMNS = frozenset(
    SUPPLIER_NAME_COLUMNS
    + SUPPLIER_EMAIL_COLUMNS
    + AMOUNT_COLUMNS
    + DESCRIPTION_COLUMNS
    + ("issue_date", "due_date", "invoice_number")
)


class CsvFormatError(ValueError):
    pass


@dataclass
class ParsedTable:
    headers: list[str]
    rows: list[dict[str, Any]]


def parse_cell(value: str) -> Any:
    """Decode JSON-looking cells; everything else stays a string."""
    value = value.strip()
    if (value.startswith("[") and value.endswith("]")) or (
        value.startswith("{") and value.endswith("}")
    ):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def parse_csv(text: str) -> ParsedTable:
    """Parse CSV text whose first row holds the headers.

    Blank lines are skipped; short rows are padded with empty strings.
    Raises ``CsvFormatError`` when the file has no header row.
    """
    text = text.lstrip("\ufeff")
    reader = csv.reader(io.StringIO(text))
    records = [r for r in reader if any(cell.strip() for cell in r)]
    if not records:
        raise CsvFormatError("CSV file is empty")

    headers = [h.strip() for h in records[0]]
    rows = []
    for record in records[1:]:
        row = {}
        for index, header in enumerate(headers):
            cell = record[index] if index < len(record) else ""
            row[header] = parse_cell(cell)
        rows.append(row)
    return ParsedTable(headers=headers, rows=rows)


def first_present(row: dict[str, Any], columns: tuple[str, ...]) -> Any:
    """Value of the first non-empty reserved column."""
    for column in columns:
        value = row.get(column)
        if value not in (None, ""):
            return value
    return None


def _sample_value(field: TemplateField) -> Any:
    label = field.label.lower()
    match field.type:
        case "text":
            if "name" in label:
                return "John Doe"
            if "email" in label:
                return "john@example.com"
            if "phone" in label:
                return "+1234567890"
            return "Sample Text"
        case "image":
            return "https://example.com/image1.jpg"
        case "date":
            return date.today().isoformat()
        case "table":
            if field.columns:
                sample = {c.key: f"sample_{c.key}" for c in field.columns}
                return json.dumps([sample, sample])
            return json.dumps([{"item": "Sample Item", "qty": "1", "price": "100.00"}])
    return "sample_value"


def sample_csv(fields: list[TemplateField]) -> str:
    """A header row plus one example row for the given template fields."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(["supplier_name"] + [f.label for f in fields])
    writer.writerow(["Global Supplies Ltd"] + [_sample_value(f) for f in fields])
    return output.getvalue()


def error_report_csv(errors: list[dict[str, Any]]) -> str:
    """Render a job's error log as CSV (row number, message, row data)."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(["row", "error", "data"])
    for entry in errors:
        writer.writerow([
            entry.get("row", ""),
            entry.get("error", ""),
            json.dumps(entry.get("data", {}), default=str),
        ])
    return output.getvalue()
