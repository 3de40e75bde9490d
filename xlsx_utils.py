from datetime import date, datetime, time
from decimal import Decimal
from io import BytesIO
from typing import Any, Iterable, Mapping, Optional, Sequence
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from config import IMPORT_LIMITS
from csv_utils import (
    EXAMPLE_ROWS,
    FIELD_MAPPINGS,
    GENERAL_INSTRUCTIONS,
    INSTRUCTIONS,
    RECORD_KINDS,
    TabularError,
    columns_for,
    record_values,
    to_canonical,
    trim_cell,
    validate_structure,
)
from row_validation import ImportErrorCode

SHEET_TITLES = {
    "transactions": "Transactions",
    "categories": "Categories",
    "budgets": "Budgets",
}
SHEET_VARIATIONS = {
    "transactions": ("transactions", "transaction", "trans", "data", "records"),
    "categories": ("categories", "category", "cats", "types"),
    "budgets": ("budgets", "budget", "plans", "planning"),
}
INSTRUCTIONS_SHEET = "Instructions"
METADATA_SHEET = "Metadata"
NON_DATA_SHEETS = {INSTRUCTIONS_SHEET.lower(), METADATA_SHEET.lower()}

HEADER_FONT = Font(bold=True)


def infer_type_from_sheet_name(name: str) -> Optional[str]:
    lowered = name.strip().lower()
    if lowered in NON_DATA_SHEETS:
        return None
    if "transaction" in lowered or "trans" in lowered or "record" in lowered:
        return "transactions"
    if "categor" in lowered or "cat" in lowered or "type" in lowered:
        return "categories"
    if "budget" in lowered or "plan" in lowered:
        return "budgets"
    return None


def _open(content: bytes):
    try:
        return load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        raise TabularError(
            ImportErrorCode.INVALID_FORMAT, f"Could not read XLSX file: {exc}"
        ) from exc


def _cell(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date() if value.time() == time.min else value
    if isinstance(value, float):
        return Decimal(str(value))
    return trim_cell(value)


def _sheet_rows(sheet) -> tuple[list[str], list[dict[str, Any]]]:
    headers: Optional[list[str]] = None
    rows: list[dict[str, Any]] = []
    for values in sheet.iter_rows(values_only=True):
        if values is None or all(v is None or str(v).strip() == "" for v in values):
            continue
        if headers is None:
            headers = ["" if v is None else str(v).strip() for v in values]
            continue
        row = {
            header: _cell(value)
            for header, value in zip(headers, values)
            if header
        }
        if all(v is None for v in row.values()):
            continue
        rows.append(row)
    return headers or [], rows


def _find_sheet(workbook, record_type: str):
    for sheet in workbook.worksheets:
        if sheet.title.strip().lower() in SHEET_VARIATIONS[record_type]:
            return sheet
    return workbook.worksheets[0] if workbook.worksheets else None


def read_xlsx(
    content: bytes,
    record_type: str,
    *,
    max_rows: int = IMPORT_LIMITS.max_rows_xlsx,
) -> dict[str, tuple[list[str], list[dict[str, Any]]]]:
    """Parse a workbook into {record kind: (headers, canonical rows)}.

    A single record type is read from its best matching sheet. ``full``
    reads every sheet whose name identifies a record kind.
    """
    workbook = _open(content)
    try:
        if record_type == "full":
            selected = [
                (kind, sheet)
                for sheet in workbook.worksheets
                if (kind := infer_type_from_sheet_name(sheet.title)) is not None
            ]
        else:
            sheet = _find_sheet(workbook, record_type)
            selected = [(record_type, sheet)] if sheet is not None else []

        parsed: dict[str, tuple[list[str], list[dict[str, Any]]]] = {}
        total = 0
        for kind, sheet in selected:
            headers, rows = _sheet_rows(sheet)
            total += len(rows)
            if total > max_rows:
                raise TabularError(
                    ImportErrorCode.EXCEEDS_MAX_ROWS,
                    f"File exceeds maximum of {max_rows} rows",
                )
            canonical = [to_canonical(row, kind) for row in rows]
            if kind in parsed:
                known_headers, known_rows = parsed[kind]
                parsed[kind] = (known_headers, known_rows + canonical)
            else:
                parsed[kind] = (headers, canonical)
    finally:
        workbook.close()
    if not parsed:
        raise TabularError(ImportErrorCode.INVALID_FORMAT, "Workbook has no data sheets")
    return parsed


def _xlsx_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def _autosize(sheet) -> None:
    for idx, column in enumerate(sheet.iter_cols(values_only=True), start=1):
        width = max((len(str(v)) for v in column if v is not None), default=8)
        sheet.column_dimensions[get_column_letter(idx)].width = min(width + 2, 60)


def _add_sheet(workbook: Workbook, title: str, header: Sequence[str]):
    sheet = workbook.create_sheet(title)
    if header:
        sheet.append(list(header))
        for cell in sheet[1]:
            cell.font = HEADER_FONT
    return sheet


def _to_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def write_xlsx(
    sheets: Mapping[str, Iterable[Any]],
    *,
    include_headers: bool = True,
    fields: Optional[Sequence[str]] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for kind, records in sheets.items():
        columns = columns_for(kind, fields)
        mapping = FIELD_MAPPINGS[kind]
        header = [mapping[c] for c in columns] if include_headers else []
        sheet = _add_sheet(workbook, SHEET_TITLES[kind], header)
        for record in records:
            values = record_values(record, kind)
            sheet.append([_xlsx_value(values[c]) for c in columns])
        for row in sheet.iter_rows(min_row=2 if include_headers else 1):
            for cell in row:
                if isinstance(cell.value, date):
                    cell.number_format = "yyyy-mm-dd"
                elif isinstance(cell.value, float):
                    cell.number_format = "0.00"
        _autosize(sheet)
    if metadata:
        sheet = _add_sheet(workbook, METADATA_SHEET, ["Key", "Value"])
        for key, value in metadata.items():
            sheet.append([key, "" if value is None else str(value)])
        _autosize(sheet)
    return _to_bytes(workbook)


def template_instructions(record_type: str) -> list[str]:
    kinds = RECORD_KINDS if record_type == "full" else (record_type,)
    lines = list(GENERAL_INSTRUCTIONS)
    for kind in kinds:
        lines.append("")
        lines.append(f"{SHEET_TITLES[kind]}:")
        lines.extend(f"• {line}" for line in INSTRUCTIONS[kind])
    return lines


def xlsx_template(
    record_type: str, *, include_examples: bool = True, include_instructions: bool = True
) -> bytes:
    kinds = RECORD_KINDS if record_type == "full" else (record_type,)
    workbook = Workbook()
    workbook.remove(workbook.active)
    for kind in kinds:
        mapping = FIELD_MAPPINGS[kind]
        sheet = _add_sheet(workbook, SHEET_TITLES[kind], list(mapping.values()))
        if include_examples:
            for example in EXAMPLE_ROWS[kind]:
                sheet.append([example.get(c, "") for c in mapping])
        _autosize(sheet)
    if include_instructions:
        sheet = workbook.create_sheet(INSTRUCTIONS_SHEET)
        for line in template_instructions(record_type):
            sheet.append([line])
        sheet.column_dimensions["A"].width = 70
    return _to_bytes(workbook)


def validate_xlsx_structure(
    content: bytes, record_type: str
) -> tuple[dict[str, list[str]], list[str], list[str]]:
    """Check sheets and headers; returns (headers per kind, issues, suggestions)."""
    workbook = _open(content)
    headers_by_kind: dict[str, list[str]] = {}
    issues: list[str] = []
    suggestions: list[str] = []
    try:
        kinds = RECORD_KINDS if record_type == "full" else (record_type,)
        for kind in kinds:
            sheet = None
            for candidate in workbook.worksheets:
                title = candidate.title.strip().lower()
                if title in SHEET_VARIATIONS[kind] or infer_type_from_sheet_name(title) == kind:
                    sheet = candidate
                    break
            if sheet is None and record_type != "full" and workbook.worksheets:
                sheet = workbook.worksheets[0]
            if sheet is None:
                issues.append(f"Missing sheet for {kind}")
                suggestions.append(f'Add a sheet named "{SHEET_TITLES[kind]}"')
                continue
            headers, _rows = _sheet_rows(sheet)
            headers_by_kind[kind] = headers
            report = validate_structure(headers, kind)
            for field in report.missing_fields:
                issues.append(f'{sheet.title}: missing required column "{field}"')
            suggestions.extend(report.suggestions)
    finally:
        workbook.close()
    return headers_by_kind, issues, suggestions
