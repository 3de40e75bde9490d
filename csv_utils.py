import csv
import re
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Any, Iterable, Mapping, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from config import IMPORT_LIMITS
from row_validation import ImportErrorCode
from schemas import StructureReport

RECORD_KINDS = ("transactions", "categories", "budgets")

# canonical field -> display header, in column order
FIELD_MAPPINGS: dict[str, dict[str, str]] = {
    "transactions": {
        "type": "Type",
        "amount": "Amount",
        "description": "Description",
        "category": "Category",
        "date": "Date",
    },
    "categories": {
        "name": "Name",
        "type": "Type",
        "color": "Color",
        "icon": "Icon",
        "description": "Description",
        "parent_category": "Parent Category",
    },
    "budgets": {
        "category": "Category",
        "amount": "Budget Amount",
        "period": "Period",
        "start_date": "Start Date",
        "end_date": "End Date",
    },
}

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "transactions": ("type", "amount", "description", "category", "date"),
    "categories": ("name", "type", "color", "icon"),
    "budgets": ("category", "amount", "period", "start_date"),
}

EXAMPLE_ROWS: dict[str, list[dict[str, str]]] = {
    "transactions": [
        {
            "type": "expense",
            "amount": "12.50",
            "description": "Coffee shop",
            "category": "Dining Out",
            "date": "2025-06-25",
        },
        {
            "type": "income",
            "amount": "3000.00",
            "description": "Salary payment",
            "category": "Salary",
            "date": "2025-06-01",
        },
    ],
    "categories": [
        {
            "name": "Coffee & Tea",
            "type": "expense",
            "color": "#8B5CF6",
            "icon": "coffee",
            "description": "Coffee, tea, and beverages",
            "parent_category": "Dining Out",
        }
    ],
    "budgets": [
        {
            "category": "Groceries",
            "amount": "500.00",
            "period": "monthly",
            "start_date": "2025-06-01",
            "end_date": "2025-06-30",
        }
    ],
}

INSTRUCTIONS: dict[str, list[str]] = {
    "transactions": [
        'Type: "income" or "expense"',
        "Amount: Positive number (e.g., 25.50)",
        "Description: Brief description of the transaction",
        "Category: Must match existing category name",
        "Date: YYYY-MM-DD format",
    ],
    "categories": [
        "Name: Unique category name",
        'Type: "income" or "expense"',
        "Color: Hex color code (e.g., #FF5733)",
        "Icon: FontAwesome icon name",
        "Description: Optional description",
        "Parent Category: Optional parent category name",
    ],
    "budgets": [
        "Category: Must match existing expense category",
        "Budget Amount: Positive number",
        'Period: "weekly", "monthly", or "yearly"',
        "Start Date: YYYY-MM-DD format",
        "End Date: Optional end date (YYYY-MM-DD)",
    ],
}

GENERAL_INSTRUCTIONS = [
    "General Guidelines:",
    "• Each sheet represents a different data type",
    "• Do not modify the header row",
    "• Follow the example format provided",
    "• Dates should be in YYYY-MM-DD format",
    "• Amounts should be positive numbers",
]

LOWERCASED_FIELDS = ("type", "period")
# Free-text columns keep their literal text: "0042" stays "0042".
TEXT_FIELDS = frozenset(
    {"type", "period", "description", "name", "category", "parent_category", "icon", "color"}
)
INT_RE = re.compile(r"^-?\d+$")
DECIMAL_RE = re.compile(r"^-?(\d+\.\d*|\.\d+)([eE][-+]?\d+)?$")
HEADER_NOISE_RE = re.compile(r"[_\s-]")


class TabularError(ValueError):
    """The file as a whole cannot be read."""

    def __init__(self, code: ImportErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def normalize_header(value: str) -> str:
    return HEADER_NOISE_RE.sub("", str(value).lower())


def trim_cell(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


def coerce_cell(value: Any) -> Any:
    """Trim text and turn numeric/boolean literals into Python values."""
    text = trim_cell(value)
    if not isinstance(text, str):
        return text
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if INT_RE.match(text):
        return int(text)
    if DECIMAL_RE.match(text):
        return Decimal(text)
    return text


def _reverse_mapping(record_type: str) -> dict[str, str]:
    lookup: dict[str, str] = {}
    for canonical, display in FIELD_MAPPINGS[record_type].items():
        lookup[normalize_header(display)] = canonical
        lookup.setdefault(normalize_header(canonical), canonical)
    return lookup


def to_canonical(row: Mapping[str, Any], record_type: str) -> dict[str, Any]:
    """Re-key a header-keyed row by canonical field; unknown headers drop out.

    Text fields are only trimmed; amounts and dates go through ``coerce_cell``.
    """
    lookup = _reverse_mapping(record_type)
    out: dict[str, Any] = {}
    for header, value in row.items():
        if header is None:
            continue
        canonical = lookup.get(normalize_header(header))
        if canonical is None or canonical in out:
            continue
        if canonical not in TEXT_FIELDS:
            value = coerce_cell(value)
        else:
            value = trim_cell(value)
            if canonical in LOWERCASED_FIELDS and isinstance(value, str):
                value = value.lower()
        out[canonical] = value
    return out


def _strip_comment_lines(text: str) -> str:
    lines = text.splitlines(keepends=True)
    idx = 0
    while idx < len(lines) and (
        not lines[idx].strip() or lines[idx].lstrip().startswith("#")
    ):
        idx += 1
    return "".join(lines[idx:])


def _sniff_delimiter(text: str) -> str:
    first_line = text.splitlines()[0] if text else ""
    try:
        return csv.Sniffer().sniff(first_line, delimiters=",;\t|").delimiter
    except csv.Error:
        return ","


def read_csv(
    content: str,
    record_type: str,
    *,
    delimiter: Optional[str] = None,
    max_rows: int = IMPORT_LIMITS.max_rows_csv,
) -> tuple[list[str], list[dict[str, Any]]]:
    """Parse CSV text into (headers, canonical rows)."""
    if record_type not in RECORD_KINDS:
        raise TabularError(
            ImportErrorCode.INVALID_FORMAT,
            "CSV files hold a single record type; use XLSX for a full import",
        )
    body = _strip_comment_lines(content.lstrip("\ufeff"))
    if not body.strip():
        raise TabularError(ImportErrorCode.INVALID_FORMAT, "File is empty")

    reader = csv.DictReader(StringIO(body), delimiter=delimiter or _sniff_delimiter(body))
    headers = [(name or "").strip() for name in reader.fieldnames or []]
    reader.fieldnames = headers

    rows: list[dict[str, Any]] = []
    try:
        for raw in reader:
            values = {k: trim_cell(v) for k, v in raw.items() if k is not None}
            if all(v is None for v in values.values()):
                continue
            rows.append(to_canonical(values, record_type))
            if len(rows) > max_rows:
                raise TabularError(
                    ImportErrorCode.EXCEEDS_MAX_ROWS,
                    f"File exceeds maximum of {max_rows} rows",
                )
    except csv.Error as exc:
        raise TabularError(ImportErrorCode.INVALID_FORMAT, f"Malformed CSV: {exc}") from exc
    return headers, rows


def columns_for(record_type: str, fields: Optional[Sequence[str]] = None) -> list[str]:
    columns = list(FIELD_MAPPINGS[record_type])
    if fields:
        chosen = [c for c in columns if c in set(fields)]
        if chosen:
            return chosen
    return columns


def _category_label(relation: Any, fallback: Optional[str]) -> Optional[str]:
    if relation is not None and getattr(relation, "name", None):
        return relation.name
    return fallback


def record_values(record: Any, record_type: str) -> dict[str, Any]:
    """Canonical field -> typed cell value for one domain record."""
    if record_type == "transactions":
        return {
            "type": record.type.value,
            "amount": Decimal(record.amount),
            "description": record.description,
            "category": _category_label(
                getattr(record, "category", None), record.category_id
            ),
            "date": record.date,
        }
    if record_type == "categories":
        return {
            "name": record.name,
            "type": record.type.value,
            "color": record.color,
            "icon": record.icon,
            "description": record.description,
            "parent_category": _category_label(
                getattr(record, "parent", None), record.parent_id
            ),
        }
    if record_type == "budgets":
        return {
            "category": _category_label(
                getattr(record, "category", None), record.category_id
            ),
            "amount": Decimal(record.budget_amount),
            "period": record.period.value,
            "start_date": record.start_date,
            "end_date": record.end_date,
        }
    raise ValueError(f"Unknown record type: {record_type}")


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, date):
        return value.isoformat()
    return sanitize_csv_value(str(value))


def write_csv(
    records: Iterable[Any],
    record_type: str,
    *,
    include_headers: bool = True,
    fields: Optional[Sequence[str]] = None,
) -> str:
    columns = columns_for(record_type, fields)
    mapping = FIELD_MAPPINGS[record_type]
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    if include_headers:
        writer.writerow([mapping[c] for c in columns])
    for record in records:
        values = record_values(record, record_type)
        writer.writerow([format_cell(values[c]) for c in columns])
    return output.getvalue()


def csv_template(
    record_type: str, *, include_examples: bool = True, include_instructions: bool = True
) -> str:
    if record_type not in RECORD_KINDS:
        raise TabularError(
            ImportErrorCode.INVALID_FORMAT,
            "CSV templates are available per record type only",
        )
    mapping = FIELD_MAPPINGS[record_type]
    output = StringIO()
    if include_instructions:
        output.write(f"# {record_type.capitalize()} import template\n")
        for line in INSTRUCTIONS[record_type]:
            output.write(f"# {line}\n")
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    writer.writerow(list(mapping.values()))
    if include_examples:
        for example in EXAMPLE_ROWS[record_type]:
            writer.writerow([example.get(c, "") for c in mapping])
    return output.getvalue()


def validate_structure(headers: Sequence[str], record_type: str) -> StructureReport:
    """Compare file headers with the expected columns for ``record_type``."""
    mapping = FIELD_MAPPINGS[record_type]
    headers = [str(h).strip() for h in headers if h is not None and str(h).strip()]

    def matches(header: str, canonical: str) -> bool:
        normalized = normalize_header(header)
        for candidate in (canonical, mapping[canonical]):
            expected = normalize_header(candidate)
            if normalized == expected or normalized in expected or expected in normalized:
                return True
        return False

    missing = [
        mapping[field]
        for field in REQUIRED_FIELDS[record_type]
        if not any(matches(h, field) for h in headers)
    ]
    extra = [h for h in headers if not any(matches(h, field) for field in mapping)]

    suggestions: list[str] = []
    for header in extra:
        for display in mapping.values():
            similarity = Levenshtein.normalized_similarity(header.lower(), display.lower())
            if similarity > 0.6:
                suggestions.append(f'"{header}" might be "{display}"')

    return StructureReport(
        is_valid=not missing,
        missing_fields=missing,
        extra_fields=extra,
        suggestions=suggestions,
    )
