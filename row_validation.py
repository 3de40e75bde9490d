"""Per-row validation for tabular imports.

Each ``validate_*_row`` function checks one raw row (canonical field names
to raw cell values) against a ``RowContext`` and records problems on a
``ValidationReport``. Both objects belong to a single import call, so
independent files can be validated concurrently. A valid row comes back as
a dict of normalised values, an invalid one as ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from models import BudgetPeriod, TransactionType
from periods import end_date_for_period, local_today, ranges_overlap
from schemas import (
    MAX_AMOUNT,
    BudgetOut,
    CategoryOut,
    RowError,
    RowWarning,
    ValidationSummary,
)

HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
MAX_NAME_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 200
FUTURE_DATE_GRACE = timedelta(days=7)


CURRENCY_CHARS_RE = re.compile(r"[$,€£¥\s]")

# display name -> (shape check, strptime format), tried in this order
DATE_FORMATS: dict[str, tuple[re.Pattern, str]] = {
    "YYYY-MM-DD": (re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"), "%Y-%m-%d"),
    "MM/DD/YYYY": (re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "%m/%d/%Y"),
    "DD/MM/YYYY": (re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "%d/%m/%Y"),
    "YYYY/MM/DD": (re.compile(r"^\d{4}/\d{1,2}/\d{1,2}$"), "%Y/%m/%d"),
    "MM-DD-YYYY": (re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "%m-%d-%Y"),
    "DD-MM-YYYY": (re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "%d-%m-%Y"),
}


def parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Invalid amount")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        clean = CURRENCY_CHARS_RE.sub("", str(value))
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    return amount


def parse_date(value: Any, *, preferred: Optional[str] = None) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    order = list(DATE_FORMATS)
    if preferred in DATE_FORMATS:
        order.remove(preferred)
        order.insert(0, preferred)
    for name in order:
        shape, fmt = DATE_FORMATS[name]
        if not shape.match(text):
            continue
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise ValueError(f"Invalid date: {text}") from exc


class ImportErrorCode(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_FIELD_VALUE = "INVALID_FIELD_VALUE"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    INVALID_DATE_FORMAT = "INVALID_DATE_FORMAT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_TYPE = "INVALID_TYPE"
    INVALID_PERIOD = "INVALID_PERIOD"
    OVERLAPPING_BUDGET = "OVERLAPPING_BUDGET"
    CIRCULAR_CATEGORY_REFERENCE = "CIRCULAR_CATEGORY_REFERENCE"
    EXCEEDS_MAX_ROWS = "EXCEEDS_MAX_ROWS"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNSUPPORTED_FILE_TYPE = "UNSUPPORTED_FILE_TYPE"
    IMPORT_FAILED = "IMPORT_FAILED"


class ImportWarningCode(str, Enum):
    MISSING_OPTIONAL_FIELD = "MISSING_OPTIONAL_FIELD"
    DATA_TRUNCATED = "DATA_TRUNCATED"
    AUTO_CORRECTED_VALUE = "AUTO_CORRECTED_VALUE"
    DUPLICATE_SKIPPED = "DUPLICATE_SKIPPED"
    CATEGORY_AUTO_CREATED = "CATEGORY_AUTO_CREATED"


@dataclass
class ValidationReport:
    errors: list[RowError] = field(default_factory=list)
    warnings: list[RowWarning] = field(default_factory=list)

    def error(
        self,
        row: int,
        field_name: Optional[str],
        value: Any,
        code: ImportErrorCode,
        message: str,
    ) -> None:
        self.errors.append(
            RowError(
                row=row,
                field=field_name,
                value=_jsonable(value),
                error_code=code.value,
                message=message,
            )
        )

    def warn(
        self,
        row: int,
        field_name: Optional[str],
        value: Any,
        code: ImportWarningCode,
        message: str,
    ) -> None:
        self.warnings.append(
            RowWarning(
                row=row,
                field=field_name,
                value=_jsonable(value),
                warning_code=code.value,
                message=message,
            )
        )

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def summary(self, total_rows: int) -> ValidationSummary:
        error_rows = {err.row for err in self.errors}
        warning_rows = {warn.row for warn in self.warnings}
        return ValidationSummary(
            total_rows=total_rows,
            valid_rows=total_rows - len(error_rows),
            rows_with_errors=len(error_rows),
            rows_with_warnings=len(warning_rows),
        )


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class CategoryLookup:
    """Categories addressable by id or by case-insensitive name."""

    def __init__(self, categories: Iterable[CategoryOut] = ()) -> None:
        self._by_id: dict[str, CategoryOut] = {}
        self._by_name: dict[str, list[CategoryOut]] = {}
        for category in categories:
            self.add(category)

    def add(self, category: CategoryOut) -> None:
        self._by_id[category.id] = category
        bucket = self._by_name.setdefault(category.name.strip().lower(), [])
        bucket[:] = [c for c in bucket if c.id != category.id] + [category]

    def __iter__(self):
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def resolve(
        self, ref: Any, type_hint: Optional[TransactionType] = None
    ) -> Optional[CategoryOut]:
        key = str(ref).strip()
        if key in self._by_id:
            return self._by_id[key]
        matches = self._by_name.get(key.lower(), [])
        if type_hint is not None:
            for category in matches:
                if category.type == type_hint:
                    return category
        return matches[0] if matches else None

    def find(self, name: str, type_: TransactionType) -> Optional[CategoryOut]:
        for category in self._by_name.get(name.strip().lower(), []):
            if category.type == type_:
                return category
        return None


@dataclass
class RowContext:
    categories: CategoryLookup
    budgets: list[BudgetOut] = field(default_factory=list)
    today: date = field(default_factory=local_today)
    date_format: Optional[str] = None
    # When set, clashes with stored records are left to the importer
    # (skip or update). A category name repeated within one file is an
    # error; overlapping budget rows of one file are skipped by the importer.
    allow_existing: bool = False
    seen_categories: dict[tuple[TransactionType, str], str] = field(
        default_factory=dict
    )


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _transaction_type(value: Any) -> Optional[TransactionType]:
    try:
        return TransactionType(_text(value).lower())
    except ValueError:
        return None


def _check_amount(
    report: ValidationReport,
    row_index: int,
    value: Any,
    *,
    label: str,
) -> Optional[Decimal]:
    try:
        amount = parse_amount(value)
    except ValueError:
        amount = None
    if amount is None or amount <= 0:
        report.error(
            row_index,
            "amount",
            value,
            ImportErrorCode.INVALID_AMOUNT,
            f"{label} must be a positive number",
        )
        return None
    if amount > MAX_AMOUNT:
        report.error(
            row_index,
            "amount",
            value,
            ImportErrorCode.INVALID_AMOUNT,
            f"{label} cannot exceed 999,999,999.99",
        )
        return None
    rounded = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if rounded != amount:
        report.warn(
            row_index,
            "amount",
            value,
            ImportWarningCode.AUTO_CORRECTED_VALUE,
            f"{label} rounded to 2 decimal places",
        )
    return rounded


def _truncated_description(
    report: ValidationReport, row_index: int, value: Any
) -> str:
    text = _text(value)
    if len(text) > MAX_DESCRIPTION_LENGTH:
        report.warn(
            row_index,
            "description",
            value,
            ImportWarningCode.DATA_TRUNCATED,
            "Description will be truncated to 200 characters",
        )
        text = text[:MAX_DESCRIPTION_LENGTH]
    return text


def _parse_row_date(value: Any, ctx: RowContext) -> Optional[date]:
    try:
        return parse_date(value, preferred=ctx.date_format)
    except ValueError:
        return None


def validate_transaction_row(
    row: Mapping[str, Any],
    row_index: int,
    ctx: RowContext,
    report: ValidationReport,
) -> Optional[dict[str, Any]]:
    start = len(report.errors)
    out: dict[str, Any] = {}

    raw_type = row.get("type")
    txn_type: Optional[TransactionType] = None
    if _is_blank(raw_type):
        report.error(
            row_index,
            "type",
            raw_type,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Transaction type is required",
        )
    else:
        txn_type = _transaction_type(raw_type)
        if txn_type is None:
            report.error(
                row_index,
                "type",
                raw_type,
                ImportErrorCode.INVALID_TYPE,
                'Type must be "income" or "expense"',
            )
    out["type"] = txn_type

    raw_amount = row.get("amount")
    if _is_blank(raw_amount):
        report.error(
            row_index,
            "amount",
            raw_amount,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Amount is required",
        )
    else:
        out["amount"] = _check_amount(report, row_index, raw_amount, label="Amount")

    raw_description = row.get("description")
    if _is_blank(raw_description):
        report.error(
            row_index,
            "description",
            raw_description,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Description is required",
        )
    else:
        out["description"] = _truncated_description(report, row_index, raw_description)

    raw_category = row.get("category")
    if _is_blank(raw_category):
        report.error(
            row_index,
            "category",
            raw_category,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Category is required",
        )
    else:
        category = ctx.categories.resolve(raw_category, txn_type)
        if category is None:
            report.error(
                row_index,
                "category",
                raw_category,
                ImportErrorCode.CATEGORY_NOT_FOUND,
                f'Category "{_text(raw_category)}" not found',
            )
        elif txn_type is not None and category.type != txn_type:
            report.error(
                row_index,
                "category",
                raw_category,
                ImportErrorCode.INVALID_TYPE,
                f'Category "{category.name}" does not match transaction type "{txn_type.value}"',
            )
        elif not category.is_active:
            report.error(
                row_index,
                "category",
                raw_category,
                ImportErrorCode.INVALID_FIELD_VALUE,
                f'Category "{category.name}" is inactive',
            )
        else:
            out["category_id"] = category.id

    raw_date = row.get("date")
    if _is_blank(raw_date):
        report.error(
            row_index,
            "date",
            raw_date,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Date is required",
        )
    else:
        parsed = _parse_row_date(raw_date, ctx)
        if parsed is None:
            report.error(
                row_index,
                "date",
                raw_date,
                ImportErrorCode.INVALID_DATE_FORMAT,
                "Invalid date format. Use YYYY-MM-DD, MM/DD/YYYY, or DD/MM/YYYY",
            )
        else:
            if parsed > ctx.today + FUTURE_DATE_GRACE:
                report.warn(
                    row_index,
                    "date",
                    raw_date,
                    ImportWarningCode.AUTO_CORRECTED_VALUE,
                    "Date is more than 1 week in the future",
                )
            out["date"] = parsed

    if len(report.errors) > start:
        return None
    return out


def validate_category_row(
    row: Mapping[str, Any],
    row_index: int,
    ctx: RowContext,
    report: ValidationReport,
) -> Optional[dict[str, Any]]:
    start = len(report.errors)
    out: dict[str, Any] = {}

    raw_name = row.get("name")
    name: Optional[str] = None
    if _is_blank(raw_name):
        report.error(
            row_index,
            "name",
            raw_name,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Category name is required",
        )
    elif len(_text(raw_name)) > MAX_NAME_LENGTH:
        report.error(
            row_index,
            "name",
            raw_name,
            ImportErrorCode.INVALID_FIELD_VALUE,
            "Category name must be 50 characters or less",
        )
    else:
        name = _text(raw_name)
    out["name"] = name

    raw_type = row.get("type")
    cat_type: Optional[TransactionType] = None
    if _is_blank(raw_type):
        report.error(
            row_index,
            "type",
            raw_type,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Category type is required",
        )
    else:
        cat_type = _transaction_type(raw_type)
        if cat_type is None:
            report.error(
                row_index,
                "type",
                raw_type,
                ImportErrorCode.INVALID_TYPE,
                'Type must be "income" or "expense"',
            )
    out["type"] = cat_type

    if name is not None and cat_type is not None:
        key = (cat_type, name.lower())
        if key in ctx.seen_categories:
            report.error(
                row_index,
                "name",
                raw_name,
                ImportErrorCode.DUPLICATE_ENTRY,
                f'Category "{name}" appears more than once in this file',
            )
        elif ctx.categories.find(name, cat_type) and not ctx.allow_existing:
            report.error(
                row_index,
                "name",
                raw_name,
                ImportErrorCode.DUPLICATE_ENTRY,
                f'Category "{name}" already exists',
            )

    raw_color = row.get("color")
    if _is_blank(raw_color):
        report.error(
            row_index,
            "color",
            raw_color,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Color is required",
        )
    elif not HEX_COLOR_RE.match(_text(raw_color)):
        report.error(
            row_index,
            "color",
            raw_color,
            ImportErrorCode.INVALID_FIELD_VALUE,
            "Color must be a valid hex color (e.g., #FF0000)",
        )
    else:
        out["color"] = _text(raw_color)

    raw_icon = row.get("icon")
    if _is_blank(raw_icon):
        report.error(
            row_index,
            "icon",
            raw_icon,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Icon is required",
        )
    else:
        out["icon"] = _text(raw_icon)

    raw_description = row.get("description")
    out["description"] = (
        None
        if _is_blank(raw_description)
        else _truncated_description(report, row_index, raw_description)
    )

    raw_parent = row.get("parent_category")
    out["parent_category"] = None
    if not _is_blank(raw_parent):
        parent_ref = _text(raw_parent)
        parent = ctx.categories.resolve(parent_ref, cat_type)
        parent_type = parent.type if parent else None
        if parent is None:
            for seen_type in TransactionType:
                if (seen_type, parent_ref.lower()) in ctx.seen_categories:
                    parent_type = seen_type
                    if seen_type == cat_type:
                        break
        if parent_type is None:
            report.error(
                row_index,
                "parent_category",
                raw_parent,
                ImportErrorCode.CATEGORY_NOT_FOUND,
                f'Parent category "{parent_ref}" not found',
            )
        elif cat_type is not None and parent_type != cat_type:
            report.error(
                row_index,
                "parent_category",
                raw_parent,
                ImportErrorCode.INVALID_FIELD_VALUE,
                f'Parent category "{parent_ref}" must be of type "{cat_type.value}"',
            )
        elif name is not None and parent_ref.lower() == name.lower():
            report.error(
                row_index,
                "parent_category",
                raw_parent,
                ImportErrorCode.CIRCULAR_CATEGORY_REFERENCE,
                "Category cannot be its own parent",
            )
        else:
            out["parent_category"] = parent_ref

    if len(report.errors) > start:
        return None
    ctx.seen_categories[(cat_type, name.lower())] = name
    return out


def validate_budget_row(
    row: Mapping[str, Any],
    row_index: int,
    ctx: RowContext,
    report: ValidationReport,
) -> Optional[dict[str, Any]]:
    start = len(report.errors)
    out: dict[str, Any] = {}

    raw_category = row.get("category")
    if _is_blank(raw_category):
        report.error(
            row_index,
            "category",
            raw_category,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Category is required",
        )
    else:
        category = ctx.categories.resolve(raw_category, TransactionType.expense)
        if category is None:
            report.error(
                row_index,
                "category",
                raw_category,
                ImportErrorCode.CATEGORY_NOT_FOUND,
                f'Category "{_text(raw_category)}" not found',
            )
        elif category.type != TransactionType.expense:
            report.error(
                row_index,
                "category",
                raw_category,
                ImportErrorCode.INVALID_FIELD_VALUE,
                "Budgets can only be created for expense categories",
            )
        elif not category.is_active:
            report.error(
                row_index,
                "category",
                raw_category,
                ImportErrorCode.INVALID_FIELD_VALUE,
                "Cannot create budget for inactive category",
            )
        else:
            out["category_id"] = category.id

    raw_amount = row.get("amount")
    if _is_blank(raw_amount):
        report.error(
            row_index,
            "amount",
            raw_amount,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Budget amount is required",
        )
    else:
        out["budget_amount"] = _check_amount(
            report, row_index, raw_amount, label="Budget amount"
        )

    raw_period = row.get("period")
    period: Optional[BudgetPeriod] = None
    if _is_blank(raw_period):
        report.error(
            row_index,
            "period",
            raw_period,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Period is required",
        )
    else:
        try:
            period = BudgetPeriod(_text(raw_period).lower())
        except ValueError:
            report.error(
                row_index,
                "period",
                raw_period,
                ImportErrorCode.INVALID_PERIOD,
                'Period must be "weekly", "monthly", or "yearly"',
            )
    out["period"] = period

    raw_start = row.get("start_date")
    start_date: Optional[date] = None
    if _is_blank(raw_start):
        report.error(
            row_index,
            "start_date",
            raw_start,
            ImportErrorCode.MISSING_REQUIRED_FIELD,
            "Start date is required",
        )
    else:
        start_date = _parse_row_date(raw_start, ctx)
        if start_date is None:
            report.error(
                row_index,
                "start_date",
                raw_start,
                ImportErrorCode.INVALID_DATE_FORMAT,
                "Invalid start date format",
            )
    out["start_date"] = start_date

    raw_end = row.get("end_date")
    end_date: Optional[date] = None
    if not _is_blank(raw_end):
        end_date = _parse_row_date(raw_end, ctx)
        if end_date is None:
            report.error(
                row_index,
                "end_date",
                raw_end,
                ImportErrorCode.INVALID_DATE_FORMAT,
                "Invalid end date format",
            )
        elif start_date is not None and end_date <= start_date:
            report.error(
                row_index,
                "end_date",
                raw_end,
                ImportErrorCode.INVALID_FIELD_VALUE,
                "End date must be after start date",
            )

    if len(report.errors) > start:
        return None

    category_id = out["category_id"]
    end_date = end_date or end_date_for_period(start_date, period)
    out["end_date"] = end_date

    if not ctx.allow_existing:
        for budget in ctx.budgets:
            if (
                budget.category_id == category_id
                and budget.is_active
                and ranges_overlap(start_date, end_date, budget.start_date, budget.end_date)
            ):
                report.error(
                    row_index,
                    "start_date",
                    raw_start,
                    ImportErrorCode.OVERLAPPING_BUDGET,
                    "Budget period overlaps with existing budget for this category",
                )
                return None
    return out


ROW_VALIDATORS = {
    "transactions": validate_transaction_row,
    "categories": validate_category_row,
    "budgets": validate_budget_row,
}
