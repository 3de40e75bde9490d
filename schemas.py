import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from models import BudgetPeriod, TransactionType

MAX_AMOUNT = Decimal("999999999.99")
HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"

# Amounts travel as Decimal internally and as JSON numbers on the wire.
Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]

ImportType = Literal["transactions", "categories", "budgets", "full"]
RecordKind = Literal["transactions", "categories", "budgets"]
FileFormat = Literal["csv", "xlsx"]


class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: TransactionType
    color: Optional[str] = None
    icon: Optional[str] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: TransactionType
    color: str
    icon: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryWithChildren(CategoryOut):
    parent: Optional[CategoryRef] = None
    children: list["CategoryWithChildren"] = Field(default_factory=list)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount: Money
    description: str
    category_id: str
    date: date
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransactionWithCategory(TransactionOut):
    category: Optional[CategoryRef] = None


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category_id: str
    budget_amount: Money
    period: BudgetPeriod
    start_date: date
    end_date: date
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BudgetWithCategory(BudgetOut):
    category: Optional[CategoryRef] = None


class BudgetWithProgress(BudgetWithCategory):
    spent_amount: Money = Decimal("0.00")
    remaining_amount: Money = Decimal("0.00")
    progress_percentage: Money = Decimal("0.00")
    is_overspent: bool = False
    days_remaining: int = 0
    average_daily_spending: Money = Decimal("0.00")
    projected_total: Money = Decimal("0.00")


class BudgetAlert(BaseModel):
    budget_id: str
    category_id: str
    category_name: Optional[str] = None
    alert_type: Literal["overspent", "exceeded_projection", "approaching_limit"]
    severity: Literal["high", "medium", "low"]
    message: str
    progress_percentage: Money
    spent_amount: Money
    budget_amount: Money


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: TransactionType
    color: str = Field(..., pattern=HEX_COLOR_PATTERN)
    icon: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    parent_id: Optional[str] = None
    is_default: bool = False
    is_active: bool = True


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    type: Optional[TransactionType] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    parent_id: Optional[str] = None
    is_active: Optional[bool] = None


class TransactionIn(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., le=MAX_AMOUNT)
    description: str = Field(..., min_length=1, max_length=200)
    category_id: str
    date: date


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, le=MAX_AMOUNT)
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category_id: Optional[str] = None
    date: Optional[dt.date] = None


class BudgetIn(BaseModel):
    category_id: str
    budget_amount: Decimal = Field(..., le=MAX_AMOUNT)
    period: BudgetPeriod
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True


class BudgetUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: Optional[str] = None
    budget_amount: Optional[Decimal] = Field(default=None, le=MAX_AMOUNT)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class RowError(BaseModel):
    row: int
    field: Optional[str] = None
    value: Any = None
    error_code: str
    message: str
    severity: Literal["error", "warning"] = "error"


class RowWarning(BaseModel):
    row: int
    field: Optional[str] = None
    value: Any = None
    warning_code: str
    message: str


class ValidationSummary(BaseModel):
    total_rows: int
    valid_rows: int
    rows_with_errors: int
    rows_with_warnings: int


class ImportOptions(BaseModel):
    format: Optional[FileFormat] = None
    type: ImportType = "transactions"
    validate_data: bool = False
    skip_duplicates: bool = False
    update_existing: bool = False
    date_format: Optional[str] = None
    delimiter: Optional[str] = None
    encoding: str = "utf8"


class ImportSummary(BaseModel):
    total_rows: int = 0
    processed: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class ImportResult(BaseModel):
    success: bool
    summary: ImportSummary = Field(default_factory=ImportSummary)
    errors: list[RowError] = Field(default_factory=list)
    warnings: list[RowWarning] = Field(default_factory=list)
    execution_time_ms: int = 0


class ExportOptions(BaseModel):
    format: FileFormat = "xlsx"
    type: ImportType = "full"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_ids: list[str] = Field(default_factory=list)
    types: list[TransactionType] = Field(default_factory=list)
    periods: list[BudgetPeriod] = Field(default_factory=list)
    include_headers: bool = True
    include_metadata: bool = False
    fields: Optional[list[str]] = None


class ExportSummary(BaseModel):
    transactions: Optional[int] = None
    categories: Optional[int] = None
    budgets: Optional[int] = None
    total_records: int = 0


class ExportResult(BaseModel):
    success: bool
    file_name: str = ""
    file_path: Optional[str] = Field(default=None, exclude=True)
    file_size: int = 0
    format: FileFormat = "xlsx"
    summary: ExportSummary = Field(default_factory=ExportSummary)
    metadata: dict[str, Any] = Field(default_factory=dict)
    execution_time_ms: int = 0


class TemplateOptions(BaseModel):
    format: FileFormat = "csv"
    type: ImportType = "transactions"
    include_examples: bool = True
    include_instructions: bool = True


class TemplateResult(BaseModel):
    file_name: str
    file_path: Optional[str] = Field(default=None, exclude=True)
    file_size: int = 0
    format: FileFormat
    type: ImportType
    instructions: list[str] = Field(default_factory=list)


class StructureReport(BaseModel):
    is_valid: bool
    missing_fields: list[str] = Field(default_factory=list)
    extra_fields: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class FileValidationResult(BaseModel):
    is_valid: bool
    format: Optional[FileFormat] = None
    type: ImportType
    headers: list[str] = Field(default_factory=list)
    row_count: int = 0
    structure: Optional[StructureReport] = None
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
