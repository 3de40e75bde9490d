"""Import and export of transactions, categories and budgets as CSV or XLSX.

An import validates every row against a snapshot of the stored categories
and budgets, taken once per record kind, and then writes the valid rows in
batches. Row problems are collected on the result and never raise. A problem
with the file as a whole (size, format, encoding, row limit, storage
failure) ends the import with a single ``IMPORT_FAILED`` error at row 0. In a
full import the kinds written before the failure keep their counts.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence
from uuid import uuid4

from config import IMPORT_LIMITS, Settings, get_settings
from csv_utils import (
    EXAMPLE_ROWS,
    FIELD_MAPPINGS,
    INSTRUCTIONS,
    RECORD_KINDS,
    REQUIRED_FIELDS,
    TabularError,
    csv_template,
    read_csv,
    validate_structure,
    write_csv,
)
from filters import Eq, Filter, Gte, In, Lte, Sort
from hierarchy import would_create_cycle
from models import TransactionType
from periods import local_now, ranges_overlap
from repositories import Repositories, Repository
from row_validation import (
    ROW_VALIDATORS,
    CategoryLookup,
    ImportErrorCode,
    ImportWarningCode,
    RowContext,
    ValidationReport,
)
from schemas import (
    BudgetWithCategory,
    CategoryWithChildren,
    ExportOptions,
    ExportResult,
    ExportSummary,
    FileValidationResult,
    ImportOptions,
    ImportResult,
    ImportSummary,
    RowError,
    TemplateOptions,
    TemplateResult,
    TransactionWithCategory,
)
from services import BusinessRuleError, category_ref, category_refs, unwrap
from xlsx_utils import (
    read_xlsx,
    template_instructions,
    validate_xlsx_structure,
    write_xlsx,
    xlsx_template,
)

logger = logging.getLogger(__name__)

ENCODINGS = {
    "utf8": "utf-8-sig",
    "utf-8": "utf-8-sig",
    "latin1": "latin-1",
    "ascii": "ascii",
}
FILE_EXTENSIONS = {".csv": "csv", ".xlsx": "xlsx"}
FULL_IMPORT_ORDER = ("categories", "transactions", "budgets")
CENT = Decimal("0.01")

# (row index, normalised values)
ValidRow = tuple[int, dict[str, Any]]


def detect_format(filename: Optional[str], declared: Optional[str] = None) -> str:
    if declared:
        return declared
    suffix = Path(filename or "").suffix.lower()
    if suffix not in FILE_EXTENSIONS:
        raise TabularError(
            ImportErrorCode.UNSUPPORTED_FILE_TYPE,
            f"Unsupported file format: {suffix or filename}",
        )
    return FILE_EXTENSIONS[suffix]


def decode(content: bytes, encoding: str) -> str:
    codec = ENCODINGS.get(encoding.strip().lower())
    if codec is None:
        raise TabularError(
            ImportErrorCode.INVALID_FORMAT, f"Unsupported encoding: {encoding}"
        )
    return content.decode(codec)


def check_size(content: bytes) -> None:
    if len(content) > IMPORT_LIMITS.max_file_size_bytes:
        raise TabularError(
            ImportErrorCode.FILE_TOO_LARGE,
            f"File size exceeds limit of {IMPORT_LIMITS.max_file_size_mb}MB",
        )


def transaction_key(
    type_: Any, amount: Any, description: str, category_id: str, txn_date: Any
) -> tuple:
    return (
        TransactionType(type_),
        Decimal(amount).quantize(CENT),
        description.strip().lower(),
        category_id,
        txn_date,
    )


def batches(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def merge_results(results: Sequence[ImportResult]) -> ImportResult:
    summary = ImportSummary()
    for field in ImportSummary.model_fields:
        setattr(summary, field, sum(getattr(r.summary, field) for r in results))
    return ImportResult(
        success=all(r.success for r in results),
        summary=summary,
        errors=[err for r in results for err in r.errors],
        warnings=[warn for r in results for warn in r.warnings],
    )


def failed_result(exc: Exception) -> ImportResult:
    return ImportResult(
        success=False,
        summary=ImportSummary(errors=1),
        errors=[
            RowError(
                row=0,
                error_code=ImportErrorCode.IMPORT_FAILED.value,
                message=str(exc) or "Import failed",
            )
        ],
    )


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ImportExportService:
    def __init__(self, repos: Repositories, settings: Optional[Settings] = None) -> None:
        self.repos = repos
        self.settings = settings or get_settings()

    def import_data(
        self, content: bytes, filename: str, options: ImportOptions
    ) -> ImportResult:
        started = time.perf_counter()
        logger.info(
            f"import_started: file={filename} type={options.type} bytes={len(content)}"
        )
        try:
            check_size(content)
            parsed = self._parse(content, detect_format(filename, options.format), options)
        except Exception as exc:
            logger.error(f"import_failed: file={filename} error={exc}")
            result = failed_result(exc)
        else:
            result = self._import_parsed(parsed, filename, options)
        result.execution_time_ms = elapsed_ms(started)
        summary = result.summary
        logger.info(
            f"import_finished: file={filename} success={result.success} "
            f"rows={summary.total_rows} imported={summary.imported} "
            f"updated={summary.updated} skipped={summary.skipped} errors={summary.errors}"
        )
        return result

    def _parse(
        self, content: bytes, file_format: str, options: ImportOptions
    ) -> dict[str, tuple[list[str], list[dict[str, Any]]]]:
        if file_format == "csv":
            text = decode(content, options.encoding)
            headers, rows = read_csv(
                text,
                options.type,
                delimiter=options.delimiter,
                max_rows=IMPORT_LIMITS.max_rows_csv,
            )
            return {options.type: (headers, rows)}
        parsed = read_xlsx(content, options.type, max_rows=IMPORT_LIMITS.max_rows_xlsx)
        if options.type != "full" and options.type not in parsed:
            parsed[options.type] = ([], [])
        return parsed

    def _import_parsed(
        self,
        parsed: dict[str, tuple[list[str], list[dict[str, Any]]]],
        filename: str,
        options: ImportOptions,
    ) -> ImportResult:
        if options.type != "full":
            kinds = [options.type]
        else:
            kinds = [kind for kind in FULL_IMPORT_ORDER if kind in parsed]
        results: list[ImportResult] = []
        for kind in kinds:
            try:
                results.append(self._import_kind(kind, parsed[kind][1], options))
            except Exception as exc:
                # Later kinds may reference rows of the failed one.
                logger.error(f"import_failed: file={filename} type={kind} error={exc}")
                results.append(failed_result(exc))
                break
        return results[0] if len(results) == 1 else merge_results(results)

    def _context(self, kind: str, options: ImportOptions) -> RowContext:
        categories = unwrap(self.repos.categories.find_all(), "fetch categories")
        budgets = []
        if kind == "budgets":
            budgets = unwrap(
                self.repos.budgets.find_all([Eq("is_active", True)]), "fetch budgets"
            )
        return RowContext(
            categories=CategoryLookup(categories),
            budgets=budgets,
            date_format=options.date_format,
            allow_existing=options.skip_duplicates or options.update_existing,
        )

    def _import_kind(
        self, kind: str, rows: Sequence[dict[str, Any]], options: ImportOptions
    ) -> ImportResult:
        summary = ImportSummary(total_rows=len(rows))
        if not rows:
            return ImportResult(success=True, summary=summary)

        ctx = self._context(kind, options)
        report = ValidationReport()
        validate = ROW_VALIDATORS[kind]
        valid: list[ValidRow] = []
        for index, row in enumerate(rows, start=1):
            values = validate(row, index, ctx, report)
            summary.processed += 1
            if values is not None:
                valid.append((index, values))

        if kind == "categories":
            waves = self._category_waves(valid, ctx, report)
        else:
            waves = [valid] if valid else []

        if waves and (not options.validate_data or report.is_valid):
            if kind == "categories":
                counts = self._persist_categories(waves, ctx, options, report)
            elif kind == "transactions":
                counts = self._persist_transactions(valid, options, report)
            else:
                counts = self._persist_budgets(valid, ctx, options, report)
            summary.imported, summary.updated, summary.skipped = counts
        elif waves:
            logger.info(
                f"import_aborted: type={kind} errors={len(report.errors)} "
                "reason=validate_data"
            )

        summary.errors = len(report.errors)
        return ImportResult(
            success=report.is_valid,
            summary=summary,
            errors=report.errors,
            warnings=report.warnings,
        )

    def _batch_failed(
        self, indexes: Sequence[int], error: Optional[str], report: ValidationReport
    ) -> None:
        logger.error(f"import_batch_failed: rows={len(indexes)} error={error}")
        for index in indexes:
            report.error(
                index,
                None,
                None,
                ImportErrorCode.IMPORT_FAILED,
                f"Failed to save row: {error}",
            )

    def _create_in_batches(
        self, repo: Repository, items: Sequence[ValidRow], report: ValidationReport
    ) -> list:
        created = []
        for batch in batches(items, IMPORT_LIMITS.max_batch_size):
            result = repo.bulk_create([values for _, values in batch])
            if not result.ok:
                self._batch_failed([index for index, _ in batch], result.error, report)
                continue
            created.extend(result.data)
        return created

    def _update_in_batches(
        self,
        repo: Repository,
        items: Sequence[tuple[int, str, dict[str, Any]]],
        report: ValidationReport,
    ) -> list:
        updated = []
        for batch in batches(items, IMPORT_LIMITS.max_batch_size):
            result = repo.bulk_update([(record_id, values) for _, record_id, values in batch])
            if not result.ok:
                self._batch_failed([index for index, _, _ in batch], result.error, report)
                continue
            updated.extend(result.data)
        return updated

    def _persist_transactions(
        self, valid: Sequence[ValidRow], options: ImportOptions, report: ValidationReport
    ) -> tuple[int, int, int]:
        dates = [values["date"] for _, values in valid]
        stored = unwrap(
            self.repos.transactions.find_all(
                [Gte("date", min(dates)), Lte("date", max(dates))]
            ),
            "fetch transactions",
        )
        known = {
            transaction_key(t.type, t.amount, t.description, t.category_id, t.date)
            for t in stored
        }
        dedupe = options.skip_duplicates or options.update_existing

        to_create: list[ValidRow] = []
        skipped = 0
        for index, values in valid:
            key = transaction_key(
                values["type"],
                values["amount"],
                values["description"],
                values["category_id"],
                values["date"],
            )
            if dedupe and key in known:
                # Every compared field already matches, so an update is a no-op.
                report.warn(
                    index,
                    None,
                    None,
                    ImportWarningCode.DUPLICATE_SKIPPED,
                    "Duplicate transaction skipped",
                )
                skipped += 1
                continue
            known.add(key)
            to_create.append((index, values))

        created = self._create_in_batches(self.repos.transactions, to_create, report)
        return len(created), 0, skipped

    def _category_waves(
        self, valid: Sequence[ValidRow], ctx: RowContext, report: ValidationReport
    ) -> list[list[ValidRow]]:
        """Group category rows so each parent is written before its children."""
        known = {(cat.type, cat.name.strip().lower()) for cat in ctx.categories}
        waves: list[list[ValidRow]] = []
        pending = list(valid)
        while pending:
            ready: list[ValidRow] = []
            waiting: list[ValidRow] = []
            for index, values in pending:
                ref = values["parent_category"]
                if (
                    ref is None
                    or (values["type"], ref.lower()) in known
                    or ctx.categories.resolve(ref, values["type"]) is not None
                ):
                    ready.append((index, values))
                else:
                    waiting.append((index, values))
            if not ready:
                break
            waves.append(ready)
            known.update((v["type"], v["name"].lower()) for _, v in ready)
            pending = waiting

        for index, values in pending:
            report.error(
                index,
                "parent_category",
                values["parent_category"],
                ImportErrorCode.CIRCULAR_CATEGORY_REFERENCE,
                f'Parent category "{values["parent_category"]}" forms a circular reference',
            )
        return waves

    @staticmethod
    def _parent_lookup(lookup: CategoryLookup) -> Callable[[str], Optional[str]]:
        def parent_of(category_id: str) -> Optional[str]:
            category = lookup.resolve(category_id)
            return category.parent_id if category else None

        return parent_of

    def _persist_categories(
        self,
        waves: Sequence[Sequence[ValidRow]],
        ctx: RowContext,
        options: ImportOptions,
        report: ValidationReport,
    ) -> tuple[int, int, int]:
        lookup = ctx.categories
        imported = updated = skipped = 0
        for wave in waves:
            creates: list[ValidRow] = []
            updates: list[tuple[int, str, dict[str, Any]]] = []
            for index, values in wave:
                ref = values["parent_category"]
                record = {k: v for k, v in values.items() if k != "parent_category"}
                parent = None
                if ref is not None:
                    parent = lookup.find(ref, values["type"]) or lookup.resolve(
                        ref, values["type"]
                    )
                record["parent_id"] = parent.id if parent else None

                existing = lookup.find(values["name"], values["type"])
                if existing is None:
                    creates.append((index, record))
                elif not options.update_existing:
                    report.warn(
                        index,
                        "name",
                        values["name"],
                        ImportWarningCode.DUPLICATE_SKIPPED,
                        f'Category "{values["name"]}" already exists',
                    )
                    skipped += 1
                elif existing.is_default:
                    report.warn(
                        index,
                        "name",
                        values["name"],
                        ImportWarningCode.DUPLICATE_SKIPPED,
                        f'Default category "{existing.name}" cannot be modified',
                    )
                    skipped += 1
                elif record["parent_id"] and would_create_cycle(
                    existing.id, record["parent_id"], self._parent_lookup(lookup)
                ):
                    report.error(
                        index,
                        "parent_category",
                        ref,
                        ImportErrorCode.CIRCULAR_CATEGORY_REFERENCE,
                        "Update would create circular reference",
                    )
                else:
                    updates.append((index, existing.id, record))

            for category in self._create_in_batches(self.repos.categories, creates, report):
                lookup.add(category)
                imported += 1
            for category in self._update_in_batches(self.repos.categories, updates, report):
                lookup.add(category)
                updated += 1
        return imported, updated, skipped

    def _persist_budgets(
        self,
        valid: Sequence[ValidRow],
        ctx: RowContext,
        options: ImportOptions,
        report: ValidationReport,
    ) -> tuple[int, int, int]:
        creates: list[ValidRow] = []
        updates: list[tuple[int, str, dict[str, Any]]] = []
        kept: list[dict[str, Any]] = []
        claimed: set[str] = set()
        skipped = 0

        def overlaps(values: dict[str, Any], other_category: str, start: date, end: date) -> bool:
            return values["category_id"] == other_category and ranges_overlap(
                values["start_date"], values["end_date"], start, end
            )

        for index, values in valid:
            if any(
                overlaps(values, other["category_id"], other["start_date"], other["end_date"])
                for other in kept
            ):
                report.warn(
                    index,
                    "start_date",
                    values["start_date"],
                    ImportWarningCode.DUPLICATE_SKIPPED,
                    "Budget overlaps an earlier row for this category",
                )
                skipped += 1
                continue
            clash = next(
                (
                    budget
                    for budget in ctx.budgets
                    if budget.is_active
                    and overlaps(values, budget.category_id, budget.start_date, budget.end_date)
                ),
                None,
            )
            if clash is None:
                creates.append((index, {**values, "is_active": True}))
            elif options.update_existing and clash.id not in claimed:
                claimed.add(clash.id)
                updates.append((index, clash.id, values))
            else:
                report.warn(
                    index,
                    "start_date",
                    values["start_date"],
                    ImportWarningCode.DUPLICATE_SKIPPED,
                    "Budget overlaps an existing budget for this category",
                )
                skipped += 1
                continue
            kept.append(values)

        created = self._create_in_batches(self.repos.budgets, creates, report)
        changed = self._update_in_batches(self.repos.budgets, updates, report)
        return len(created), len(changed), skipped

    def _write(self, file_name: str, body: bytes) -> Path:
        # Unique on disk; the download keeps the plain file name.
        path = Path(self.settings.export_dir) / f"{uuid4().hex[:12]}_{file_name}"
        path.write_bytes(body)
        return path

    def _fetch(self, kind: str, options: ExportOptions) -> list:
        filters: list[Filter] = []
        if kind == "transactions":
            if options.start_date:
                filters.append(Gte("date", options.start_date))
            if options.end_date:
                filters.append(Lte("date", options.end_date))
            if options.category_ids:
                filters.append(In("category_id", options.category_ids))
            if options.types:
                filters.append(In("type", options.types))
            rows = unwrap(
                self.repos.transactions.find_all(filters, Sort("date")),
                "fetch transactions",
            )
            refs = category_refs(self.repos)
            return [
                TransactionWithCategory(**t.model_dump(), category=refs.get(t.category_id))
                for t in rows
            ]

        if kind == "categories":
            if options.types:
                filters.append(In("type", options.types))
            rows = unwrap(
                self.repos.categories.find_all(filters, Sort("name")),
                "fetch categories",
            )
            everything = {
                cat.id: cat
                for cat in unwrap(self.repos.categories.find_all(), "fetch categories")
            }
            out = []
            for cat in rows:
                parent = everything.get(cat.parent_id) if cat.parent_id else None
                out.append(
                    CategoryWithChildren(
                        **cat.model_dump(),
                        parent=category_ref(parent) if parent else None,
                    )
                )
            return out

        if options.start_date:
            filters.append(Gte("start_date", options.start_date))
        if options.end_date:
            filters.append(Lte("end_date", options.end_date))
        if options.category_ids:
            filters.append(In("category_id", options.category_ids))
        if options.periods:
            filters.append(In("period", options.periods))
        rows = unwrap(
            self.repos.budgets.find_all(filters, Sort("start_date")), "fetch budgets"
        )
        refs = category_refs(self.repos)
        return [
            BudgetWithCategory(**b.model_dump(), category=refs.get(b.category_id))
            for b in rows
        ]

    @staticmethod
    def _filters_applied(options: ExportOptions) -> dict[str, Any]:
        applied: dict[str, Any] = {}
        if options.category_ids:
            applied["category_ids"] = list(options.category_ids)
        if options.types:
            applied["transaction_types"] = [t.value for t in options.types]
        if options.periods:
            applied["budget_periods"] = [p.value for p in options.periods]
        if options.fields:
            applied["fields"] = list(options.fields)
        return applied

    def export_data(self, options: ExportOptions) -> ExportResult:
        started = time.perf_counter()
        if options.format == "csv" and options.type == "full":
            raise BusinessRuleError(
                "CSV format does not support full export with multiple types"
            )
        kinds = RECORD_KINDS if options.type == "full" else (options.type,)
        data = {kind: self._fetch(kind, options) for kind in kinds}
        counts = {kind: len(records) for kind, records in data.items()}

        now = local_now()
        stamp = now.strftime("%Y-%m-%d_%H-%M-%S")
        metadata: dict[str, Any] = {"exported_at": now.isoformat()}
        if options.start_date or options.end_date:
            metadata["date_range"] = {
                "start": options.start_date.isoformat() if options.start_date else None,
                "end": options.end_date.isoformat() if options.end_date else None,
            }
        filters_applied = self._filters_applied(options)
        if filters_applied:
            metadata["filters_applied"] = filters_applied

        if options.format == "csv":
            body = write_csv(
                data[options.type],
                options.type,
                include_headers=options.include_headers,
                fields=options.fields,
            ).encode("utf-8")
            file_name = f"{options.type}_export_{stamp}.csv"
        else:
            sheet_metadata = None
            if options.include_metadata:
                sheet_metadata = {
                    "Exported At": metadata["exported_at"],
                    "Export Type": options.type,
                    "Date Range": metadata.get("date_range"),
                    "Filters": filters_applied or None,
                    **{f"{kind.capitalize()} Count": n for kind, n in counts.items()},
                }
            body = write_xlsx(
                data,
                include_headers=options.include_headers,
                fields=options.fields,
                metadata=sheet_metadata,
            )
            if options.type == "full":
                file_name = f"budget_tracker_export_{stamp}.xlsx"
            else:
                file_name = f"{options.type}_export_{stamp}.xlsx"

        path = self._write(file_name, body)
        logger.info(
            f"export_finished: file={file_name} type={options.type} "
            f"records={sum(counts.values())} bytes={len(body)}"
        )
        return ExportResult(
            success=True,
            file_name=file_name,
            file_path=str(path),
            file_size=len(body),
            format=options.format,
            summary=ExportSummary(**counts, total_records=sum(counts.values())),
            metadata=metadata,
            execution_time_ms=elapsed_ms(started),
        )

    def export_info(self) -> dict[str, Any]:
        counts = {
            "transactions": unwrap(self.repos.transactions.count(), "count transactions"),
            "categories": unwrap(self.repos.categories.count(), "count categories"),
            "budgets": unwrap(self.repos.budgets.count(), "count budgets"),
        }
        return {
            "counts": counts,
            "total_records": sum(counts.values()),
            "supported_formats": list(FILE_EXTENSIONS.values()),
            "supported_types": [*RECORD_KINDS, "full"],
            "fields": {kind: list(FIELD_MAPPINGS[kind]) for kind in RECORD_KINDS},
        }

    @staticmethod
    def template_file_name(record_type: str, file_format: str) -> str:
        if file_format == "xlsx" and record_type == "full":
            return "budget_tracker_template.xlsx"
        return f"{record_type}_template.{file_format}"

    def generate_template(self, options: TemplateOptions) -> TemplateResult:
        file_name = self.template_file_name(options.type, options.format)
        if options.format == "csv":
            if options.type == "full":
                raise BusinessRuleError("CSV templates are available per record type only")
            body = csv_template(
                options.type,
                include_examples=options.include_examples,
                include_instructions=options.include_instructions,
            ).encode("utf-8")
            instructions = list(INSTRUCTIONS[options.type])
        else:
            body = xlsx_template(
                options.type,
                include_examples=options.include_examples,
                include_instructions=options.include_instructions,
            )
            instructions = template_instructions(options.type)

        path = self._write(file_name, body)
        return TemplateResult(
            file_name=file_name,
            file_path=str(path),
            file_size=len(body),
            format=options.format,
            type=options.type,
            instructions=instructions if options.include_instructions else [],
        )

    def template_info(self, record_type: str, file_format: str = "csv") -> dict[str, Any]:
        kinds = RECORD_KINDS if record_type == "full" else (record_type,)
        return {
            "type": record_type,
            "format": file_format,
            "file_name": self.template_file_name(record_type, file_format),
            "headers": {kind: list(FIELD_MAPPINGS[kind].values()) for kind in kinds},
            "required_fields": {
                kind: [FIELD_MAPPINGS[kind][f] for f in REQUIRED_FIELDS[kind]]
                for kind in kinds
            },
            "example_data": {kind: EXAMPLE_ROWS[kind] for kind in kinds},
            "instructions": template_instructions(record_type),
        }

    def validate_file(
        self,
        content: bytes,
        filename: str,
        record_type: str,
        *,
        file_format: Optional[str] = None,
        encoding: str = "utf8",
    ) -> FileValidationResult:
        """Check size, format and headers without touching storage."""
        result = FileValidationResult(is_valid=False, type=record_type)
        try:
            check_size(content)
            result.format = detect_format(filename, file_format)
            if result.format == "csv":
                headers, rows = read_csv(decode(content, encoding), record_type)
                result.headers = headers
                result.row_count = len(rows)
                result.structure = validate_structure(headers, record_type)
                result.issues = [
                    f'Missing required column "{field}"'
                    for field in result.structure.missing_fields
                ]
                result.suggestions = list(result.structure.suggestions)
            else:
                headers_by_kind, issues, suggestions = validate_xlsx_structure(
                    content, record_type
                )
                parsed = read_xlsx(content, record_type)
                result.row_count = sum(len(rows) for _, rows in parsed.values())
                if record_type != "full":
                    result.headers = headers_by_kind.get(record_type, [])
                    result.structure = validate_structure(result.headers, record_type)
                else:
                    result.headers = [h for hs in headers_by_kind.values() for h in hs]
                result.issues = issues
                result.suggestions = suggestions
        except (TabularError, UnicodeDecodeError) as exc:
            result.issues.append(str(exc))
            return result
        result.is_valid = not result.issues
        return result

    @staticmethod
    def config() -> dict[str, Any]:
        return {
            "limits": {
                "max_file_size_mb": IMPORT_LIMITS.max_file_size_mb,
                "max_rows_csv": IMPORT_LIMITS.max_rows_csv,
                "max_rows_xlsx": IMPORT_LIMITS.max_rows_xlsx,
                "max_batch_size": IMPORT_LIMITS.max_batch_size,
            },
            "supported_formats": list(FILE_EXTENSIONS.values()),
            "supported_types": [*RECORD_KINDS, "full"],
            "supported_encodings": list(IMPORT_LIMITS.supported_encodings),
            "supported_date_formats": list(IMPORT_LIMITS.supported_date_formats),
            "fields": {
                kind: {
                    "headers": list(FIELD_MAPPINGS[kind].values()),
                    "required": [FIELD_MAPPINGS[kind][f] for f in REQUIRED_FIELDS[kind]],
                }
                for kind in RECORD_KINDS
            },
        }
