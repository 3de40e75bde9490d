import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, List, Optional

from fastapi import (
    BackgroundTasks,
    Body,
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
)
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import IMPORT_LIMITS, get_settings
from database import init_db
from filters import Page, page_meta
from import_export import ImportExportService
from models import BudgetPeriod, TransactionType
from periods import Period, resolve_period
from progress import AlertThresholds
from repositories import Repositories, build_repository_factory
from scheduler import ExportCleanupScheduler
from schemas import (
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    ExportOptions,
    ImportOptions,
    ImportType,
    TemplateOptions,
    TransactionIn,
    TransactionUpdate,
)
from services import (
    AnalyticsService,
    BudgetService,
    CategoryService,
    StorageError,
    TransactionFilters,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

app = FastAPI(title="Budget Tracker")
repository_factory = build_repository_factory(settings)
cleanup_scheduler = ExportCleanupScheduler(settings.export_dir)


def get_repositories() -> Iterator[Repositories]:
    with repository_factory.open() as repos:
        yield repos


@app.on_event("startup")
def startup_event():
    if settings.storage_mode == "database":
        init_db()
    cleanup_scheduler.start()
    logger.info(f"startup: storage_mode={settings.storage_mode}")


@app.on_event("shutdown")
def shutdown_event():
    cleanup_scheduler.stop()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(
    data: Any = None, *, success: bool = True, status_code: int = 200, **meta: Any
) -> JSONResponse:
    content = {"success": success, "data": data, "meta": {"timestamp": _timestamp(), **meta}}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def error_response(
    message: str,
    status_code: int,
    code: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    error: dict[str, Any] = {"message": message}
    if code:
        error["code"] = code
    if details is not None:
        error["details"] = details
    content = {"success": False, "error": error, "meta": {"timestamp": _timestamp()}}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError):
    status_code = getattr(exc, "status_code", 400)
    return error_response(str(exc), status_code, code=type(exc).__name__)


@app.exception_handler(StorageError)
def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"storage_failure: path={request.url.path} error={exc}")
    return error_response(str(exc), 500, code="StorageError")


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return error_response("Validation failed", 400, code="ValidationError", details=details)


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(str(exc.detail), exc.status_code)


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
def health():
    return envelope({"status": "ok", "storage_mode": settings.storage_mode})


# Categories


@app.get("/api/categories")
def api_categories(
    category_type: Optional[TransactionType] = Query(None, alias="type"),
    is_active: Optional[bool] = None,
    parent_id: Optional[str] = None,
    search: Optional[str] = None,
    hierarchy: bool = False,
    include_children: bool = False,
    repos: Repositories = Depends(get_repositories),
):
    service = CategoryService(repos)
    if hierarchy:
        return envelope(service.hierarchy(is_active))
    items = service.list(
        type=category_type,
        is_active=is_active,
        parent_id=parent_id,
        search=search,
        include_children=include_children,
    )
    return envelope(items, count=len(items))


@app.post("/api/categories/bulk", status_code=201)
def api_categories_bulk(
    items: List[CategoryIn], repos: Repositories = Depends(get_repositories)
):
    result = CategoryService(repos).bulk_create(items)
    return envelope(
        result,
        status_code=201,
        created=len(result["successful"]),
        failed=len(result["failed"]),
    )


@app.post("/api/categories/seed", status_code=201)
def api_categories_seed(repos: Repositories = Depends(get_repositories)):
    created = CategoryService(repos).seed_defaults()
    return envelope(created, status_code=201, created=len(created))


@app.get("/api/categories/{category_id}")
def api_category(category_id: str, repos: Repositories = Depends(get_repositories)):
    return envelope(CategoryService(repos).get(category_id))


@app.post("/api/categories", status_code=201)
def api_category_create(data: CategoryIn, repos: Repositories = Depends(get_repositories)):
    return envelope(CategoryService(repos).create(data), status_code=201)


@app.put("/api/categories/{category_id}")
def api_category_update(
    category_id: str,
    data: CategoryUpdate,
    repos: Repositories = Depends(get_repositories),
):
    return envelope(CategoryService(repos).update(category_id, data))


@app.delete("/api/categories/{category_id}")
def api_category_delete(category_id: str, repos: Repositories = Depends(get_repositories)):
    CategoryService(repos).delete(category_id)
    return envelope({"id": category_id, "deleted": True})


# Transactions


@app.get("/api/transactions")
def api_transactions(
    txn_type: Optional[TransactionType] = Query(None, alias="type"),
    category_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    search: Optional[str] = None,
    sort: str = "date",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    repos: Repositories = Depends(get_repositories),
):
    filters = TransactionFilters(
        type=txn_type,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
    )
    paging = Page(page=page, limit=limit)
    items, total = TransactionService(repos).list(
        filters, sort=sort, order=order, page=paging
    )
    return envelope(items, pagination=page_meta(paging, total))


@app.get("/api/transactions/summary")
def api_transactions_summary(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    repos: Repositories = Depends(get_repositories),
):
    return envelope(TransactionService(repos).summary(start_date, end_date))


@app.post("/api/transactions/bulk", status_code=201)
def api_transactions_bulk(
    items: List[TransactionIn], repos: Repositories = Depends(get_repositories)
):
    created = TransactionService(repos).bulk_create(items)
    return envelope(created, status_code=201, created=len(created))


@app.delete("/api/transactions/bulk")
def api_transactions_bulk_delete(
    ids: List[str] = Body(..., embed=True),
    repos: Repositories = Depends(get_repositories),
):
    deleted = TransactionService(repos).bulk_delete(ids)
    return envelope({"deleted": deleted})


@app.get("/api/transactions/{transaction_id}")
def api_transaction(transaction_id: str, repos: Repositories = Depends(get_repositories)):
    return envelope(TransactionService(repos).get(transaction_id))


@app.post("/api/transactions", status_code=201)
def api_transaction_create(
    data: TransactionIn, repos: Repositories = Depends(get_repositories)
):
    return envelope(TransactionService(repos).create(data), status_code=201)


@app.put("/api/transactions/{transaction_id}")
def api_transaction_update(
    transaction_id: str,
    data: TransactionUpdate,
    repos: Repositories = Depends(get_repositories),
):
    return envelope(TransactionService(repos).update(transaction_id, data))


@app.delete("/api/transactions/{transaction_id}")
def api_transaction_delete(
    transaction_id: str, repos: Repositories = Depends(get_repositories)
):
    TransactionService(repos).delete(transaction_id)
    return envelope({"id": transaction_id, "deleted": True})


# Budgets


@app.get("/api/budgets")
def api_budgets(
    category_id: Optional[str] = None,
    period: Optional[BudgetPeriod] = None,
    is_active: Optional[bool] = None,
    include_category: bool = True,
    include_progress: bool = False,
    overspent_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    repos: Repositories = Depends(get_repositories),
):
    paging = Page(page=page, limit=limit)
    items, total = BudgetService(repos).list(
        category_id=category_id,
        period=period,
        is_active=is_active,
        include_category=include_category,
        include_progress=include_progress,
        overspent_only=overspent_only,
        page=paging,
    )
    return envelope(items, pagination=page_meta(paging, total))


@app.get("/api/budgets/alerts")
def api_budget_alerts(
    approaching: Decimal = Query(Decimal("80"), ge=0, le=100),
    high: Decimal = Query(Decimal("95"), ge=0, le=100),
    repos: Repositories = Depends(get_repositories),
):
    alerts = BudgetService(repos).alerts(AlertThresholds(approaching=approaching, high=high))
    return envelope(alerts, count=len(alerts))


@app.get("/api/budgets/summary")
def api_budget_summary(repos: Repositories = Depends(get_repositories)):
    return envelope(BudgetService(repos).summary())


@app.post("/api/budgets/bulk", status_code=201)
def api_budgets_bulk(items: List[BudgetIn], repos: Repositories = Depends(get_repositories)):
    created = BudgetService(repos).bulk_create(items)
    return envelope(created, status_code=201, created=len(created))


@app.get("/api/budgets/{budget_id}")
def api_budget(budget_id: str, repos: Repositories = Depends(get_repositories)):
    return envelope(BudgetService(repos).get_with_progress(budget_id))


@app.post("/api/budgets", status_code=201)
def api_budget_create(data: BudgetIn, repos: Repositories = Depends(get_repositories)):
    return envelope(BudgetService(repos).create(data), status_code=201)


@app.put("/api/budgets/{budget_id}")
def api_budget_update(
    budget_id: str, data: BudgetUpdate, repos: Repositories = Depends(get_repositories)
):
    return envelope(BudgetService(repos).update(budget_id, data))


@app.delete("/api/budgets/{budget_id}")
def api_budget_delete(budget_id: str, repos: Repositories = Depends(get_repositories)):
    BudgetService(repos).delete(budget_id)
    return envelope({"id": budget_id, "deleted": True})


# Analytics


@app.get("/api/analytics/overview")
def api_analytics_overview(request: Request, repos: Repositories = Depends(get_repositories)):
    period = period_from_request(request)
    return envelope(AnalyticsService(repos).overview(period))


@app.get("/api/analytics/budget-performance")
def api_budget_performance(repos: Repositories = Depends(get_repositories)):
    rows = AnalyticsService(repos).budget_performance()
    return envelope(rows, count=len(rows))


# Import / export


def _file_download(
    background: BackgroundTasks, path: str, file_name: str, file_format: str, **headers: str
) -> FileResponse:
    background.add_task(cleanup_scheduler.schedule_cleanup, path)
    return FileResponse(
        path,
        media_type=MEDIA_TYPES[file_format],
        filename=file_name,
        headers=headers or None,
        background=background,
    )


async def _read_upload(file: UploadFile) -> bytes:
    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in (".csv", ".xlsx"):
        raise HTTPException(status_code=400, detail="Only CSV and XLSX files are allowed")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(content) > IMPORT_LIMITS.max_file_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large (max {IMPORT_LIMITS.max_file_size_mb}MB)",
        )
    return content


@app.post("/api/import-export/import")
async def api_import(
    file: UploadFile = File(...),
    import_type: ImportType = Form("transactions", alias="type"),
    file_format: Optional[str] = Form(None, alias="format"),
    validate_data: bool = Form(False),
    skip_duplicates: bool = Form(False),
    update_existing: bool = Form(False),
    date_format: Optional[str] = Form(None),
    delimiter: Optional[str] = Form(None),
    encoding: str = Form("utf8"),
    repos: Repositories = Depends(get_repositories),
):
    content = await _read_upload(file)
    options = ImportOptions(
        format=file_format or None,
        type=import_type,
        validate_data=validate_data,
        skip_duplicates=skip_duplicates,
        update_existing=update_existing,
        date_format=date_format or None,
        delimiter=delimiter or None,
        encoding=encoding,
    )
    result = ImportExportService(repos, settings).import_data(
        content, file.filename or "", options
    )
    return envelope(
        result,
        success=result.success,
        status_code=200 if result.success else 422,
        file_name=file.filename,
    )


def _export_options(
    file_format: str = Query("xlsx", alias="format", pattern="^(csv|xlsx)$"),
    export_type: ImportType = Query("full", alias="type"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    category_ids: List[str] = Query([]),
    types: List[TransactionType] = Query([]),
    periods: List[BudgetPeriod] = Query([]),
    include_headers: bool = True,
    include_metadata: bool = False,
    fields: Optional[List[str]] = Query(None),
) -> ExportOptions:
    return ExportOptions(
        format=file_format,
        type=export_type,
        start_date=start_date,
        end_date=end_date,
        category_ids=category_ids,
        types=types,
        periods=periods,
        include_headers=include_headers,
        include_metadata=include_metadata,
        fields=fields,
    )


@app.get("/api/import-export/export")
def api_export(
    background: BackgroundTasks,
    options: ExportOptions = Depends(_export_options),
    repos: Repositories = Depends(get_repositories),
):
    result = ImportExportService(repos, settings).export_data(options)
    return _file_download(
        background,
        result.file_path,
        result.file_name,
        result.format,
        **{"X-Export-Records": str(result.summary.total_records)},
    )


@app.get("/api/import-export/export/info")
def api_export_info(repos: Repositories = Depends(get_repositories)):
    return envelope(ImportExportService(repos, settings).export_info())


@app.get("/api/import-export/template/{template_type}")
def api_template(
    template_type: ImportType,
    background: BackgroundTasks,
    file_format: str = Query("csv", alias="format", pattern="^(csv|xlsx)$"),
    include_examples: bool = True,
    include_instructions: bool = True,
    repos: Repositories = Depends(get_repositories),
):
    options = TemplateOptions(
        format=file_format,
        type=template_type,
        include_examples=include_examples,
        include_instructions=include_instructions,
    )
    result = ImportExportService(repos, settings).generate_template(options)
    return _file_download(background, result.file_path, result.file_name, result.format)


@app.get("/api/import-export/template/{template_type}/info")
def api_template_info(
    template_type: ImportType,
    file_format: str = Query("csv", alias="format", pattern="^(csv|xlsx)$"),
    repos: Repositories = Depends(get_repositories),
):
    return envelope(
        ImportExportService(repos, settings).template_info(template_type, file_format)
    )


@app.post("/api/import-export/validate")
async def api_validate(
    file: UploadFile = File(...),
    import_type: ImportType = Form("transactions", alias="type"),
    encoding: str = Form("utf8"),
    repos: Repositories = Depends(get_repositories),
):
    content = await _read_upload(file)
    result = ImportExportService(repos, settings).validate_file(
        content, file.filename or "", import_type, encoding=encoding
    )
    return envelope(result)


@app.get("/api/import-export/config")
def api_import_config():
    return envelope(ImportExportService.config())


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
