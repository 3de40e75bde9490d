import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

STORAGE_MODES = ("database", "file")


@dataclass(frozen=True)
class ImportLimits:
    max_file_size_mb: int = 10
    max_rows_csv: int = 10_000
    max_rows_xlsx: int = 5_000
    max_batch_size: int = 100
    supported_encodings: tuple[str, ...] = ("utf8", "latin1", "ascii")
    supported_date_formats: tuple[str, ...] = (
        "YYYY-MM-DD",
        "MM/DD/YYYY",
        "DD/MM/YYYY",
        "YYYY/MM/DD",
        "MM-DD-YYYY",
        "DD-MM-YYYY",
    )

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


IMPORT_LIMITS = ImportLimits()


class Settings:
    def __init__(
        self,
        database_url: str,
        storage_mode: str,
        data_dir: Path,
        file_store_dir: Path,
        export_dir: Path,
        export_cleanup_delay_secs: float,
        timezone: str,
        log_level: str,
    ) -> None:
        if storage_mode not in STORAGE_MODES:
            raise ValueError(
                f"Unknown storage mode {storage_mode!r}, expected one of {STORAGE_MODES}"
            )
        self.database_url = database_url
        self.storage_mode = storage_mode
        self.data_dir = data_dir
        self.file_store_dir = file_store_dir
        self.export_dir = export_dir
        self.export_cleanup_delay_secs = export_cleanup_delay_secs
        self.timezone = timezone
        self.log_level = log_level


def _ensure_dir(path: Path) -> Path:
    root = path.resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_dir(Path(os.getenv("BUDGET_DATA_DIR", "./data")))
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    storage_mode = os.getenv("BUDGET_STORAGE_MODE", "database").strip().lower()
    file_store_dir = Path(os.getenv("BUDGET_FILE_STORE_DIR", str(data_dir / "store")))
    export_dir = _ensure_dir(
        Path(os.getenv("BUDGET_EXPORT_DIR", str(data_dir / "exports")))
    )
    cleanup_delay = float(os.getenv("BUDGET_EXPORT_CLEANUP_DELAY_SECS", "5"))
    timezone = os.getenv("BUDGET_TIMEZONE", "UTC")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        storage_mode=storage_mode,
        data_dir=data_dir,
        file_store_dir=file_store_dir,
        export_dir=export_dir,
        export_cleanup_delay_secs=cleanup_delay,
        timezone=timezone,
        log_level=log_level,
    )
