"""Local JSON file backend for the repository contract.

Each collection lives in ``<root>/<collection>.json`` as a list of records.
Writes go through a temp file and ``os.replace`` so a crash never leaves a
half-written collection behind. A process-local lock serialises
read-modify-write cycles; there is no cross-process locking.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence
from uuid import uuid4

from filters import Eq, Filter, Gte, In, IsNull, Like, Lte, Ne, Page, Sort
from repositories import (
    Repositories,
    Repository,
    RepositoryFactory,
    RepositoryResult,
    T,
)
from schemas import BudgetOut, CategoryOut, TransactionOut

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot store {type(value).__name__} values")


class JsonFileStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.lock = threading.RLock()

    def _path(self, collection: str) -> Path:
        return self.root / f"{collection}.json"

    def read(self, collection: str) -> list[dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, list):
            raise ValueError(f"{path.name} does not contain a list of records")
        return data

    def write(self, collection: str, items: list[dict[str, Any]]) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self.root, prefix=f".{collection}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(items, fh, ensure_ascii=False, indent=2, default=_json_default)
            os.replace(tmp_name, self._path(collection))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _coerce(current: Any, operand: Any) -> Any:
    """Bring a filter operand to the type of the stored value."""
    if operand is None or current is None:
        return operand
    if isinstance(operand, Enum):
        operand = operand.value
    if isinstance(current, Decimal) and not isinstance(operand, Decimal):
        return Decimal(str(operand))
    if isinstance(current, datetime) and isinstance(operand, str):
        return datetime.fromisoformat(operand)
    if isinstance(current, date) and not isinstance(current, datetime):
        if isinstance(operand, datetime):
            return operand.date()
        if isinstance(operand, str):
            return date.fromisoformat(operand)
    return operand


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _like_regex(pattern: str) -> re.Pattern:
    parts = [re.escape(part) for part in pattern.split("%")]
    return re.compile(".*".join(parts), re.IGNORECASE | re.DOTALL)


def matches(record: Any, flt: Filter) -> bool:
    value = _plain(getattr(record, flt.field))
    if isinstance(flt, Eq):
        return value == _coerce(value, flt.value)
    if isinstance(flt, Ne):
        return value != _coerce(value, flt.value)
    if isinstance(flt, Gte):
        return value is not None and value >= _coerce(value, flt.value)
    if isinstance(flt, Lte):
        return value is not None and value <= _coerce(value, flt.value)
    if isinstance(flt, Like):
        return value is not None and bool(_like_regex(flt.pattern).fullmatch(str(value)))
    if isinstance(flt, IsNull):
        return (value is None) == flt.is_null
    if isinstance(flt, In):
        return any(value == _coerce(value, v) for v in flt.values)
    raise TypeError(f"Unsupported filter {flt!r}")


class FileRepository(Repository[T]):
    collection: str

    def __init__(self, store: JsonFileStore) -> None:
        self.store = store

    def _check_fields(self, fields: Sequence[str]) -> None:
        for field in fields:
            if field not in self.record.model_fields:
                raise ValueError(f"Unknown field {field!r} for {self.collection}")

    def _load(self) -> list[T]:
        return [self.record.model_validate(item) for item in self.store.read(self.collection)]

    def _save(self, records: list[T]) -> None:
        self.store.write(
            self.collection, [record.model_dump() for record in records]
        )

    def _new(self, values: dict[str, Any]) -> T:
        now = datetime.utcnow()
        payload = {**values, "created_at": now, "updated_at": now}
        payload.setdefault("id", str(uuid4()))
        return self.record.model_validate(payload)

    def _changed(self, record: T, values: dict[str, Any]) -> T:
        payload = {**record.model_dump(), **values, "updated_at": datetime.utcnow()}
        return self.record.model_validate(payload)

    def _run(self, action: str, fn: Callable[[], RepositoryResult]) -> RepositoryResult:
        with self.store.lock:
            try:
                return fn()
            except (OSError, ValueError) as exc:
                logger.error(
                    f"storage_error: collection={self.collection} op={action} error={exc}"
                )
                return RepositoryResult(error=f"Failed to {action} record: {exc}")

    def create(self, values: dict[str, Any]) -> RepositoryResult[T]:
        def _create() -> RepositoryResult[T]:
            records = self._load()
            record = self._new(values)
            records.append(record)
            self._save(records)
            return RepositoryResult(data=record)

        return self._run("create", _create)

    def find_by_id(self, record_id: str) -> RepositoryResult[T]:
        def _find() -> RepositoryResult[T]:
            for record in self._load():
                if record.id == record_id:
                    return RepositoryResult(data=record)
            return RepositoryResult()

        return self._run("find", _find)

    def find_all(
        self,
        filters: Sequence[Filter] = (),
        sort: Optional[Sort] = None,
        page: Optional[Page] = None,
    ) -> RepositoryResult[list[T]]:
        self._check_fields([flt.field for flt in filters] + ([sort.field] if sort else []))

        def _find_all() -> RepositoryResult[list[T]]:
            found = [
                record
                for record in self._load()
                if all(matches(record, flt) for flt in filters)
            ]
            if sort:
                present = [r for r in found if getattr(r, sort.field) is not None]
                missing = [r for r in found if getattr(r, sort.field) is None]
                present.sort(
                    key=lambda r: _plain(getattr(r, sort.field)),
                    reverse=sort.descending,
                )
                found = present + missing
            total = len(found)
            if page:
                found = found[page.offset : page.offset + page.limit]
            return RepositoryResult(data=found, count=total)

        return self._run("list", _find_all)

    def update(self, record_id: str, values: dict[str, Any]) -> RepositoryResult[T]:
        def _update() -> RepositoryResult[T]:
            records = self._load()
            for idx, record in enumerate(records):
                if record.id == record_id:
                    records[idx] = self._changed(record, values)
                    self._save(records)
                    return RepositoryResult(data=records[idx])
            return RepositoryResult()

        return self._run("update", _update)

    def delete(self, record_id: str) -> RepositoryResult[bool]:
        def _delete() -> RepositoryResult[bool]:
            records = self._load()
            kept = [record for record in records if record.id != record_id]
            if len(kept) == len(records):
                return RepositoryResult(data=False)
            self._save(kept)
            return RepositoryResult(data=True)

        return self._run("delete", _delete)

    def bulk_create(self, items: Sequence[dict[str, Any]]) -> RepositoryResult[list[T]]:
        def _bulk_create() -> RepositoryResult[list[T]]:
            records = self._load()
            created = [self._new(values) for values in items]
            self._save(records + created)
            return RepositoryResult(data=created)

        return self._run("bulk create", _bulk_create)

    def bulk_update(
        self, items: Sequence[tuple[str, dict[str, Any]]]
    ) -> RepositoryResult[list[T]]:
        def _bulk_update() -> RepositoryResult[list[T]]:
            records = self._load()
            index = {record.id: idx for idx, record in enumerate(records)}
            updated = []
            for record_id, values in items:
                idx = index.get(record_id)
                if idx is None:
                    continue
                records[idx] = self._changed(records[idx], values)
                updated.append(records[idx])
            self._save(records)
            return RepositoryResult(data=updated)

        return self._run("bulk update", _bulk_update)

    def bulk_delete(self, record_ids: Sequence[str]) -> RepositoryResult[int]:
        doomed = set(record_ids)

        def _bulk_delete() -> RepositoryResult[int]:
            records = self._load()
            kept = [record for record in records if record.id not in doomed]
            self._save(kept)
            return RepositoryResult(data=len(records) - len(kept))

        return self._run("bulk delete", _bulk_delete)

    def count(self, filters: Sequence[Filter] = ()) -> RepositoryResult[int]:
        found = self.find_all(filters)
        if not found.ok:
            return RepositoryResult(error=found.error)
        return RepositoryResult(data=found.count)


class CategoryFileRepository(FileRepository[CategoryOut]):
    collection = "categories"
    record = CategoryOut


class TransactionFileRepository(FileRepository[TransactionOut]):
    collection = "transactions"
    record = TransactionOut


class BudgetFileRepository(FileRepository[BudgetOut]):
    collection = "budgets"
    record = BudgetOut


def file_repositories(store: JsonFileStore) -> Repositories:
    return Repositories(
        categories=CategoryFileRepository(store),
        transactions=TransactionFileRepository(store),
        budgets=BudgetFileRepository(store),
    )


class FileRepositoryFactory(RepositoryFactory):
    def __init__(self, root: Path) -> None:
        self.repositories = file_repositories(JsonFileStore(root))

    @contextmanager
    def open(self) -> Iterator[Repositories]:
        yield self.repositories
