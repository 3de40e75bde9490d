from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterator, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filters import Eq, Filter, Gte, In, IsNull, Like, Lte, Ne, Page, Sort
from models import Budget, Category, Transaction
from repositories import (
    Repositories,
    Repository,
    RepositoryFactory,
    RepositoryResult,
    T,
)
from schemas import BudgetOut, CategoryOut, TransactionOut

logger = logging.getLogger(__name__)


def to_cents(amount: Any) -> int:
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def _escape_like(pattern: str) -> str:
    return pattern.replace("\\", "\\\\").replace("_", "\\_").lower()


class SQLRepository(Repository[T]):
    model: type
    # record field -> integer cents column
    cents_fields: dict[str, str] = {}

    def __init__(self, session: Session) -> None:
        self.session = session

    def _to_record(self, row: Any) -> T:
        values = {
            column.key: getattr(row, column.key)
            for column in self.model.__table__.columns
        }
        for field, column in self.cents_fields.items():
            values[field] = from_cents(values.pop(column))
        return self.record.model_validate(values)

    def _to_columns(self, values: dict[str, Any]) -> dict[str, Any]:
        columns: dict[str, Any] = {}
        for key, value in values.items():
            if key in self.cents_fields:
                columns[self.cents_fields[key]] = to_cents(value)
            else:
                columns[key] = value
        return columns

    def _column(self, field: str):
        name = self.cents_fields.get(field, field)
        if name not in self.model.__table__.columns:
            raise ValueError(f"Unknown field {field!r} for {self.model.__tablename__}")
        return getattr(self.model, name)

    def _operand(self, field: str, value: Any) -> Any:
        if field in self.cents_fields and value is not None:
            return to_cents(value)
        return value

    def _clause(self, flt: Filter):
        column = self._column(flt.field)
        if isinstance(flt, Eq):
            if flt.value is None:
                return column.is_(None)
            return column == self._operand(flt.field, flt.value)
        if isinstance(flt, Ne):
            if flt.value is None:
                return column.is_not(None)
            return column != self._operand(flt.field, flt.value)
        if isinstance(flt, Gte):
            return column >= self._operand(flt.field, flt.value)
        if isinstance(flt, Lte):
            return column <= self._operand(flt.field, flt.value)
        if isinstance(flt, Like):
            return func.lower(column).like(_escape_like(flt.pattern), escape="\\")
        if isinstance(flt, IsNull):
            return column.is_(None) if flt.is_null else column.is_not(None)
        if isinstance(flt, In):
            return column.in_([self._operand(flt.field, v) for v in flt.values])
        raise TypeError(f"Unsupported filter {flt!r}")

    def _run(self, action: str, fn: Callable[[], RepositoryResult]) -> RepositoryResult:
        try:
            return fn()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"storage_error: table={self.model.__tablename__} op={action} error={exc}"
            )
            return RepositoryResult(error=f"Failed to {action} record: {exc}")

    def create(self, values: dict[str, Any]) -> RepositoryResult[T]:
        def _create() -> RepositoryResult[T]:
            row = self.model(**self._to_columns(values))
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
            return RepositoryResult(data=self._to_record(row))

        return self._run("create", _create)

    def find_by_id(self, record_id: str) -> RepositoryResult[T]:
        def _find() -> RepositoryResult[T]:
            row = self.session.get(self.model, record_id)
            return RepositoryResult(data=self._to_record(row) if row else None)

        return self._run("find", _find)

    def find_all(
        self,
        filters: Sequence[Filter] = (),
        sort: Optional[Sort] = None,
        page: Optional[Page] = None,
    ) -> RepositoryResult[list[T]]:
        clauses = [self._clause(flt) for flt in filters]

        def _find_all() -> RepositoryResult[list[T]]:
            total = self.session.scalar(
                select(func.count()).select_from(self.model).where(*clauses)
            )
            stmt = select(self.model).where(*clauses)
            if sort:
                column = self._column(sort.field)
                stmt = stmt.order_by(column.desc() if sort.descending else column.asc())
            stmt = stmt.order_by(self.model.created_at.asc(), self.model.id.asc())
            if page:
                stmt = stmt.offset(page.offset).limit(page.limit)
            rows = self.session.scalars(stmt).all()
            return RepositoryResult(
                data=[self._to_record(row) for row in rows], count=total or 0
            )

        return self._run("list", _find_all)

    def update(self, record_id: str, values: dict[str, Any]) -> RepositoryResult[T]:
        def _update() -> RepositoryResult[T]:
            row = self.session.get(self.model, record_id)
            if row is None:
                return RepositoryResult()
            for key, value in self._to_columns(values).items():
                setattr(row, key, value)
            self.session.commit()
            self.session.refresh(row)
            return RepositoryResult(data=self._to_record(row))

        return self._run("update", _update)

    def delete(self, record_id: str) -> RepositoryResult[bool]:
        def _delete() -> RepositoryResult[bool]:
            row = self.session.get(self.model, record_id)
            if row is None:
                return RepositoryResult(data=False)
            self.session.delete(row)
            self.session.commit()
            return RepositoryResult(data=True)

        return self._run("delete", _delete)

    def bulk_create(self, items: Sequence[dict[str, Any]]) -> RepositoryResult[list[T]]:
        def _bulk_create() -> RepositoryResult[list[T]]:
            rows = [self.model(**self._to_columns(values)) for values in items]
            self.session.add_all(rows)
            self.session.commit()
            return RepositoryResult(data=[self._to_record(row) for row in rows])

        return self._run("bulk create", _bulk_create)

    def bulk_update(
        self, items: Sequence[tuple[str, dict[str, Any]]]
    ) -> RepositoryResult[list[T]]:
        def _bulk_update() -> RepositoryResult[list[T]]:
            rows = []
            for record_id, values in items:
                row = self.session.get(self.model, record_id)
                if row is None:
                    continue
                for key, value in self._to_columns(values).items():
                    setattr(row, key, value)
                rows.append(row)
            self.session.commit()
            return RepositoryResult(data=[self._to_record(row) for row in rows])

        return self._run("bulk update", _bulk_update)

    def bulk_delete(self, record_ids: Sequence[str]) -> RepositoryResult[int]:
        def _bulk_delete() -> RepositoryResult[int]:
            result = self.session.execute(
                delete(self.model).where(self.model.id.in_(list(record_ids)))
            )
            self.session.commit()
            return RepositoryResult(data=result.rowcount or 0)

        return self._run("bulk delete", _bulk_delete)

    def count(self, filters: Sequence[Filter] = ()) -> RepositoryResult[int]:
        clauses = [self._clause(flt) for flt in filters]

        def _count() -> RepositoryResult[int]:
            total = self.session.scalar(
                select(func.count()).select_from(self.model).where(*clauses)
            )
            return RepositoryResult(data=total or 0)

        return self._run("count", _count)


class CategorySQLRepository(SQLRepository[CategoryOut]):
    model = Category
    record = CategoryOut


class TransactionSQLRepository(SQLRepository[TransactionOut]):
    model = Transaction
    record = TransactionOut
    cents_fields = {"amount": "amount_cents"}


class BudgetSQLRepository(SQLRepository[BudgetOut]):
    model = Budget
    record = BudgetOut
    cents_fields = {"budget_amount": "budget_amount_cents"}


def sql_repositories(session: Session) -> Repositories:
    return Repositories(
        categories=CategorySQLRepository(session),
        transactions=TransactionSQLRepository(session),
        budgets=BudgetSQLRepository(session),
    )


class SQLRepositoryFactory(RepositoryFactory):
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    @contextmanager
    def open(self) -> Iterator[Repositories]:
        session = self.session_factory()
        try:
            yield sql_repositories(session)
        finally:
            session.close()
