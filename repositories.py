"""Storage boundary shared by the services and the import/export engine.

Every operation returns a ``RepositoryResult`` instead of raising: ``error``
holds a message when the backing store failed, and a lookup that finds
nothing is a success with ``data=None``. Callers decide how severe a failure
is. Two backends implement the contract, SQLAlchemy (``sql_store``) and a
JSON file store (``file_store``); ``build_repository_factory`` picks one from
the settings once at startup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generic, Iterator, Optional, Sequence, TypeVar

from pydantic import BaseModel

from config import Settings
from filters import Filter, Page, Sort
from schemas import BudgetOut, CategoryOut, TransactionOut

T = TypeVar("T", bound=BaseModel)
D = TypeVar("D")


@dataclass
class RepositoryResult(Generic[D]):
    data: Optional[D] = None
    error: Optional[str] = None
    count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Repository(ABC, Generic[T]):
    record: type[T]

    @abstractmethod
    def create(self, values: dict[str, Any]) -> RepositoryResult[T]: ...

    @abstractmethod
    def find_by_id(self, record_id: str) -> RepositoryResult[T]: ...

    @abstractmethod
    def find_all(
        self,
        filters: Sequence[Filter] = (),
        sort: Optional[Sort] = None,
        page: Optional[Page] = None,
    ) -> RepositoryResult[list[T]]:
        """Matching records; ``count`` is the total before pagination."""

    @abstractmethod
    def update(self, record_id: str, values: dict[str, Any]) -> RepositoryResult[T]: ...

    @abstractmethod
    def delete(self, record_id: str) -> RepositoryResult[bool]: ...

    @abstractmethod
    def bulk_create(
        self, items: Sequence[dict[str, Any]]
    ) -> RepositoryResult[list[T]]: ...

    @abstractmethod
    def bulk_update(
        self, items: Sequence[tuple[str, dict[str, Any]]]
    ) -> RepositoryResult[list[T]]: ...

    @abstractmethod
    def bulk_delete(self, record_ids: Sequence[str]) -> RepositoryResult[int]: ...

    @abstractmethod
    def count(self, filters: Sequence[Filter] = ()) -> RepositoryResult[int]: ...

    def exists(self, record_id: str) -> RepositoryResult[bool]:
        found = self.find_by_id(record_id)
        if not found.ok:
            return RepositoryResult(error=found.error)
        return RepositoryResult(data=found.data is not None)


@dataclass
class Repositories:
    categories: Repository[CategoryOut]
    transactions: Repository[TransactionOut]
    budgets: Repository[BudgetOut]


class RepositoryFactory(ABC):
    @abstractmethod
    @contextmanager
    def open(self) -> Iterator[Repositories]:
        """Repositories for one unit of work (an HTTP request, a job run)."""


def build_repository_factory(settings: Settings) -> RepositoryFactory:
    if settings.storage_mode == "file":
        from file_store import FileRepositoryFactory

        return FileRepositoryFactory(settings.file_store_dir)

    from database import SessionLocal
    from sql_store import SQLRepositoryFactory

    return SQLRepositoryFactory(SessionLocal)
