"""Query filters understood by every repository backend.

A filter names a record field and carries the operand. Backends dispatch on
the filter class and raise ``TypeError`` for anything they do not know, so a
new variant cannot be silently ignored by one store.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class Ne:
    field: str
    value: Any


@dataclass(frozen=True)
class Gte:
    field: str
    value: Any


@dataclass(frozen=True)
class Lte:
    field: str
    value: Any


@dataclass(frozen=True)
class Like:
    """Case-insensitive match where ``%`` stands for any run of characters."""

    field: str
    pattern: str


@dataclass(frozen=True)
class IsNull:
    field: str
    is_null: bool = True


@dataclass(frozen=True)
class In:
    field: str
    values: tuple

    def __init__(self, field: str, values: Sequence[Any]) -> None:
        object.__setattr__(self, "field", field)
        object.__setattr__(self, "values", tuple(values))


Filter = Union[Eq, Ne, Gte, Lte, Like, IsNull, In]


@dataclass(frozen=True)
class Sort:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Page:
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.limit


def contains(field: str, text: str) -> Like:
    return Like(field, f"%{text.replace('%', '')}%")


def page_meta(page: Optional[Page], total: int) -> dict[str, object]:
    if page is None:
        page = Page(page=1, limit=max(total, 1))
    pages = max(1, math.ceil(total / page.limit)) if total else 0
    return {
        "page": page.page,
        "limit": page.limit,
        "total": total,
        "pages": pages,
        "has_next": page.page < pages,
        "has_prev": page.page > 1,
    }
