from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import init_db, make_engine
from filters import Eq, Like, Page, Sort
from models import Transaction, TransactionType
from sql_store import from_cents, sql_repositories, to_cents


def make_session() -> Session:
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    return Session(engine)


def test_cents_conversion_rounds_half_up() -> None:
    assert to_cents(Decimal("10.005")) == 1001
    assert to_cents("0.1") == 10
    assert from_cents(1999) == Decimal("19.99")


def test_amounts_are_stored_as_integer_cents() -> None:
    session = make_session()
    repos = sql_repositories(session)
    category = repos.categories.create(
        {"name": "Food", "type": TransactionType.expense, "color": "#123456", "icon": "utensils"}
    ).data

    txn = repos.transactions.create(
        {
            "type": TransactionType.expense,
            "amount": Decimal("12.34"),
            "description": "Lunch",
            "category_id": category.id,
            "date": date(2024, 1, 2),
        }
    ).data

    row = session.scalars(select(Transaction)).one()
    assert row.amount_cents == 1234
    assert txn.amount == Decimal("12.34")
    assert repos.transactions.find_all([Eq("amount", "12.34")]).count == 1


def test_foreign_key_failures_come_back_as_errors() -> None:
    repos = sql_repositories(make_session())

    result = repos.transactions.create(
        {
            "type": TransactionType.expense,
            "amount": Decimal("1"),
            "description": "Orphan",
            "category_id": "missing",
            "date": date(2024, 1, 2),
        }
    )

    assert not result.ok
    assert result.error.startswith("Failed to create record")
    assert repos.transactions.count().data == 0


def test_like_treats_underscore_literally_and_pages_are_counted() -> None:
    repos = sql_repositories(make_session())
    for name in ("snack_bar", "snackXbar", "Snacks"):
        repos.categories.create(
            {"name": name, "type": TransactionType.expense, "color": "#123456", "icon": "tag"}
        )

    literal = repos.categories.find_all([Like("name", "%k_b%")]).data
    paged = repos.categories.find_all([Like("name", "snack%")], Sort("name"), Page(page=1, limit=2))

    assert [c.name for c in literal] == ["snack_bar"]
    assert paged.count == 3
    assert [c.name for c in paged.data] == ["Snacks", "snackXbar"]
