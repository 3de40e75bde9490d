from datetime import date
from decimal import Decimal

import pytest

from file_store import JsonFileStore, file_repositories
from filters import Eq, Gte, In, IsNull, Like, Lte, Ne, Page, Sort
from models import BudgetPeriod, TransactionType
from schemas import BudgetIn, CategoryIn, TransactionIn
from services import BudgetService, CategoryService, ConflictError, StorageError, TransactionService


def make_repos(tmp_path):
    return file_repositories(JsonFileStore(tmp_path))


def add_transactions(repos, category_id: str) -> None:
    repos.transactions.bulk_create(
        [
            {
                "type": TransactionType.expense,
                "amount": Decimal(amount),
                "description": description,
                "category_id": category_id,
                "date": day,
            }
            for amount, description, day in (
                ("12.50", "Coffee beans", date(2024, 1, 3)),
                ("40.00", "Weekly shop", date(2024, 1, 10)),
                ("7.25", "Coffee", date(2024, 2, 1)),
            )
        ]
    )


def test_records_survive_a_new_store_instance(tmp_path) -> None:
    repos = make_repos(tmp_path)
    created = repos.categories.create(
        {"name": "Food", "type": TransactionType.expense, "color": "#123456", "icon": "utensils"}
    ).data

    reopened = make_repos(tmp_path)
    found = reopened.categories.find_by_id(created.id)

    assert found.ok
    assert found.data.name == "Food"
    assert found.data.type == TransactionType.expense
    assert (tmp_path / "categories.json").exists()
    assert not list(tmp_path.glob(".*.tmp"))


def test_filters_match_the_sql_semantics(tmp_path) -> None:
    repos = make_repos(tmp_path)
    add_transactions(repos, "c1")
    txns = repos.transactions

    def descriptions(*filters):
        return sorted(t.description for t in txns.find_all(list(filters)).data)

    assert descriptions(Gte("amount", "12.50"), Lte("amount", 40)) == ["Coffee beans", "Weekly shop"]
    assert descriptions(Like("description", "coffee%")) == ["Coffee", "Coffee beans"]
    assert descriptions(Gte("date", date(2024, 1, 5)), Ne("description", "Coffee")) == ["Weekly shop"]
    assert descriptions(In("description", ["Coffee", "Nope"])) == ["Coffee"]
    assert descriptions(Eq("type", "expense"), Lte("date", "2024-01-03")) == ["Coffee beans"]


def test_find_all_sorts_pages_and_counts(tmp_path) -> None:
    repos = make_repos(tmp_path)
    add_transactions(repos, "c1")

    result = repos.transactions.find_all(sort=Sort("amount", descending=True), page=Page(page=1, limit=2))

    assert result.count == 3
    assert [t.amount for t in result.data] == [Decimal("40.00"), Decimal("12.50")]
    assert repos.transactions.count([Eq("category_id", "c1")]).data == 3
    with pytest.raises(ValueError):
        repos.transactions.find_all([Eq("colour", "red")])


def test_update_delete_and_bulk_operations(tmp_path) -> None:
    repos = make_repos(tmp_path)
    add_transactions(repos, "c1")
    all_txns = repos.transactions.find_all().data

    updated = repos.transactions.update(all_txns[0].id, {"description": "Beans"})
    changed = repos.transactions.bulk_update([(t.id, {"category_id": "c2"}) for t in all_txns[:2]])

    assert updated.data.description == "Beans"
    assert updated.data.updated_at >= updated.data.created_at
    assert len(changed.data) == 2
    assert repos.transactions.update("missing", {"description": "x"}).data is None
    assert repos.transactions.delete(all_txns[0].id).data is True
    assert repos.transactions.delete(all_txns[0].id).data is False
    assert repos.transactions.bulk_delete([t.id for t in all_txns]).data == 2
    assert repos.transactions.exists(all_txns[1].id).data is False


def test_is_null_filter_on_parent(tmp_path) -> None:
    repos = make_repos(tmp_path)
    service = CategoryService(repos)
    food = service.create(CategoryIn(name="Food", type="expense", color="#123456", icon="utensils"))
    service.create(CategoryIn(name="Snacks", type="expense", color="#123456", icon="cookie", parent_id=food.id))

    roots = repos.categories.find_all([IsNull("parent_id")]).data
    children = service.list(parent_id=food.id)

    assert [c.name for c in roots] == ["Food"]
    assert [c.name for c in children] == ["Snacks"]
    assert [c.name for c in service.list(parent_id="null")] == ["Food"]


def test_services_run_on_the_file_backend(tmp_path) -> None:
    repos = make_repos(tmp_path)
    groceries = CategoryService(repos).create(
        CategoryIn(name="Groceries", type="expense", color="#22AA55", icon="cart")
    )
    budgets = BudgetService(repos)
    budgets.create(
        BudgetIn(category_id=groceries.id, budget_amount=Decimal("300"), period=BudgetPeriod.monthly, start_date=date(2024, 2, 1))
    )
    TransactionService(repos).create(
        TransactionIn(type="expense", amount=Decimal("25"), description="Shop", category_id=groceries.id, date=date(2024, 2, 3))
    )

    with pytest.raises(ConflictError):
        budgets.create(
            BudgetIn(category_id=groceries.id, budget_amount=Decimal("300"), period="weekly", start_date=date(2024, 2, 26))
        )
    items, total = budgets.list(include_progress=True)
    assert total == 1
    assert items[0].spent_amount == Decimal("25.00")


def test_corrupt_collection_surfaces_as_storage_error(tmp_path) -> None:
    repos = make_repos(tmp_path)
    (tmp_path / "categories.json").write_text("{not json", encoding="utf-8")

    result = repos.categories.find_all()

    assert not result.ok
    assert "Failed to list record" in result.error
    with pytest.raises(StorageError):
        CategoryService(repos).list()
