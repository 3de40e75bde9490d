from datetime import date
from decimal import Decimal

import pytest

from csv_utils import (
    TabularError,
    coerce_cell,
    csv_template,
    read_csv,
    sanitize_csv_value,
    validate_structure,
    write_csv,
)
from models import TransactionType
from row_validation import CategoryLookup, RowContext, ValidationReport, validate_transaction_row
from schemas import CategoryOut, CategoryRef, TransactionWithCategory


def test_read_csv_maps_display_headers_to_fields() -> None:
    content = (
        "\ufeff# exported from my bank\n"
        "Type;Amount;Description;Category;Date\n"
        "EXPENSE;12.50;Coffee;Dining Out;2024-03-01\n"
        ";;;;\n"
        "income;3000;Salary;Salary;2024-03-02\n"
    )

    headers, rows = read_csv(content, "transactions")

    assert headers == ["Type", "Amount", "Description", "Category", "Date"]
    assert rows == [
        {
            "type": "expense",
            "amount": Decimal("12.50"),
            "description": "Coffee",
            "category": "Dining Out",
            "date": "2024-03-01",
        },
        {
            "type": "income",
            "amount": 3000,
            "description": "Salary",
            "category": "Salary",
            "date": "2024-03-02",
        },
    ]


def test_read_csv_accepts_field_names_as_headers() -> None:
    content = "name,type,color,icon,parent_category\nSnacks,expense,#abc,cookie,Food\n"

    _headers, rows = read_csv(content, "categories", delimiter=",")

    assert rows[0]["parent_category"] == "Food"


def test_read_csv_enforces_row_limit_and_single_kind() -> None:
    content = "Type,Amount\n" + "expense,1\n" * 4

    with pytest.raises(TabularError) as exc:
        read_csv(content, "transactions", max_rows=3)
    assert exc.value.code.value == "EXCEEDS_MAX_ROWS"

    with pytest.raises(TabularError) as exc:
        read_csv(content, "full")
    assert exc.value.code.value == "INVALID_FORMAT"

    with pytest.raises(TabularError):
        read_csv("  \n", "transactions")


def test_coerce_cell_literals() -> None:
    assert coerce_cell("  ") is None
    assert coerce_cell("TRUE") is True
    assert coerce_cell("42") == 42
    assert coerce_cell("4.20") == Decimal("4.20")
    assert coerce_cell("2024-01-01") == "2024-01-01"


def test_sanitize_csv_value_neutralises_formulas() -> None:
    assert sanitize_csv_value("=SUM(A1:A3)") == "\t=SUM(A1:A3)"
    assert sanitize_csv_value("https://example.com") == "\thttps://example.com"
    assert sanitize_csv_value(" Groceries ") == "Groceries"


def test_write_csv_uses_category_names_and_field_selection() -> None:
    txn = TransactionWithCategory(
        id="t1",
        type=TransactionType.expense,
        amount=Decimal("12.5"),
        description="=cmd",
        category_id="c1",
        date=date(2024, 3, 1),
        category=CategoryRef(id="c1", name="Dining Out", type=TransactionType.expense),
    )

    full = write_csv([txn], "transactions")
    partial = write_csv([txn], "transactions", include_headers=False, fields=["amount", "date"])

    assert full.splitlines() == [
        '"Type","Amount","Description","Category","Date"',
        '"expense","12.50","\t=cmd","Dining Out","2024-03-01"',
    ]
    assert partial.splitlines() == ['"12.50","2024-03-01"']


def test_transactions_survive_a_csv_round_trip() -> None:
    dining = CategoryOut(
        id="c1", name="Dining Out", type=TransactionType.expense, color="#FF6B6B", icon="utensils"
    )
    ref = CategoryRef(id="c1", name="Dining Out", type=TransactionType.expense)
    originals = [
        TransactionWithCategory(
            id=f"t{n}",
            type=TransactionType.expense,
            amount=amount,
            description=description,
            category_id="c1",
            date=date(2024, 3, n),
            category=ref,
        )
        for n, (description, amount) in enumerate(
            [("0042", Decimal("12.5")), ("true", Decimal("3")), ("1e3", Decimal("0.99")), ("Coffee", Decimal("4.20"))],
            start=1,
        )
    ]

    _headers, rows = read_csv(write_csv(originals, "transactions"), "transactions")
    ctx = RowContext(categories=CategoryLookup([dining]), today=date(2024, 6, 15))
    report = ValidationReport()
    restored = [validate_transaction_row(row, i, ctx, report) for i, row in enumerate(rows, start=1)]

    assert report.is_valid
    assert restored == [
        {
            "type": txn.type,
            "amount": txn.amount,
            "description": txn.description,
            "category_id": txn.category_id,
            "date": txn.date,
        }
        for txn in originals
    ]


def test_read_csv_keeps_text_columns_literal() -> None:
    content = "Name,Type,Color,Icon\n007,Expense,#abc,true\n"

    _headers, rows = read_csv(content, "categories")

    assert rows == [{"name": "007", "type": "expense", "color": "#abc", "icon": "true"}]


def test_csv_template_is_readable_by_the_importer() -> None:
    template = csv_template("budgets")

    assert template.startswith("# Budgets import template\n")
    _headers, rows = read_csv(template, "budgets")
    assert rows[0]["category"] == "Groceries"
    assert rows[0]["period"] == "monthly"


def test_validate_structure_reports_missing_and_suggests_fixes() -> None:
    report = validate_structure(
        ["Type", "Amount", "Descripton", "Category", "Date", "Notes"], "transactions"
    )

    assert report.is_valid is False
    assert report.missing_fields == ["Description"]
    assert report.extra_fields == ["Descripton", "Notes"]
    assert report.suggestions == ['"Descripton" might be "Description"']
