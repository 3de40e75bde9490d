from datetime import date
from decimal import Decimal

import pytest

from models import BudgetPeriod, TransactionType
from row_validation import (
    CategoryLookup,
    RowContext,
    ValidationReport,
    parse_amount,
    parse_date,
    validate_budget_row,
    validate_category_row,
    validate_transaction_row,
)
from schemas import BudgetOut, CategoryOut

TODAY = date(2024, 6, 15)


def make_categories() -> CategoryLookup:
    return CategoryLookup(
        [
            CategoryOut(
                id="groceries", name="Groceries", type=TransactionType.expense,
                color="#22AA55", icon="cart",
            ),
            CategoryOut(
                id="salary", name="Salary", type=TransactionType.income,
                color="#2ECC71", icon="briefcase",
            ),
            CategoryOut(
                id="old", name="Old Stuff", type=TransactionType.expense,
                color="#999999", icon="box", is_active=False,
            ),
        ]
    )


def make_ctx(**kwargs) -> RowContext:
    return RowContext(categories=make_categories(), today=TODAY, **kwargs)


def test_parse_amount_strips_currency_noise() -> None:
    assert parse_amount("$1,234.50") == Decimal("1234.50")
    assert parse_amount(" 12 ") == Decimal("12")
    assert parse_amount(3.1) == Decimal("3.1")
    with pytest.raises(ValueError):
        parse_amount("twelve")
    with pytest.raises(ValueError):
        parse_amount(True)


def test_parse_date_prefers_requested_format() -> None:
    assert parse_date("03/04/2024") == date(2024, 3, 4)
    assert parse_date("03/04/2024", preferred="DD/MM/YYYY") == date(2024, 4, 3)
    assert parse_date("2024-3-4") == date(2024, 3, 4)
    assert parse_date("25/12/2024") == date(2024, 12, 25)
    with pytest.raises(ValueError):
        parse_date("13/25/2024")


def test_valid_transaction_row_is_normalised() -> None:
    report = ValidationReport()
    row = {
        "type": "Expense",
        "amount": "$1,234.567",
        "description": "  Weekly shop ",
        "category": "groceries",
        "date": "2024-06-01",
    }

    values = validate_transaction_row(row, 1, make_ctx(), report)

    assert values == {
        "type": TransactionType.expense,
        "amount": Decimal("1234.57"),
        "description": "Weekly shop",
        "category_id": "groceries",
        "date": date(2024, 6, 1),
    }
    assert report.is_valid
    assert [w.warning_code for w in report.warnings] == ["AUTO_CORRECTED_VALUE"]


def test_transaction_row_collects_every_field_error() -> None:
    report = ValidationReport()
    row = {"type": "refund", "amount": "-5", "category": "Nowhere", "date": "soon"}

    assert validate_transaction_row(row, 4, make_ctx(), report) is None

    codes = {(e.field, e.error_code) for e in report.errors}
    assert codes == {
        ("type", "INVALID_TYPE"),
        ("amount", "INVALID_AMOUNT"),
        ("description", "MISSING_REQUIRED_FIELD"),
        ("category", "CATEGORY_NOT_FOUND"),
        ("date", "INVALID_DATE_FORMAT"),
    }
    assert all(e.row == 4 for e in report.errors)


def test_transaction_category_must_match_type_and_be_active() -> None:
    report = ValidationReport()
    base = {"amount": "10", "description": "x", "date": "2024-06-01"}

    validate_transaction_row({**base, "type": "income", "category": "Groceries"}, 1, make_ctx(), report)
    validate_transaction_row({**base, "type": "expense", "category": "Old Stuff"}, 2, make_ctx(), report)

    assert [e.error_code for e in report.errors] == ["INVALID_TYPE", "INVALID_FIELD_VALUE"]
    assert report.errors[1].message == 'Category "Old Stuff" is inactive'


def test_far_future_date_and_long_description_only_warn() -> None:
    report = ValidationReport()
    row = {
        "type": "expense",
        "amount": 10,
        "description": "x" * 250,
        "category": "Groceries",
        "date": "2024-07-01",
    }

    values = validate_transaction_row(row, 1, make_ctx(), report)

    assert len(values["description"]) == 200
    assert {w.warning_code for w in report.warnings} == {
        "DATA_TRUNCATED",
        "AUTO_CORRECTED_VALUE",
    }
    assert report.summary(1).rows_with_warnings == 1


def test_category_rows_reject_duplicates_within_file_and_storage() -> None:
    report = ValidationReport()
    ctx = make_ctx()
    row = {"name": "Travel", "type": "expense", "color": "#123456", "icon": "plane"}

    assert validate_category_row(row, 1, ctx, report) is not None
    assert validate_category_row({**row, "name": "travel"}, 2, ctx, report) is None
    assert validate_category_row({**row, "name": "Groceries"}, 3, ctx, report) is None

    assert [e.error_code for e in report.errors] == ["DUPLICATE_ENTRY", "DUPLICATE_ENTRY"]
    assert report.errors[1].message == 'Category "Groceries" already exists'


def test_existing_category_is_allowed_when_importer_resolves_clashes() -> None:
    report = ValidationReport()
    row = {"name": "Groceries", "type": "expense", "color": "#123456", "icon": "cart"}

    assert validate_category_row(row, 1, make_ctx(allow_existing=True), report) is not None
    assert report.is_valid


def test_category_parent_checks() -> None:
    report = ValidationReport()
    ctx = make_ctx()
    base = {"type": "expense", "color": "#abc", "icon": "tag"}

    ok = validate_category_row({**base, "name": "Snacks", "parent_category": "Groceries"}, 1, ctx, report)
    validate_category_row({**base, "name": "Bonus", "parent_category": "Salary"}, 2, ctx, report)
    validate_category_row({**base, "name": "Loop", "parent_category": "Loop"}, 3, ctx, report)
    validate_category_row({**base, "name": "Child", "parent_category": "Missing"}, 4, ctx, report)
    validate_category_row({**base, "name": "Paint", "color": "red"}, 5, ctx, report)

    assert ok["parent_category"] == "Groceries"
    assert [(e.row, e.error_code) for e in report.errors] == [
        (2, "INVALID_FIELD_VALUE"),
        (3, "CATEGORY_NOT_FOUND"),
        (4, "CATEGORY_NOT_FOUND"),
        (5, "INVALID_FIELD_VALUE"),
    ]


def test_category_may_reference_parent_from_earlier_row() -> None:
    report = ValidationReport()
    ctx = make_ctx()
    base = {"type": "expense", "color": "#abc", "icon": "tag"}

    validate_category_row({**base, "name": "Hobbies"}, 1, ctx, report)
    values = validate_category_row(
        {**base, "name": "Model Trains", "parent_category": "hobbies"}, 2, ctx, report
    )

    assert report.is_valid
    assert values["parent_category"] == "hobbies"


def test_budget_row_derives_end_date_from_period() -> None:
    report = ValidationReport()
    row = {"category": "Groceries", "amount": "500", "period": "Monthly", "start_date": "2024-02-01"}

    values = validate_budget_row(row, 1, make_ctx(), report)

    assert values == {
        "category_id": "groceries",
        "budget_amount": Decimal("500.00"),
        "period": BudgetPeriod.monthly,
        "start_date": date(2024, 2, 1),
        "end_date": date(2024, 2, 29),
    }


def test_budget_row_rules() -> None:
    report = ValidationReport()
    ctx = make_ctx()
    base = {"category": "Groceries", "amount": "100", "period": "weekly"}

    validate_budget_row({**base, "category": "Salary", "start_date": "2024-01-01"}, 1, ctx, report)
    validate_budget_row({**base, "period": "daily", "start_date": "2024-01-01"}, 2, ctx, report)
    validate_budget_row(
        {**base, "start_date": "2024-01-10", "end_date": "2024-01-05"}, 3, ctx, report
    )

    assert [(e.row, e.field, e.error_code) for e in report.errors] == [
        (1, "category", "INVALID_FIELD_VALUE"),
        (2, "period", "INVALID_PERIOD"),
        (3, "end_date", "INVALID_FIELD_VALUE"),
    ]


def test_budget_row_overlaps() -> None:
    stored = BudgetOut(
        id="b1",
        category_id="groceries",
        budget_amount=Decimal("300"),
        period=BudgetPeriod.monthly,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
    )
    report = ValidationReport()
    ctx = make_ctx(budgets=[stored])
    base = {"category": "Groceries", "amount": "100", "period": "monthly"}

    validate_budget_row({**base, "start_date": "2024-01-15"}, 1, ctx, report)
    validate_budget_row({**base, "start_date": "2024-03-01"}, 2, ctx, report)
    validate_budget_row({**base, "start_date": "2024-03-20"}, 3, ctx, report)

    # Rows 2 and 3 overlap each other; the importer skips the later one.
    assert [(e.row, e.error_code) for e in report.errors] == [(1, "OVERLAPPING_BUDGET")]
