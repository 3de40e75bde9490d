from datetime import date
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook

from csv_utils import TabularError
from models import BudgetPeriod, TransactionType
from schemas import BudgetWithCategory, CategoryRef
from xlsx_utils import (
    infer_type_from_sheet_name,
    read_xlsx,
    validate_xlsx_structure,
    write_xlsx,
    xlsx_template,
)


def workbook_bytes(sheets: dict[str, list[list]]) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_infer_type_from_sheet_name() -> None:
    assert infer_type_from_sheet_name("My Transactions") == "transactions"
    assert infer_type_from_sheet_name("Categories") == "categories"
    assert infer_type_from_sheet_name("Budget Plan") == "budgets"
    assert infer_type_from_sheet_name("Instructions") is None
    assert infer_type_from_sheet_name("Sheet1") is None


def test_read_xlsx_full_reads_every_data_sheet() -> None:
    content = workbook_bytes(
        {
            "Categories": [["Name", "Type", "Color", "Icon"], ["Travel", "expense", "#123456", "plane"]],
            "Transactions": [
                ["Type", "Amount", "Description", "Category", "Date"],
                [],
                ["expense", 12.5, "Train", "Travel", date(2024, 3, 1)],
            ],
            "Instructions": [["Do not edit"]],
        }
    )

    parsed = read_xlsx(content, "full")

    assert set(parsed) == {"categories", "transactions"}
    _headers, rows = parsed["transactions"]
    assert rows == [
        {
            "type": "expense",
            "amount": Decimal("12.5"),
            "description": "Train",
            "category": "Travel",
            "date": date(2024, 3, 1),
        }
    ]


def test_read_xlsx_single_kind_falls_back_to_first_sheet() -> None:
    content = workbook_bytes({"Sheet1": [["Name", "Type", "Color", "Icon"], ["Gym", "expense", "#abc", "dumbbell"]]})

    parsed = read_xlsx(content, "categories")

    assert parsed["categories"][1][0]["name"] == "Gym"


def test_read_xlsx_errors() -> None:
    with pytest.raises(TabularError) as exc:
        read_xlsx(b"not a workbook", "transactions")
    assert exc.value.code.value == "INVALID_FORMAT"

    rows = [["Type", "Amount"]] + [["expense", 1]] * 3
    with pytest.raises(TabularError) as exc:
        read_xlsx(workbook_bytes({"Transactions": rows}), "transactions", max_rows=2)
    assert exc.value.code.value == "EXCEEDS_MAX_ROWS"

    with pytest.raises(TabularError):
        read_xlsx(workbook_bytes({"Notes": [["hello"]]}), "full")


def test_write_xlsx_formats_sheets_and_metadata() -> None:
    budget = BudgetWithCategory(
        id="b1",
        category_id="c1",
        budget_amount=Decimal("500"),
        period=BudgetPeriod.monthly,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        category=CategoryRef(id="c1", name="Groceries", type=TransactionType.expense),
    )

    content = write_xlsx(
        {"budgets": [budget], "transactions": []},
        metadata={"Export Type": "full", "Date Range": None},
    )

    workbook = load_workbook(BytesIO(content))
    assert workbook.sheetnames == ["Budgets", "Transactions", "Metadata"]
    sheet = workbook["Budgets"]
    assert [c.value for c in sheet[1]] == ["Category", "Budget Amount", "Period", "Start Date", "End Date"]
    assert sheet["A2"].value == "Groceries"
    assert sheet["B2"].value == 500.0
    assert sheet["B2"].number_format == "0.00"
    assert sheet[1][0].font.bold
    assert [c.value for c in workbook["Metadata"]["A"]] == ["Key", "Export Type", "Date Range"]


def test_xlsx_template_round_trips_through_structure_check() -> None:
    content = xlsx_template("full")

    workbook = load_workbook(BytesIO(content))
    assert workbook.sheetnames == ["Transactions", "Categories", "Budgets", "Instructions"]
    headers, issues, _suggestions = validate_xlsx_structure(content, "full")
    assert issues == []
    assert headers["budgets"][0] == "Category"


def test_validate_xlsx_structure_reports_missing_sheets_and_columns() -> None:
    content = workbook_bytes({"Transactions": [["Type", "Amount", "Description", "Date"]]})

    _headers, issues, suggestions = validate_xlsx_structure(content, "full")

    assert 'Transactions: missing required column "Category"' in issues
    assert "Missing sheet for categories" in issues
    assert 'Add a sheet named "Budgets"' in suggestions
