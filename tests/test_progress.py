from datetime import date, datetime
from decimal import Decimal

from models import BudgetPeriod, TransactionType
from progress import AlertThresholds, budget_alerts, classify_alert, compute_progress
from schemas import BudgetOut, CategoryRef, TransactionOut


def make_budget(amount: str = "500.00", **overrides) -> BudgetOut:
    values = dict(
        id="b1",
        category_id="c1",
        budget_amount=Decimal(amount),
        period=BudgetPeriod.monthly,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        is_active=True,
    )
    values.update(overrides)
    return BudgetOut(**values)


def make_txn(amount: str, day: int, **overrides) -> TransactionOut:
    values = dict(
        id=f"t-{amount}-{day}",
        type=TransactionType.expense,
        amount=Decimal(amount),
        description="Groceries",
        category_id="c1",
        date=date(2024, 1, day),
    )
    values.update(overrides)
    return TransactionOut(**values)


def test_progress_counts_expenses_inside_the_budget_range() -> None:
    budget = make_budget()
    txns = [make_txn("100.00", 3), make_txn("150.00", 10), make_txn("50.00", 15)]

    progress = compute_progress(budget, txns, now=datetime(2024, 1, 16))

    assert progress.spent_amount == Decimal("300.00")
    assert progress.remaining_amount == Decimal("200.00")
    assert progress.progress_percentage == Decimal("60.00")
    assert progress.is_overspent is False
    assert progress.days_remaining == 15
    assert progress.average_daily_spending == Decimal("20.00")
    assert progress.projected_total == Decimal("600.00")


def test_progress_ignores_income_other_categories_and_out_of_range_dates() -> None:
    budget = make_budget()
    txns = [
        make_txn("100.00", 3),
        make_txn("999.00", 4, type=TransactionType.income),
        make_txn("999.00", 5, category_id="c2"),
        make_txn("999.00", 6, date=date(2024, 2, 1)),
    ]

    progress = compute_progress(budget, txns, now=datetime(2024, 1, 16))

    assert progress.spent_amount == Decimal("100.00")


def test_overspent_budget_raises_high_alert() -> None:
    budget = make_budget("100.00")
    category = CategoryRef(id="c1", name="Groceries", type=TransactionType.expense)

    progress = compute_progress(
        budget, [make_txn("120.00", 5)], category=category, now=datetime(2024, 1, 16)
    )
    alert = classify_alert(progress)

    assert progress.is_overspent is True
    assert progress.remaining_amount == Decimal("-20.00")
    assert alert.alert_type == "overspent"
    assert alert.severity == "high"
    assert alert.category_name == "Groceries"
    assert alert.message == "Budget exceeded! Spent $120.00 of $100.00 budget."


def test_projection_alert_before_threshold_alert() -> None:
    progress = compute_progress(
        make_budget(), [make_txn("300.00", 2)], now=datetime(2024, 1, 16)
    )

    assert classify_alert(progress).alert_type == "exceeded_projection"


def test_approaching_limit_severity_depends_on_high_threshold() -> None:
    # Late in the period the projection stays under the budget.
    progress = compute_progress(
        make_budget(), [make_txn("425.00", 2)], now=datetime(2024, 1, 31)
    )
    thresholds = AlertThresholds(approaching=Decimal("80"), high=Decimal("95"))

    alert = classify_alert(progress, thresholds)

    assert alert.alert_type == "approaching_limit"
    assert alert.severity == "medium"
    assert alert.message == "85.0% of budget used. $75.00 remaining."
    strict = AlertThresholds(approaching=Decimal("50"), high=Decimal("80"))
    assert classify_alert(progress, strict).severity == "high"


def test_inactive_and_healthy_budgets_produce_no_alerts() -> None:
    healthy = compute_progress(make_budget(), [make_txn("10.00", 2)], now=datetime(2024, 1, 31))
    inactive = compute_progress(
        make_budget("50.00", is_active=False),
        [make_txn("80.00", 2)],
        now=datetime(2024, 1, 31),
    )

    assert budget_alerts([healthy, inactive]) == []
