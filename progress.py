import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from models import TransactionType
from periods import days_remaining, total_days
from schemas import (
    BudgetAlert,
    BudgetOut,
    BudgetWithProgress,
    CategoryRef,
    TransactionOut,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class AlertThresholds:
    approaching: Decimal = Decimal("80")
    high: Decimal = Decimal("95")


def _budget_fields(budget: BudgetOut) -> dict:
    return budget.model_dump(include=set(BudgetOut.model_fields))


def zero_progress(
    budget: BudgetOut, category: Optional[CategoryRef] = None
) -> BudgetWithProgress:
    return BudgetWithProgress(
        **_budget_fields(budget),
        category=category,
        spent_amount=money(ZERO),
        remaining_amount=money(budget.budget_amount),
        progress_percentage=money(ZERO),
        is_overspent=False,
        days_remaining=0,
        average_daily_spending=money(ZERO),
        projected_total=money(ZERO),
    )


def compute_progress(
    budget: BudgetOut,
    transactions: Iterable[TransactionOut],
    *,
    category: Optional[CategoryRef] = None,
    now: Optional[datetime] = None,
) -> BudgetWithProgress:
    """Spend against a budget over its own date range.

    Only expense transactions of the budget's category dated inside
    [start_date, end_date] count. Values stay unrounded until the record is
    built. Any failure yields the zero-progress record instead of an error.
    """
    try:
        spent = sum(
            (
                txn.amount
                for txn in transactions
                if txn.type == TransactionType.expense
                and txn.category_id == budget.category_id
                and budget.start_date <= txn.date <= budget.end_date
            ),
            ZERO,
        )
        amount = Decimal(budget.budget_amount)
        remaining = amount - spent
        percentage = spent / amount * 100 if amount > 0 else ZERO

        left = days_remaining(budget.end_date, now=now)
        period_days = total_days(budget.start_date, budget.end_date)
        elapsed = period_days - left
        average_daily = spent / elapsed if elapsed > 0 else ZERO
        projected = average_daily * period_days if period_days > 0 else spent

        return BudgetWithProgress(
            **_budget_fields(budget),
            category=category,
            spent_amount=money(spent),
            remaining_amount=money(remaining),
            progress_percentage=money(percentage),
            is_overspent=spent > amount,
            days_remaining=left,
            average_daily_spending=money(average_daily),
            projected_total=money(projected),
        )
    except Exception as exc:
        logger.warning(f"progress_failed: budget_id={budget.id} error={exc}")
        return zero_progress(budget, category)


def classify_alert(
    progress: BudgetWithProgress, thresholds: AlertThresholds = AlertThresholds()
) -> Optional[BudgetAlert]:
    if not progress.is_active:
        return None

    spent = progress.spent_amount
    amount = progress.budget_amount
    pct = progress.progress_percentage
    if progress.is_overspent:
        alert_type, severity = "overspent", "high"
        message = f"Budget exceeded! Spent ${spent:.2f} of ${amount:.2f} budget."
    elif progress.projected_total > amount:
        alert_type, severity = "exceeded_projection", "medium"
        message = (
            f"On track to exceed budget! Projected total: "
            f"${progress.projected_total:.2f} (Budget: ${amount:.2f})."
        )
    elif pct >= thresholds.approaching:
        alert_type = "approaching_limit"
        severity = "high" if pct >= thresholds.high else "medium"
        message = (
            f"{pct:.1f}% of budget used. ${progress.remaining_amount:.2f} remaining."
        )
    else:
        return None

    return BudgetAlert(
        budget_id=progress.id,
        category_id=progress.category_id,
        category_name=progress.category.name if progress.category else None,
        alert_type=alert_type,
        severity=severity,
        message=message,
        progress_percentage=pct,
        spent_amount=spent,
        budget_amount=amount,
    )


def budget_alerts(
    progress: Iterable[BudgetWithProgress],
    thresholds: AlertThresholds = AlertThresholds(),
) -> list[BudgetAlert]:
    alerts = []
    for item in progress:
        alert = classify_alert(item, thresholds)
        if alert is not None:
            alerts.append(alert)
    return alerts
