from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from filters import Eq, Filter, Gte, In, IsNull, Lte, Ne, Page, Sort, contains
from hierarchy import build_hierarchy, would_create_cycle
from models import BudgetPeriod, TransactionType
from periods import Period, end_date_for_period, local_today, ranges_overlap
from progress import (
    ZERO,
    AlertThresholds,
    budget_alerts,
    compute_progress,
    money,
    zero_progress,
)
from repositories import Repositories, RepositoryResult
from schemas import (
    BudgetAlert,
    BudgetIn,
    BudgetOut,
    BudgetUpdate,
    BudgetWithCategory,
    BudgetWithProgress,
    CategoryIn,
    CategoryOut,
    CategoryRef,
    CategoryUpdate,
    CategoryWithChildren,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
    TransactionWithCategory,
)

logger = logging.getLogger(__name__)

TRANSACTION_DATE_GRACE = timedelta(days=1)
TRANSACTION_SORT_FIELDS = ("date", "amount", "description", "type", "created_at")
PERFORMANCE_APPROACHING = Decimal("80")


class NotFoundError(ValueError):
    status_code = 404


class ConflictError(ValueError):
    status_code = 409


class BusinessRuleError(ValueError):
    status_code = 400


class StorageError(RuntimeError):
    status_code = 500


def unwrap(result: RepositoryResult, action: str) -> Any:
    if not result.ok:
        raise StorageError(f"Failed to {action}: {result.error}")
    return result.data


def category_ref(category: CategoryOut) -> CategoryRef:
    return CategoryRef.model_validate(category, from_attributes=True)


def category_refs(repos: Repositories) -> dict[str, CategoryRef]:
    categories = unwrap(repos.categories.find_all(), "fetch categories")
    return {cat.id: category_ref(cat) for cat in categories}


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = None

    def to_filters(self) -> list[Filter]:
        filters: list[Filter] = []
        if self.type:
            filters.append(Eq("type", self.type))
        if self.category_id:
            filters.append(Eq("category_id", self.category_id))
        if self.start_date:
            filters.append(Gte("date", self.start_date))
        if self.end_date:
            filters.append(Lte("date", self.end_date))
        if self.min_amount is not None:
            filters.append(Gte("amount", self.min_amount))
        if self.max_amount is not None:
            filters.append(Lte("amount", self.max_amount))
        if self.search:
            filters.append(contains("description", self.search.strip()))
        return filters


DEFAULT_CATEGORIES: list[dict[str, str]] = [
    {"name": "Food & Dining", "type": "expense", "color": "#FF6B6B", "icon": "utensils"},
    {"name": "Transportation", "type": "expense", "color": "#4ECDC4", "icon": "car"},
    {"name": "Shopping", "type": "expense", "color": "#95E1D3", "icon": "shopping-bag"},
    {"name": "Entertainment", "type": "expense", "color": "#F6D55C", "icon": "gamepad"},
    {
        "name": "Bills & Utilities",
        "type": "expense",
        "color": "#ED553B",
        "icon": "file-invoice-dollar",
    },
    {"name": "Healthcare", "type": "expense", "color": "#20639B", "icon": "heartbeat"},
    {"name": "Education", "type": "expense", "color": "#173F5F", "icon": "graduation-cap"},
    {"name": "Personal Care", "type": "expense", "color": "#3CAEA3", "icon": "spa"},
    {"name": "Home", "type": "expense", "color": "#F6D55C", "icon": "home"},
    {"name": "Other", "type": "expense", "color": "#95A5A6", "icon": "ellipsis-h"},
    {"name": "Salary", "type": "income", "color": "#2ECC71", "icon": "briefcase"},
    {"name": "Freelance", "type": "income", "color": "#3498DB", "icon": "laptop"},
    {"name": "Investment", "type": "income", "color": "#9B59B6", "icon": "chart-line"},
    {"name": "Business", "type": "income", "color": "#E74C3C", "icon": "store"},
    {"name": "Gift", "type": "income", "color": "#F39C12", "icon": "gift"},
    {"name": "Other Income", "type": "income", "color": "#95A5A6", "icon": "plus-circle"},
]


class CategoryService:
    def __init__(self, repos: Repositories) -> None:
        self.repos = repos
        self.categories = repos.categories

    def _get(self, category_id: str) -> CategoryOut:
        category = unwrap(self.categories.find_by_id(category_id), "fetch category")
        if category is None:
            raise NotFoundError("Category not found")
        return category

    def _parent_of(self, category_id: str) -> Optional[str]:
        category = unwrap(self.categories.find_by_id(category_id), "fetch category")
        return category.parent_id if category else None

    def _name_taken(
        self, name: str, type_: TransactionType, exclude_id: Optional[str] = None
    ) -> bool:
        candidates = unwrap(
            self.categories.find_all([Eq("type", type_), contains("name", name)]),
            "check for existing category",
        )
        wanted = name.strip().lower()
        return any(
            cat.name.strip().lower() == wanted and cat.id != exclude_id
            for cat in candidates
        )

    def list(
        self,
        *,
        type: Optional[TransactionType] = None,
        is_active: Optional[bool] = None,
        parent_id: Optional[str] = None,
        search: Optional[str] = None,
        include_children: bool = False,
    ) -> list[CategoryOut]:
        filters: list[Filter] = []
        if type:
            filters.append(Eq("type", type))
        if is_active is not None:
            filters.append(Eq("is_active", is_active))
        if parent_id == "null":
            filters.append(IsNull("parent_id"))
        elif parent_id:
            filters.append(Eq("parent_id", parent_id))
        if search:
            filters.append(contains("name", search.strip()))
        categories = unwrap(
            self.categories.find_all(filters, Sort("name")), "fetch categories"
        )
        if not include_children:
            return categories

        everything = unwrap(self.categories.find_all(sort=Sort("name")), "fetch categories")
        out: list[CategoryOut] = []
        for cat in categories:
            node = CategoryWithChildren(**cat.model_dump())
            node.children = [
                CategoryWithChildren(**child.model_dump())
                for child in everything
                if child.parent_id == cat.id
            ]
            out.append(node)
        return out

    def get(self, category_id: str) -> CategoryWithChildren:
        category = self._get(category_id)
        node = CategoryWithChildren(**category.model_dump())
        if category.parent_id:
            parent = unwrap(
                self.categories.find_by_id(category.parent_id), "fetch category"
            )
            node.parent = category_ref(parent) if parent else None
        children = unwrap(
            self.categories.find_all([Eq("parent_id", category.id)], Sort("name")),
            "fetch categories",
        )
        node.children = [CategoryWithChildren(**child.model_dump()) for child in children]
        return node

    def hierarchy(self, is_active: Optional[bool] = None) -> list[CategoryWithChildren]:
        filters = [Eq("is_active", is_active)] if is_active is not None else []
        categories = unwrap(
            self.categories.find_all(filters), "fetch category hierarchy"
        )
        return build_hierarchy(categories)

    def _check_parent(self, parent_id: str, child_type: TransactionType) -> CategoryOut:
        parent = unwrap(self.categories.find_by_id(parent_id), "fetch category")
        if parent is None:
            raise NotFoundError("Parent category not found")
        if parent.type != child_type:
            raise BusinessRuleError(
                f'Parent category type "{parent.type.value}" does not match child type "{child_type.value}"'
            )
        return parent

    def create(self, data: CategoryIn) -> CategoryOut:
        if data.parent_id:
            self._check_parent(data.parent_id, data.type)
        name = data.name.strip()
        if self._name_taken(name, data.type):
            raise ConflictError(
                f'Category with name "{name}" already exists for type "{data.type.value}"'
            )
        values = data.model_dump()
        values["name"] = name
        category = unwrap(self.categories.create(values), "create category")
        logger.info(f"category_created: id={category.id} name={category.name}")
        return category

    def update(self, category_id: str, data: CategoryUpdate) -> CategoryOut:
        existing = self._get(category_id)
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] is not None:
            changes["name"] = changes["name"].strip()

        structural = {
            key
            for key in ("name", "type", "parent_id")
            if key in changes and changes[key] != getattr(existing, key)
        }
        if existing.is_default and structural:
            raise BusinessRuleError(
                "Cannot modify name, type, or parent of default categories"
            )

        new_type = changes.get("type") or existing.type
        if "parent_id" in changes:
            parent_id = changes["parent_id"]
            if parent_id == category_id:
                raise BusinessRuleError("Category cannot be its own parent")
            if parent_id is not None:
                self._check_parent(parent_id, new_type)
                if would_create_cycle(category_id, parent_id, self._parent_of):
                    raise BusinessRuleError("Update would create circular reference")
        elif "type" in changes and existing.parent_id:
            self._check_parent(existing.parent_id, new_type)

        new_name = changes.get("name") or existing.name
        if ("name" in structural or "type" in structural) and self._name_taken(
            new_name, new_type, exclude_id=category_id
        ):
            raise ConflictError(
                f'Category with name "{new_name}" already exists for type "{new_type.value}"'
            )

        nullable = ("parent_id", "description")
        changes = {k: v for k, v in changes.items() if v is not None or k in nullable}
        updated = unwrap(self.categories.update(category_id, changes), "update category")
        if updated is None:
            raise NotFoundError("Category not found")
        return updated

    def delete(self, category_id: str) -> None:
        category = self._get(category_id)
        if category.is_default:
            raise BusinessRuleError("Cannot delete default category")
        children = unwrap(
            self.categories.count([Eq("parent_id", category_id)]),
            "check for child categories",
        )
        if children:
            raise BusinessRuleError("Cannot delete category with child categories")
        used = unwrap(
            self.repos.transactions.count([Eq("category_id", category_id)]),
            "check category usage",
        )
        if used:
            raise BusinessRuleError("Cannot delete category that is used in transactions")
        budgeted = unwrap(
            self.repos.budgets.count([Eq("category_id", category_id)]),
            "check category usage",
        )
        if budgeted:
            raise BusinessRuleError("Cannot delete category that has budgets")
        unwrap(self.categories.delete(category_id), "delete category")
        logger.info(f"category_deleted: id={category_id}")

    def bulk_create(self, items: Sequence[CategoryIn]) -> dict[str, list]:
        """Create each category independently; failures do not stop the batch."""
        successful: list[CategoryOut] = []
        failed: list[dict[str, Any]] = []
        for item in items:
            try:
                successful.append(self.create(item))
            except (ValueError, StorageError) as exc:
                failed.append({"data": item.model_dump(mode="json"), "error": str(exc)})
        return {"successful": successful, "failed": failed}

    def seed_defaults(self) -> list[CategoryOut]:
        existing = unwrap(self.categories.count(), "count categories")
        if existing:
            return []
        values = [
            {
                **item,
                "type": TransactionType(item["type"]),
                "is_default": True,
                "is_active": True,
                "description": None,
            }
            for item in DEFAULT_CATEGORIES
        ]
        created = unwrap(self.categories.bulk_create(values), "seed default categories")
        logger.info(f"categories_seeded: count={len(created)}")
        return created


class TransactionService:
    def __init__(self, repos: Repositories) -> None:
        self.repos = repos
        self.transactions = repos.transactions

    def _check(
        self,
        type_: TransactionType,
        amount: Decimal,
        category_id: str,
        txn_date: date,
        *,
        action: str = "create",
    ) -> CategoryOut:
        category = unwrap(self.repos.categories.find_by_id(category_id), "fetch category")
        if category is None:
            raise NotFoundError("Category not found")
        if not category.is_active:
            raise BusinessRuleError(f"Cannot {action} transaction with inactive category")
        if category.type != type_:
            raise BusinessRuleError(
                f'Transaction type "{type_.value}" does not match category type "{category.type.value}"'
            )
        if amount <= 0:
            raise BusinessRuleError("Transaction amount must be positive")
        if txn_date > local_today() + TRANSACTION_DATE_GRACE:
            raise BusinessRuleError(
                "Transaction date cannot be more than 1 day in the future"
            )
        return category

    def _with_category(
        self, txn: TransactionOut, category: Optional[CategoryRef]
    ) -> TransactionWithCategory:
        return TransactionWithCategory(**txn.model_dump(), category=category)

    def get(self, transaction_id: str) -> TransactionWithCategory:
        txn = unwrap(self.transactions.find_by_id(transaction_id), "fetch transaction")
        if txn is None:
            raise NotFoundError("Transaction not found")
        category = unwrap(
            self.repos.categories.find_by_id(txn.category_id), "fetch category"
        )
        return self._with_category(txn, category_ref(category) if category else None)

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        *,
        sort: str = "date",
        order: str = "desc",
        page: Optional[Page] = None,
    ) -> tuple[list[TransactionWithCategory], int]:
        if sort not in TRANSACTION_SORT_FIELDS:
            raise BusinessRuleError(f"Cannot sort transactions by {sort}")
        filters = filters or TransactionFilters()
        result = self.transactions.find_all(
            filters.to_filters(), Sort(sort, descending=order.lower() == "desc"), page
        )
        rows = unwrap(result, "fetch transactions")
        refs = category_refs(self.repos)
        items = [self._with_category(txn, refs.get(txn.category_id)) for txn in rows]
        return items, result.count or 0

    def create(self, data: TransactionIn) -> TransactionWithCategory:
        amount = money(data.amount)
        category = self._check(data.type, amount, data.category_id, data.date)
        values = data.model_dump()
        values["amount"] = amount
        values["description"] = data.description.strip()
        txn = unwrap(self.transactions.create(values), "create transaction")
        return self._with_category(txn, category_ref(category))

    def update(self, transaction_id: str, data: TransactionUpdate) -> TransactionWithCategory:
        existing = unwrap(self.transactions.find_by_id(transaction_id), "fetch transaction")
        if existing is None:
            raise NotFoundError("Transaction not found")
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if "amount" in changes:
            changes["amount"] = money(changes["amount"])
        if "description" in changes:
            changes["description"] = changes["description"].strip()
        merged = existing.model_copy(update=changes)
        category = self._check(
            merged.type,
            merged.amount,
            merged.category_id,
            merged.date,
            action="update",
        )
        txn = unwrap(self.transactions.update(transaction_id, changes), "update transaction")
        if txn is None:
            raise NotFoundError("Transaction not found")
        return self._with_category(txn, category_ref(category))

    def delete(self, transaction_id: str) -> None:
        deleted = unwrap(self.transactions.delete(transaction_id), "delete transaction")
        if not deleted:
            raise NotFoundError("Transaction not found")

    def bulk_create(self, items: Sequence[TransactionIn]) -> list[TransactionOut]:
        """All-or-nothing: every item is checked before anything is written."""
        values: list[dict[str, Any]] = []
        for item in items:
            amount = money(item.amount)
            try:
                self._check(item.type, amount, item.category_id, item.date)
            except NotFoundError as exc:
                raise NotFoundError(f"{exc}: {item.category_id}") from exc
            except BusinessRuleError as exc:
                raise BusinessRuleError(f"{exc}: {item.description}") from exc
            row = item.model_dump()
            row["amount"] = amount
            row["description"] = item.description.strip()
            values.append(row)
        created = unwrap(self.transactions.bulk_create(values), "bulk create transactions")
        logger.info(f"transactions_bulk_created: count={len(created)}")
        return created

    def bulk_delete(self, transaction_ids: Sequence[str]) -> int:
        return unwrap(
            self.transactions.bulk_delete(list(transaction_ids)),
            "bulk delete transactions",
        )

    def summary(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> dict[str, Any]:
        transactions = unwrap(
            self.transactions.find_all(
                TransactionFilters(start_date=start, end_date=end).to_filters()
            ),
            "get transaction summary",
        )
        income = sum(
            (t.amount for t in transactions if t.type == TransactionType.income), ZERO
        )
        expenses = sum(
            (t.amount for t in transactions if t.type == TransactionType.expense), ZERO
        )
        average = (income + expenses) / len(transactions) if transactions else ZERO
        dates = sorted(t.date for t in transactions)
        today = local_today()
        return {
            "total_transactions": len(transactions),
            "total_income": money(income),
            "total_expenses": money(expenses),
            "net_amount": money(income - expenses),
            "average_transaction": money(average),
            "date_range": {
                "start": dates[0] if dates else (start or today),
                "end": dates[-1] if dates else (end or today),
            },
        }


class BudgetService:
    def __init__(self, repos: Repositories) -> None:
        self.repos = repos
        self.budgets = repos.budgets

    def _get(self, budget_id: str) -> BudgetOut:
        budget = unwrap(self.budgets.find_by_id(budget_id), "fetch budget")
        if budget is None:
            raise NotFoundError("Budget not found")
        return budget

    def _check_category(self, category_id: str, inactive_message: str) -> CategoryOut:
        category = unwrap(
            self.repos.categories.find_by_id(category_id), "validate category"
        )
        if category is None:
            raise NotFoundError("Category not found")
        if category.type != TransactionType.expense:
            raise BusinessRuleError("Budgets can only be created for expense categories")
        if not category.is_active:
            raise BusinessRuleError(inactive_message)
        return category

    def _overlapping(
        self,
        category_id: str,
        start: date,
        end: date,
        exclude_id: Optional[str] = None,
    ) -> list[BudgetOut]:
        filters: list[Filter] = [
            Eq("category_id", category_id),
            Eq("is_active", True),
            Lte("start_date", end),
            Gte("end_date", start),
        ]
        if exclude_id:
            filters.append(Ne("id", exclude_id))
        return unwrap(self.budgets.find_all(filters), "check for overlapping budgets")

    def _progress(
        self,
        budget: BudgetOut,
        category: Optional[CategoryRef] = None,
        now: Optional[datetime] = None,
    ) -> BudgetWithProgress:
        result = self.repos.transactions.find_all(
            [
                Eq("category_id", budget.category_id),
                Eq("type", TransactionType.expense),
                Gte("date", budget.start_date),
                Lte("date", budget.end_date),
            ]
        )
        if not result.ok:
            logger.warning(f"progress_failed: budget_id={budget.id} error={result.error}")
            return zero_progress(budget, category)
        return compute_progress(budget, result.data, category=category, now=now)

    @staticmethod
    def _check_dates(start: date, end: date) -> None:
        if end <= start:
            raise BusinessRuleError("End date must be after start date")

    @staticmethod
    def _check_amount(amount: Decimal) -> None:
        if amount <= 0:
            raise BusinessRuleError("Budget amount must be greater than 0")

    def create(self, data: BudgetIn) -> BudgetWithCategory:
        category = self._check_category(
            data.category_id, "Cannot create budget for inactive category"
        )
        end = data.end_date or end_date_for_period(data.start_date, data.period)
        self._check_dates(data.start_date, end)
        if data.is_active and self._overlapping(data.category_id, data.start_date, end):
            raise ConflictError(
                "A budget already exists for this category in the specified date range"
            )
        amount = money(data.budget_amount)
        self._check_amount(amount)
        values = data.model_dump()
        values.update(end_date=end, budget_amount=amount)
        budget = unwrap(self.budgets.create(values), "create budget")
        logger.info(
            f"budget_created: id={budget.id} category_id={budget.category_id} "
            f"start={budget.start_date} end={budget.end_date}"
        )
        return BudgetWithCategory(**budget.model_dump(), category=category_ref(category))

    def update(self, budget_id: str, data: BudgetUpdate) -> BudgetWithCategory:
        existing = self._get(budget_id)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        if "category_id" in changes and changes["category_id"] != existing.category_id:
            self._check_category(
                changes["category_id"], "Cannot assign budget to inactive category"
            )
        if "end_date" not in changes and ("period" in changes or "start_date" in changes):
            changes["end_date"] = end_date_for_period(
                changes.get("start_date", existing.start_date),
                changes.get("period", existing.period),
            )
        if "budget_amount" in changes:
            changes["budget_amount"] = money(changes["budget_amount"])
            self._check_amount(changes["budget_amount"])

        merged = existing.model_copy(update=changes)
        self._check_dates(merged.start_date, merged.end_date)
        if merged.is_active and self._overlapping(
            merged.category_id, merged.start_date, merged.end_date, exclude_id=budget_id
        ):
            raise ConflictError(
                "Update would create overlapping budget period for this category"
            )

        budget = unwrap(self.budgets.update(budget_id, changes), "update budget")
        if budget is None:
            raise NotFoundError("Budget not found")
        category = unwrap(
            self.repos.categories.find_by_id(budget.category_id), "fetch category"
        )
        return BudgetWithCategory(
            **budget.model_dump(), category=category_ref(category) if category else None
        )

    def delete(self, budget_id: str) -> None:
        deleted = unwrap(self.budgets.delete(budget_id), "delete budget")
        if not deleted:
            raise NotFoundError("Budget not found")

    def get_with_progress(
        self, budget_id: str, now: Optional[datetime] = None
    ) -> BudgetWithProgress:
        budget = self._get(budget_id)
        category = unwrap(
            self.repos.categories.find_by_id(budget.category_id), "fetch category"
        )
        return self._progress(budget, category_ref(category) if category else None, now)

    def list(
        self,
        *,
        category_id: Optional[str] = None,
        period: Optional[BudgetPeriod] = None,
        is_active: Optional[bool] = None,
        include_category: bool = True,
        include_progress: bool = False,
        overspent_only: bool = False,
        page: Optional[Page] = None,
        now: Optional[datetime] = None,
    ) -> tuple[list[BudgetOut], int]:
        filters: list[Filter] = []
        if category_id:
            filters.append(Eq("category_id", category_id))
        if period:
            filters.append(Eq("period", period))
        if is_active is not None:
            filters.append(Eq("is_active", is_active))
        sort = Sort("start_date", descending=True)

        if overspent_only:
            budgets = unwrap(self.budgets.find_all(filters, sort), "fetch budgets")
            total = None
        else:
            result = self.budgets.find_all(filters, sort, page)
            budgets = unwrap(result, "fetch budgets")
            total = result.count or 0

        refs = category_refs(self.repos) if include_category or include_progress else {}
        items: list[BudgetOut] = []
        for budget in budgets:
            ref = refs.get(budget.category_id) if include_category else None
            if include_progress or overspent_only:
                item = self._progress(budget, ref, now)
                if overspent_only and not item.is_overspent:
                    continue
                items.append(item)
            elif include_category:
                items.append(BudgetWithCategory(**budget.model_dump(), category=ref))
            else:
                items.append(budget)

        if total is None:
            total = len(items)
            if page:
                items = items[page.offset : page.offset + page.limit]
        return items, total

    def active_progress(self, now: Optional[datetime] = None) -> list[BudgetWithProgress]:
        budgets = unwrap(
            self.budgets.find_all([Eq("is_active", True)], Sort("start_date")),
            "fetch budgets",
        )
        refs = category_refs(self.repos)
        return [self._progress(b, refs.get(b.category_id), now) for b in budgets]

    def alerts(
        self,
        thresholds: AlertThresholds = AlertThresholds(),
        now: Optional[datetime] = None,
    ) -> list[BudgetAlert]:
        return budget_alerts(self.active_progress(now), thresholds)

    def summary(self, now: Optional[datetime] = None) -> dict[str, Any]:
        budgets = unwrap(self.budgets.find_all(), "get budget summary")
        refs = category_refs(self.repos)
        progress = [self._progress(b, refs.get(b.category_id), now) for b in budgets]
        active = [p for p in progress if p.is_active]
        total_amount = sum((p.budget_amount for p in active), ZERO)
        total_spent = sum((p.spent_amount for p in active), ZERO)
        average = (
            sum((p.progress_percentage for p in active), ZERO) / len(active)
            if active
            else ZERO
        )
        return {
            "total_budgets": len(progress),
            "active_budgets": len(active),
            "total_budget_amount": money(total_amount),
            "total_spent": money(total_spent),
            "total_remaining": money(total_amount - total_spent),
            "overspent_count": sum(1 for p in active if p.is_overspent),
            "average_progress": money(average),
        }

    def bulk_create(self, items: Sequence[BudgetIn]) -> list[BudgetOut]:
        """All-or-nothing: overlaps are checked against storage and the batch."""
        values: list[dict[str, Any]] = []
        planned: list[tuple[str, date, date]] = []
        for item in items:
            category = unwrap(
                self.repos.categories.find_by_id(item.category_id), "validate category"
            )
            if category is None:
                raise NotFoundError(f"Category not found for budget: {item.category_id}")
            if category.type != TransactionType.expense:
                raise BusinessRuleError(
                    f"Budget can only be created for expense category: {category.name}"
                )
            if not category.is_active:
                raise BusinessRuleError(
                    f"Cannot create budget for inactive category: {category.name}"
                )
            end = item.end_date or end_date_for_period(item.start_date, item.period)
            self._check_dates(item.start_date, end)
            amount = money(item.budget_amount)
            self._check_amount(amount)
            if item.is_active:
                clash = self._overlapping(item.category_id, item.start_date, end) or any(
                    cat == item.category_id and ranges_overlap(item.start_date, end, s, e)
                    for cat, s, e in planned
                )
                if clash:
                    raise ConflictError(
                        f"Overlapping budget exists for category: {category.name}"
                    )
                planned.append((item.category_id, item.start_date, end))
            row = item.model_dump()
            row.update(end_date=end, budget_amount=amount)
            values.append(row)
        created = unwrap(self.budgets.bulk_create(values), "bulk create budgets")
        logger.info(f"budgets_bulk_created: count={len(created)}")
        return created


class AnalyticsService:
    def __init__(self, repos: Repositories) -> None:
        self.repos = repos

    def category_breakdown(self, period: Period) -> list[dict[str, Any]]:
        expenses = unwrap(
            self.repos.transactions.find_all(
                TransactionFilters(
                    type=TransactionType.expense,
                    start_date=period.start,
                    end_date=period.end,
                ).to_filters()
            ),
            "fetch transactions",
        )
        totals: dict[str, Decimal] = {}
        for txn in expenses:
            totals[txn.category_id] = totals.get(txn.category_id, ZERO) + txn.amount
        grand_total = sum(totals.values(), ZERO)
        refs = category_refs(self.repos)
        rows = []
        for category_id, total in totals.items():
            ref = refs.get(category_id)
            rows.append(
                {
                    "category_id": category_id,
                    "category_name": ref.name if ref else None,
                    "color": ref.color if ref else None,
                    "total": money(total),
                    "percentage": money(total / grand_total * 100) if grand_total else money(ZERO),
                }
            )
        rows.sort(key=lambda row: row["total"], reverse=True)
        return rows

    def overview(self, period: Period, now: Optional[datetime] = None) -> dict[str, Any]:
        return {
            "period": {"slug": period.slug, "start": period.start, "end": period.end},
            "transactions": TransactionService(self.repos).summary(period.start, period.end),
            "budgets": BudgetService(self.repos).summary(now),
            "categories": self.category_breakdown(period),
        }

    def budget_performance(self, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        rows = []
        for progress in BudgetService(self.repos).active_progress(now):
            if progress.is_overspent:
                status = "overspent"
            elif progress.progress_percentage > PERFORMANCE_APPROACHING:
                status = "approaching_limit"
            else:
                status = "on_track"
            rows.append(
                {
                    "budget_id": progress.id,
                    "category_name": progress.category.name if progress.category else None,
                    "budget_amount": progress.budget_amount,
                    "spent_amount": progress.spent_amount,
                    "progress_percentage": progress.progress_percentage,
                    "status": status,
                }
            )
        return rows
