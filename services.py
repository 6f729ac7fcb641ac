from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from aggregation import (
    BudgetLine,
    BudgetStatus,
    CategoryBreakdown,
    CategoryInfo,
    CategoryTotal,
    DailyPoint,
    DailyTotal,
    MonthlySummary,
    TypeTotal,
    build_category_breakdown,
    build_daily_series,
    merge_budget_status,
    summarize_by_type,
)
from config import get_settings
from models import Budget, Category, Transaction, TransactionType
from months import MonthRange, month_of, parse_month, resolve_month_range, today_in
from schemas import BudgetIn, BudgetUpdate, CategoryIn, CategoryUpdate, TransactionIn

logger = logging.getLogger(__name__)


class NotFound(ValueError):
    pass


class DuplicateCategory(ValueError):
    pass


class CategoryInUse(ValueError):
    pass


class CategoryTypeMismatch(ValueError):
    pass


class DuplicateBudget(ValueError):
    pass


class DataUnavailable(RuntimeError):
    pass


DEFAULT_CATEGORIES: dict[TransactionType, list[tuple[str, str, str]]] = {
    TransactionType.expense: [
        ("Food & Dining", "#ef4444", "utensils"),
        ("Rent & Housing", "#f97316", "home"),
        ("Transport", "#eab308", "car"),
        ("Shopping", "#22c55e", "shopping-bag"),
        ("Bills & Utilities", "#14b8a6", "file-text"),
        ("Health & Medical", "#06b6d4", "heart"),
        ("Entertainment", "#8b5cf6", "film"),
        ("Education", "#ec4899", "book"),
        ("Personal Care", "#f43f5e", "user"),
        ("Other Expense", "#6b7280", "more-horizontal"),
    ],
    TransactionType.income: [
        ("Salary", "#10b981", "briefcase"),
        ("Freelance", "#3b82f6", "laptop"),
        ("Business", "#6366f1", "trending-up"),
        ("Investments", "#8b5cf6", "bar-chart"),
        ("Gifts", "#ec4899", "gift"),
        ("Other Income", "#6b7280", "plus-circle"),
    ],
}


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None


def _category_info(category: Category) -> CategoryInfo:
    return CategoryInfo(
        id=category.id, name=category.name, color=category.color, icon=category.icon
    )


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        return self.session.scalars(stmt).all()

    def find(self, category_id: int) -> Optional[Category]:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            return None
        return category

    def get(self, category_id: int) -> Category:
        category = self.find(category_id)
        if category is None:
            raise NotFound("Category not found")
        return category

    def info_by_id(self, category_ids: list[int]) -> dict[int, CategoryInfo]:
        if not category_ids:
            return {}
        categories = self.session.scalars(
            select(Category).where(
                Category.user_id == self.user_id, Category.id.in_(category_ids)
            )
        ).all()
        return {c.id: _category_info(c) for c in categories}

    def _name_taken(
        self, name: str, type: TransactionType, *, exclude_id: Optional[int] = None
    ) -> bool:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == type,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt) is not None

    def create(self, data: CategoryIn, *, is_default: bool = False) -> Category:
        if self._name_taken(data.name, data.type):
            raise DuplicateCategory(
                "Category with this name already exists for this type"
            )
        category = Category(
            user_id=self.user_id,
            name=data.name,
            type=data.type,
            color=data.color,
            icon=data.icon,
            is_default=is_default,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(
            "category_created: user_id=%s category_id=%s", self.user_id, category.id
        )
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        if data.name is not None:
            name = data.name.strip()
            if not name:
                raise ValueError("Category name is required")
            if self._name_taken(name, category.type, exclude_id=category.id):
                raise DuplicateCategory(
                    "Category with this name already exists for this type"
                )
            category.name = name
        if data.color is not None:
            category.color = data.color
        if data.icon is not None:
            category.icon = data.icon
        self.session.commit()
        self.session.refresh(category)
        return category

    def _references(self, model, category_id: int) -> int:
        return int(
            self.session.execute(
                select(func.count(model.id)).where(model.category_id == category_id)
            ).scalar_one()
        )

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = self._references(Transaction, category.id)
        if in_use > 0:
            raise CategoryInUse(
                f"Cannot delete category. It is used in {in_use} transaction(s)."
            )
        budgeted = self._references(Budget, category.id)
        if budgeted > 0:
            raise CategoryInUse(
                f"Cannot delete category. It is used in {budgeted} budget(s)."
            )
        self.session.delete(category)
        self.session.commit()
        logger.info(
            "category_deleted: user_id=%s category_id=%s", self.user_id, category_id
        )

    def seed_defaults(self) -> int:
        """Create the default categories once per user; returns how many were added."""
        has_defaults = self.session.scalar(
            select(func.count(Category.id)).where(
                Category.user_id == self.user_id, Category.is_default.is_(True)
            )
        )
        if has_defaults:
            return 0

        created = 0
        for type, entries in DEFAULT_CATEGORIES.items():
            for name, color, icon in entries:
                if self._name_taken(name, type):
                    continue
                self.session.add(
                    Category(
                        user_id=self.user_id,
                        name=name,
                        type=type,
                        color=color,
                        icon=icon,
                        is_default=True,
                    )
                )
                created += 1
        self.session.commit()
        logger.info(
            "default_categories_seeded: user_id=%s created=%s", self.user_id, created
        )
        return created


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _checked_category(self, data: TransactionIn) -> Category:
        category = CategoryService(self.session, self.user_id).find(data.category_id)
        if category is None:
            raise NotFound("Category not found")
        if category.type != data.type:
            raise CategoryTypeMismatch("Category type mismatch")
        return category

    def find(
        self,
        month_range: Optional[MonthRange] = None,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
        )
        if month_range is not None:
            stmt = stmt.where(
                Transaction.date.between(month_range.first_day, month_range.last_day)
            )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        self._checked_category(data)
        txn_date = data.date or today_in(get_settings().timezone)
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            date=txn_date,
            note=data.note.strip() if data.note else None,
            payment_method=data.payment_method,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            "transaction_created: user_id=%s transaction_id=%s month=%s",
            self.user_id,
            txn.id,
            month_of(txn.date),
        )
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._checked_category(data)
        txn.type = data.type
        txn.amount_cents = data.amount_cents
        txn.category_id = data.category_id
        if data.date is not None:
            txn.date = data.date
        txn.note = data.note.strip() if data.note else None
        txn.payment_method = data.payment_method
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(
            "transaction_deleted: user_id=%s transaction_id=%s",
            self.user_id,
            transaction_id,
        )


class ReportService:
    """Owner-scoped monthly reports.

    Every entry point validates ``month`` before issuing a query. Storage
    errors surface as :class:`DataUnavailable`; an empty month yields zeros.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _rows(self, stmt) -> list:
        try:
            return self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            logger.exception("report_query_failed: user_id=%s", self.user_id)
            raise DataUnavailable("Failed to load transactions") from exc

    def _scoped(self, stmt, month_range: MonthRange, filters: TransactionFilters):
        stmt = stmt.where(
            Transaction.user_id == self.user_id,
            Transaction.date.between(month_range.first_day, month_range.last_day),
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return stmt

    def monthly_summary(
        self, month: str, filters: Optional[TransactionFilters] = None
    ) -> MonthlySummary:
        month_range = resolve_month_range(month)
        stmt = self._scoped(
            select(
                Transaction.type,
                func.sum(Transaction.amount_cents).label("total"),
            ),
            month_range,
            filters or TransactionFilters(),
        ).group_by(Transaction.type)
        rows = self._rows(stmt)
        return summarize_by_type(
            month, [TypeTotal(type=row.type, total=row.total) for row in rows]
        )

    def category_breakdown(
        self,
        month: str,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> CategoryBreakdown:
        month_range = resolve_month_range(month)
        transaction_type = TransactionType(transaction_type)
        stmt = self._scoped(
            select(
                Transaction.category_id,
                func.sum(Transaction.amount_cents).label("total"),
                func.count(Transaction.id).label("count"),
            ),
            month_range,
            TransactionFilters(type=transaction_type),
        ).group_by(Transaction.category_id)
        rows = self._rows(stmt)
        totals = [
            CategoryTotal(category_id=row.category_id, total=row.total, count=row.count)
            for row in rows
        ]
        try:
            categories = CategoryService(self.session, self.user_id).info_by_id(
                [t.category_id for t in totals]
            )
        except SQLAlchemyError as exc:
            logger.exception("category_lookup_failed: user_id=%s", self.user_id)
            raise DataUnavailable("Failed to load categories") from exc
        return build_category_breakdown(month, transaction_type, totals, categories)

    def daily_spending(
        self, month: str, filters: Optional[TransactionFilters] = None
    ) -> list[DailyPoint]:
        month_range = resolve_month_range(month)
        stmt = self._scoped(
            select(
                Transaction.date,
                Transaction.type,
                func.sum(Transaction.amount_cents).label("total"),
            ),
            month_range,
            filters or TransactionFilters(),
        ).group_by(Transaction.date, Transaction.type)
        rows = self._rows(stmt)
        return build_daily_series(
            month,
            [
                DailyTotal(date=row.date, type=row.type, total=row.total)
                for row in rows
            ],
        )


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.month.desc(), Budget.id)
        )
        return self.session.scalars(stmt).all()

    def find(self, month: str) -> list[Budget]:
        parse_month(month)
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id, Budget.month == month)
            .order_by(Budget.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFound("Budget not found")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        category = CategoryService(self.session, self.user_id).find(data.category_id)
        if category is None:
            raise NotFound("Category not found")
        if category.type != TransactionType.expense:
            raise CategoryTypeMismatch("Budgets can only be set for expense categories")

        existing = self.session.scalar(
            select(Budget.id).where(
                Budget.user_id == self.user_id,
                Budget.month == data.month,
                Budget.category_id == data.category_id,
            )
        )
        if existing is not None:
            raise DuplicateBudget("Budget for this category and month already exists")

        budget = Budget(
            user_id=self.user_id,
            month=data.month,
            category_id=data.category_id,
            limit_cents=data.limit_cents,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            "budget_created: user_id=%s budget_id=%s month=%s",
            self.user_id,
            budget.id,
            budget.month,
        )
        return budget

    def update_limit(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        budget.limit_cents = data.limit_cents
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def budgets_with_status(self, month: str) -> list[BudgetStatus]:
        parse_month(month)
        try:
            budgets = self.find(month)
        except SQLAlchemyError as exc:
            logger.exception("budget_query_failed: user_id=%s", self.user_id)
            raise DataUnavailable("Failed to load budgets") from exc

        lines: list[BudgetLine] = []
        for budget in budgets:
            if budget.category is None or budget.category.user_id != self.user_id:
                logger.warning(
                    "budget_orphan_dropped: budget_id=%s category_id=%s",
                    budget.id,
                    budget.category_id,
                )
                continue
            lines.append(
                BudgetLine(
                    id=budget.id,
                    month=budget.month,
                    category_id=budget.category_id,
                    limit_cents=budget.limit_cents,
                    category=_category_info(budget.category),
                )
            )

        breakdown = ReportService(self.session, self.user_id).category_breakdown(
            month, TransactionType.expense
        )
        return merge_budget_status(lines, breakdown)
