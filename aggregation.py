"""Monthly aggregates computed from already-grouped, owner-scoped rows.

Nothing here touches the database. The services feed in the output of their
group-by queries and get plain dataclasses back, so the same functions work
for any storage that can produce the grouped rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional, Sequence

from models import TransactionType
from months import resolve_month_range

logger = logging.getLogger(__name__)


class AggregationError(ValueError):
    pass


@dataclass(frozen=True)
class MonthlySummary:
    month: str
    income: int
    expense: int
    net: int


@dataclass(frozen=True)
class TypeTotal:
    type: TransactionType
    total: Optional[int]


@dataclass(frozen=True)
class CategoryTotal:
    category_id: int
    total: Optional[int]
    count: int


@dataclass(frozen=True)
class CategoryInfo:
    id: int
    name: str
    color: str
    icon: str = "tag"


@dataclass(frozen=True)
class CategoryBreakdownEntry:
    category_id: int
    name: str
    color: str
    total: int
    count: int
    percentage: int


@dataclass(frozen=True)
class CategoryBreakdown:
    month: str
    type: TransactionType
    total: int
    breakdown: list[CategoryBreakdownEntry]
    dropped_rows: int = 0


@dataclass(frozen=True)
class DailyTotal:
    date: date
    type: TransactionType
    total: Optional[int]


@dataclass
class DailyPoint:
    day: int
    date: str
    income: int = 0
    expense: int = 0


@dataclass(frozen=True)
class BudgetLine:
    id: int
    month: str
    category_id: int
    limit_cents: int
    category: Optional[CategoryInfo] = None


@dataclass(frozen=True)
class BudgetStatus:
    budget: BudgetLine
    spent: int
    remaining: int
    percentage: int
    exceeded: bool


def percent_of(part: int, whole: int) -> int:
    """``round(part / whole * 100)`` rounding halves up; 0 when ``whole`` is 0."""
    if whole == 0:
        return 0
    ratio = Decimal(part) * 100 / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _amount(value: Optional[int], what: str) -> int:
    if value is None:
        raise AggregationError(f"Missing amount in {what}")
    return int(value)


def _coerce_type(value: object) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as exc:
        raise AggregationError(f"Unknown transaction type: {value!r}") from exc


def summarize_by_type(month: str, totals: Iterable[TypeTotal]) -> MonthlySummary:
    sums = {TransactionType.income: 0, TransactionType.expense: 0}
    for row in totals:
        sums[_coerce_type(row.type)] += _amount(row.total, "type summary")
    income = sums[TransactionType.income]
    expense = sums[TransactionType.expense]
    return MonthlySummary(
        month=month, income=income, expense=expense, net=income - expense
    )


def build_category_breakdown(
    month: str,
    transaction_type: TransactionType,
    totals: Iterable[CategoryTotal],
    categories: Mapping[int, CategoryInfo],
) -> CategoryBreakdown:
    """Join per-category totals with their categories and attach shares.

    Rows whose category is not in ``categories`` are dropped and do not count
    towards the grand total, so the type summary for the same month can be
    larger than the breakdown total.
    """
    rows: list[tuple[CategoryInfo, int, int]] = []
    dropped = 0
    for row in totals:
        amount = _amount(row.total, "category breakdown")
        info = categories.get(row.category_id)
        if info is None:
            dropped += 1
            logger.warning(
                "breakdown_orphan_dropped: month=%s category_id=%s total=%s",
                month,
                row.category_id,
                amount,
            )
            continue
        rows.append((info, amount, int(row.count)))

    rows.sort(key=lambda item: (-item[1], item[0].name))
    grand_total = sum(amount for _, amount, _ in rows)
    entries = [
        CategoryBreakdownEntry(
            category_id=info.id,
            name=info.name,
            color=info.color,
            total=amount,
            count=count,
            percentage=percent_of(amount, grand_total),
        )
        for info, amount, count in rows
    ]
    return CategoryBreakdown(
        month=month,
        type=transaction_type,
        total=grand_total,
        breakdown=entries,
        dropped_rows=dropped,
    )


def build_daily_series(month: str, totals: Iterable[DailyTotal]) -> list[DailyPoint]:
    month_range = resolve_month_range(month)
    series = [
        DailyPoint(day=day, date=f"{month}-{day:02d}")
        for day in range(1, month_range.days + 1)
    ]
    for row in totals:
        if not month_range.contains(row.date):
            raise AggregationError(f"{row.date.isoformat()} is outside {month}")
        point = series[row.date.day - 1]
        amount = _amount(row.total, "daily series")
        if _coerce_type(row.type) == TransactionType.income:
            point.income += amount
        else:
            point.expense += amount
    return series


def merge_budget_status(
    budgets: Sequence[BudgetLine], breakdown: CategoryBreakdown
) -> list[BudgetStatus]:
    if breakdown.type != TransactionType.expense:
        raise AggregationError("Budgets are compared against expense totals only")
    spent_by_category = {row.category_id: row.total for row in breakdown.breakdown}

    statuses: list[BudgetStatus] = []
    for budget in budgets:
        if budget.limit_cents <= 0:
            raise ValueError(f"Budget {budget.id} has a non-positive limit")
        spent = spent_by_category.get(budget.category_id, 0)
        statuses.append(
            BudgetStatus(
                budget=budget,
                spent=spent,
                remaining=budget.limit_cents - spent,
                percentage=min(100, percent_of(spent, budget.limit_cents)),
                exceeded=spent > budget.limit_cents,
            )
        )
    return statuses
