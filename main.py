import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from aggregation import AggregationError, BudgetStatus
from auth import AuthError, user_id_from_header
from config import get_settings
from database import get_db
from models import Budget, Category, Transaction, TransactionType
from months import InvalidMonthFormat, resolve_month_range
from schemas import BudgetIn, BudgetUpdate, CategoryIn, CategoryUpdate, TransactionIn
from services import (
    BudgetService,
    CategoryInUse,
    CategoryService,
    CategoryTypeMismatch,
    DataUnavailable,
    DuplicateBudget,
    DuplicateCategory,
    NotFound,
    ReportService,
    TransactionFilters,
    TransactionService,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


@app.exception_handler(InvalidMonthFormat)
def invalid_month_handler(request: Request, exc: InvalidMonthFormat) -> JSONResponse:
    return JSONResponse(
        status_code=400, content={"success": False, "message": str(exc)}
    )


@app.exception_handler(DataUnavailable)
def data_unavailable_handler(request: Request, exc: DataUnavailable) -> JSONResponse:
    return JSONResponse(
        status_code=503, content={"success": False, "message": str(exc)}
    )


@app.exception_handler(AggregationError)
def aggregation_error_handler(request: Request, exc: AggregationError) -> JSONResponse:
    logger.error("aggregation_failed: path=%s error=%s", request.url.path, exc)
    return JSONResponse(
        status_code=500, content={"success": False, "message": str(exc)}
    )


def current_user_id(authorization: Optional[str] = Header(default=None)) -> int:
    try:
        return user_id_from_header(authorization)
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def ok(data: object, status_code: int = 200, **extra: object) -> JSONResponse:
    payload = {"success": True, **extra, "data": data}
    return JSONResponse(status_code=status_code, content=payload)


def required_month(month: Optional[str]) -> str:
    # Validate up front so a missing or malformed month never reaches a query.
    resolve_month_range(month)
    return month


def parse_type(value: Optional[str]) -> Optional[TransactionType]:
    if not value:
        return None
    try:
        return TransactionType(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail="type must be 'income' or 'expense'"
        ) from exc


def category_out(category: Optional[Category]) -> Optional[dict[str, object]]:
    if category is None:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
        "icon": category.icon,
        "is_default": category.is_default,
    }


def transaction_out(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "category_id": txn.category_id,
        "category": category_out(txn.category),
        "date": txn.date.isoformat(),
        "note": txn.note,
        "payment_method": txn.payment_method.value,
    }


def budget_out(budget: Budget) -> dict[str, object]:
    category = category_out(budget.category)
    return {
        "id": budget.id,
        "month": budget.month,
        "category_id": budget.category_id,
        "category": category,
        "limit_cents": budget.limit_cents,
    }


def budget_status_out(status: BudgetStatus) -> dict[str, object]:
    budget = status.budget
    return {
        "id": budget.id,
        "month": budget.month,
        "category_id": budget.category_id,
        "category": asdict(budget.category) if budget.category else None,
        "limit_cents": budget.limit_cents,
        "spent": status.spent,
        "remaining": status.remaining,
        "percentage": status.percentage,
        "exceeded": status.exceeded,
    }


# Reports


@app.get("/api/reports/summary")
def monthly_summary(
    month: Optional[str] = None,
    type: Optional[str] = None,
    category_id: Optional[int] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    month = required_month(month)
    filters = TransactionFilters(type=parse_type(type), category_id=category_id)
    summary = ReportService(db, user_id).monthly_summary(month, filters)
    return ok(asdict(summary))


@app.get("/api/reports/category-breakdown")
def category_breakdown(
    month: Optional[str] = None,
    type: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    month = required_month(month)
    transaction_type = parse_type(type) or TransactionType.expense
    result = ReportService(db, user_id).category_breakdown(month, transaction_type)
    return ok(
        {
            "breakdown": [asdict(entry) for entry in result.breakdown],
            "total": result.total,
            "month": result.month,
            "type": result.type.value,
        }
    )


@app.get("/api/reports/daily-spending")
def daily_spending(
    month: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    month = required_month(month)
    series = ReportService(db, user_id).daily_spending(month)
    return ok([asdict(point) for point in series])


# Budgets


@app.get("/api/budgets")
def list_budgets(
    month: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = BudgetService(db, user_id)
    if month is None:
        budgets = [budget_out(b) for b in service.list_all()]
        return ok(budgets, count=len(budgets))
    statuses = [budget_status_out(s) for s in service.budgets_with_status(month)]
    return ok(statuses, count=len(statuses))


@app.post("/api/budgets")
def create_budget(
    data: BudgetIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user_id).create(data)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (DuplicateBudget, CategoryTypeMismatch) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ok(budget_out(budget), status_code=201)


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    data: BudgetUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user_id).update_limit(budget_id, data)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ok(budget_out(budget))


@app.delete("/api/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ok({})


# Categories


@app.get("/api/categories")
def list_categories(
    type: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    categories = CategoryService(db, user_id).list_all(parse_type(type))
    return ok([category_out(c) for c in categories], count=len(categories))


@app.post("/api/categories/defaults")
def seed_default_categories(
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    created = CategoryService(db, user_id).seed_defaults()
    return ok({"created": created}, status_code=201 if created else 200)


@app.get("/api/categories/{category_id}")
def get_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).get(category_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ok(category_out(category))


@app.post("/api/categories")
def create_category(
    data: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).create(data)
    except DuplicateCategory as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ok(category_out(category), status_code=201)


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).update(category_id, data)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ok(category_out(category))


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CategoryInUse as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ok({})


# Transactions


@app.get("/api/transactions")
def list_transactions(
    month: Optional[str] = None,
    type: Optional[str] = None,
    category_id: Optional[int] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    month_range = resolve_month_range(month) if month is not None else None
    filters = TransactionFilters(type=parse_type(type), category_id=category_id)
    items = TransactionService(db, user_id).find(month_range, filters)
    return ok([transaction_out(t) for t in items], count=len(items))


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ok(transaction_out(txn))


@app.post("/api/transactions")
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).create(data)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CategoryTypeMismatch as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ok(transaction_out(txn), status_code=201)


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CategoryTypeMismatch as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ok(transaction_out(txn))


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ok({})
