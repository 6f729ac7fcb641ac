from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import PaymentMethod, TransactionType
from months import resolve_month_range
from schemas import CategoryIn, TransactionIn
from services import (
    CategoryService,
    CategoryTypeMismatch,
    NotFound,
    TransactionFilters,
    TransactionService,
)


def test_transaction_must_match_category_type_and_owner() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        salary = CategoryService(session, 1).create(
            CategoryIn(name="Salary", type=TransactionType.income)
        )
        txns = TransactionService(session, 1)
        with pytest.raises(CategoryTypeMismatch):
            txns.create(
                TransactionIn(
                    type=TransactionType.expense,
                    amount_cents=100,
                    category_id=salary.id,
                )
            )
        with pytest.raises(NotFound):
            TransactionService(session, 2).create(
                TransactionIn(
                    type=TransactionType.income,
                    amount_cents=100,
                    category_id=salary.id,
                )
            )


def test_amount_must_be_positive() -> None:
    for amount in (0, -100):
        with pytest.raises(ValidationError):
            TransactionIn(
                type=TransactionType.expense, amount_cents=amount, category_id=1
            )


def test_defaults_for_date_and_payment_method() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session, 1).create(
            CategoryIn(name="Food", type=TransactionType.expense)
        )
        txn = TransactionService(session, 1).create(
            TransactionIn(
                type=TransactionType.expense,
                amount_cents=450,
                category_id=food.id,
                note="  Lunch ",
            )
        )
        assert txn.date is not None
        assert txn.payment_method == PaymentMethod.cash
        assert txn.note == "Lunch"


def test_find_filters_by_month_type_and_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, 1)
        food = categories.create(CategoryIn(name="Food", type=TransactionType.expense))
        rent = categories.create(CategoryIn(name="Rent", type=TransactionType.expense))
        salary = categories.create(
            CategoryIn(name="Salary", type=TransactionType.income)
        )

        txns = TransactionService(session, 1)
        for txn_type, category, day in [
            (TransactionType.expense, food, date(2024, 3, 2)),
            (TransactionType.expense, rent, date(2024, 3, 10)),
            (TransactionType.income, salary, date(2024, 3, 1)),
            (TransactionType.expense, food, date(2024, 4, 1)),
        ]:
            txns.create(
                TransactionIn(
                    type=txn_type, amount_cents=100, category_id=category.id, date=day
                )
            )

        march = resolve_month_range("2024-03")
        assert [t.date.day for t in txns.find(march)] == [10, 2, 1]
        expenses = txns.find(march, TransactionFilters(type=TransactionType.expense))
        assert len(expenses) == 2
        food_only = txns.find(None, TransactionFilters(category_id=food.id))
        assert [t.date for t in food_only] == [date(2024, 4, 1), date(2024, 3, 2)]
        assert TransactionService(session, 2).find(march) == []


def test_update_and_delete_are_owner_scoped() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session, 1).create(
            CategoryIn(name="Food", type=TransactionType.expense)
        )
        txns = TransactionService(session, 1)
        txn = txns.create(
            TransactionIn(
                type=TransactionType.expense,
                amount_cents=100,
                category_id=food.id,
                date=date(2024, 3, 2),
            )
        )

        updated = txns.update(
            txn.id,
            TransactionIn(
                type=TransactionType.expense,
                amount_cents=250,
                category_id=food.id,
                payment_method=PaymentMethod.card,
            ),
        )
        assert updated.amount_cents == 250
        assert updated.date == date(2024, 3, 2)
        assert updated.payment_method == PaymentMethod.card

        with pytest.raises(NotFound):
            TransactionService(session, 2).get(txn.id)
        with pytest.raises(NotFound):
            TransactionService(session, 2).delete(txn.id)

        txns.delete(txn.id)
        with pytest.raises(NotFound):
            txns.get(txn.id)
