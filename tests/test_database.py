from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from database import Base, build_engine, make_sessionmaker
from models import Category, Transaction, TransactionType


def test_in_memory_engine_is_shared_between_sessions() -> None:
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    SessionLocal = make_sessionmaker(engine)

    with SessionLocal() as session:
        session.add(Category(user_id=1, name="Food", type=TransactionType.expense))
        session.commit()

    with SessionLocal() as session:
        assert session.query(Category).count() == 1


def test_sqlite_foreign_keys_are_enforced() -> None:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with make_sessionmaker(engine)() as session:
        session.add(
            Transaction(
                user_id=1,
                type=TransactionType.expense,
                amount_cents=100,
                category_id=999,
                date=date(2024, 3, 1),
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()
