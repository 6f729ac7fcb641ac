import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    PaymentMethod,
    TransactionType,
)
from months import MONTH_PATTERN, parse_month

HEX_COLOR = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=30)
    type: TransactionType
    color: str = Field(default=DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR)
    icon: str = Field(default=DEFAULT_CATEGORY_ICON, min_length=1, max_length=40)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required")
        return value


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=30)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=40)


class TransactionIn(BaseModel):
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    category_id: int
    date: Optional[dt.date] = None
    note: Optional[str] = Field(default=None, max_length=200)
    payment_method: PaymentMethod = PaymentMethod.cash


class BudgetIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    month: str = Field(..., pattern=MONTH_PATTERN.pattern)
    category_id: int
    limit_cents: int = Field(..., gt=0)

    @field_validator("month")
    @classmethod
    def _real_month(cls, value: str) -> str:
        parse_month(value)
        return value


class BudgetUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit_cents: int = Field(..., gt=0)
