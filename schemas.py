import datetime as dt
from decimal import Decimal
from typing import Annotated, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

from models import TransactionType
from money import ZERO, format_amount, parse_amount

Money = Annotated[Decimal, PlainSerializer(format_amount, return_type=str)]


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


def _parse_effective_date(value):
    if isinstance(value, str):
        raw = value.strip()
        if "T" in raw or " " in raw:
            return dt.datetime.fromisoformat(raw.replace("Z", "+00:00"))
        return dt.date.fromisoformat(raw)
    return value


class CategoryIn(WireModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    code: Optional[str] = Field(default=None, min_length=1, max_length=32)

    @field_validator("name", "code", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class AccountIn(WireModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=32)

    @field_validator("name", "code", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class TransactionIn(WireModel):
    amount: Decimal
    type: TransactionType
    category_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("categoryId", "accountId", "category_id"),
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=500,
        validation_alias=AliasChoices("notes", "detail"),
    )
    less: Decimal = ZERO
    date: Optional[Union[dt.datetime, dt.date]] = None

    @field_validator("amount", "less", mode="before")
    @classmethod
    def _parse_money(cls, value):
        return parse_amount(value)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value):
        return _parse_effective_date(value)


class TransactionUpdate(WireModel):
    """Partial update; only keys present in the request body are applied."""

    amount: Optional[Decimal] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("categoryId", "accountId", "category_id"),
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=500,
        validation_alias=AliasChoices("notes", "detail"),
    )
    less: Optional[Decimal] = None
    date: Optional[Union[dt.datetime, dt.date]] = None

    @field_validator("amount", "less", mode="before")
    @classmethod
    def _parse_money(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"{info.field_name.capitalize()} is required")
        return parse_amount(value)

    @field_validator("type", mode="before")
    @classmethod
    def _type_not_null(cls, value):
        if value is None:
            raise ValueError("Type is required")
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value):
        if value is None:
            raise ValueError("Date is required")
        return _parse_effective_date(value)


class ReportGenerateIn(WireModel):
    date: dt.date


class CategoryOut(WireModel):
    id: int
    user_id: str
    name: str
    type: Optional[TransactionType]
    code: Optional[str]
    created_at: dt.datetime


class TransactionOut(WireModel):
    id: int
    user_id: str
    serial: int
    date: dt.date
    occurred_at: dt.datetime
    type: TransactionType
    amount: Money
    less: Money
    notes: Optional[str]
    category_id: Optional[int]
    category: Optional[CategoryOut]
    created_at: dt.datetime
    updated_at: dt.datetime


class TodaySummaryOut(WireModel):
    credit: Money
    debit: Money


class DashboardOut(WireModel):
    total_credit: Money
    total_debit: Money
    outstanding_balance: Money
    today_summary: TodaySummaryOut


class DailyReportOut(WireModel):
    id: int
    user_id: str
    report_date: dt.date
    total_credit: Money
    total_debit: Money
    net_change: Money
    created_at: dt.datetime
    updated_at: dt.datetime


class DayTotalsOut(WireModel):
    date: dt.date
    total_credit: Money
    total_debit: Money
    net_change: Money


class OwnerOut(WireModel):
    id: str


class SeedOut(WireModel):
    created: int
