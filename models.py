from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from money import from_cents
from periods import utc_now


class TransactionType(str, Enum):
    credit = "credit"
    debit = "debit"


TRANSACTION_TYPE_ENUM = SAEnum(
    TransactionType,
    name="transactiontype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )


class Category(Base, TimestampMixin):
    """A bucket transactions are booked against.

    Categories created through the accounts endpoints carry a short ``code``;
    those created through the categories endpoints usually carry a ``type``.
    """

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[Optional[TransactionType]] = mapped_column(TRANSACTION_TYPE_ENUM)
    code: Mapped[Optional[str]] = mapped_column(String(32))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "code", name="uq_category_user_code"),
        Index("ix_categories_user", "user_id"),
        CheckConstraint("length(name) > 0", name="ck_categories_name_not_empty"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    serial: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(TRANSACTION_TYPE_ENUM, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    less_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL")
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "date", "serial", name="uq_txn_user_date_serial"),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category_date", "user_id", "category_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
        CheckConstraint("less_cents >= 0", name="ck_transactions_less_positive"),
    )

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @property
    def less(self) -> Decimal:
        return from_cents(self.less_cents or 0)


class DailyReport(Base, TimestampMixin):
    __tablename__ = "daily_reports"
    __table_args__ = (
        UniqueConstraint("user_id", "report_date", name="uq_daily_report_user_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_credit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_debit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_change_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    @property
    def total_credit(self) -> Decimal:
        return from_cents(self.total_credit_cents)

    @property
    def total_debit(self) -> Decimal:
        return from_cents(self.total_debit_cents)

    @property
    def net_change(self) -> Decimal:
        return from_cents(self.net_change_cents)
