"""Pure aggregation over already-fetched transactions.

Nothing in this module touches the database. Every function accepts any
iterable of objects exposing ``type``, ``amount`` (a two-place ``Decimal``) and
``date``; ORM ``Transaction`` rows qualify, as do simple test doubles.

Balances follow the credit-minus-debit convention: credits raise the balance,
debits lower it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Protocol

from models import TransactionType
from money import CENT, ZERO


class Booking(Protocol):
    type: TransactionType
    amount: Decimal
    date: date


@dataclass(frozen=True)
class Summary:
    total_credit: Decimal
    total_debit: Decimal
    outstanding_balance: Decimal


@dataclass(frozen=True)
class DaySummary:
    credit: Decimal
    debit: Decimal


@dataclass(frozen=True)
class DayTotals:
    date: date
    total_credit: Decimal
    total_debit: Decimal
    net_change: Decimal


def _checked(txn: Booking) -> tuple[TransactionType, Decimal]:
    amount = txn.amount
    assert isinstance(amount, Decimal), f"amount must be Decimal, got {amount!r}"
    assert amount.is_finite() and amount >= 0, f"amount out of range: {amount}"
    assert amount == amount.quantize(CENT), f"amount has sub-cent digits: {amount}"
    assert txn.type in (TransactionType.credit, TransactionType.debit), (
        f"unknown transaction type: {txn.type!r}"
    )
    return TransactionType(txn.type), amount


def _totals(transactions: Iterable[Booking]) -> tuple[Decimal, Decimal]:
    credit = ZERO
    debit = ZERO
    for txn in transactions:
        txn_type, amount = _checked(txn)
        if txn_type == TransactionType.credit:
            credit += amount
        else:
            debit += amount
    return credit.quantize(CENT), debit.quantize(CENT)


def summarize(transactions: Iterable[Booking]) -> Summary:
    credit, debit = _totals(transactions)
    return Summary(
        total_credit=credit,
        total_debit=debit,
        outstanding_balance=(credit - debit).quantize(CENT),
    )


def summarize_today(
    transactions: Iterable[Booking], reference_date: date
) -> DaySummary:
    credit, debit = _totals(t for t in transactions if t.date == reference_date)
    return DaySummary(credit=credit, debit=debit)


def group_by_day(transactions: Iterable[Booking]) -> list[DayTotals]:
    by_day: dict[date, list[Booking]] = {}
    for txn in transactions:
        by_day.setdefault(txn.date, []).append(txn)

    rows: list[DayTotals] = []
    for day in sorted(by_day, reverse=True):
        credit, debit = _totals(by_day[day])
        rows.append(
            DayTotals(
                date=day,
                total_credit=credit,
                total_debit=debit,
                net_change=(credit - debit).quantize(CENT),
            )
        )
    return rows
