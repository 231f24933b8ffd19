from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Union

from rapidfuzz.distance import Levenshtein
from sqlalchemy import delete, func, insert, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.sql.elements import ColumnElement

from aggregation import (
    DaySummary,
    DayTotals,
    Summary,
    group_by_day,
    summarize,
    summarize_today,
)
from config import get_settings
from models import Category, DailyReport, Transaction, TransactionType
from money import ZERO, parse_amount, to_cents
from periods import local_day, local_today, resolve_period, utc_naive, utc_now
from schemas import CategoryIn, TransactionIn, TransactionUpdate

logger = logging.getLogger(__name__)

SERIAL_RETRIES = 5
SERIAL_CONSTRAINT = "uq_txn_user_date_serial"


class ValidationError(ValueError):
    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(ValueError):
    pass


def _is_serial_conflict(exc: IntegrityError) -> bool:
    constraint = getattr(getattr(exc.orig, "diag", None), "constraint_name", None)
    if constraint:
        return constraint == SERIAL_CONSTRAINT
    # SQLite reports the columns instead of the constraint name.
    return "transactions.serial" in str(exc.orig)


def _require_owner(user_id: str) -> str:
    if not user_id:
        raise ValueError("Owner identity is required")
    return user_id


def _validated_amount(value: object, field: str = "amount") -> Decimal:
    try:
        return parse_amount(value)  # type: ignore[arg-type]
    except ValueError as exc:
        raise ValidationError(str(exc), field) from exc


def _validated_type(value: object) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as exc:
        raise ValidationError("Type must be one of: credit, debit", "type") from exc


def _effective_moment(
    value: Optional[Union[datetime, date]], tz_name: str
) -> tuple[date, datetime]:
    now = datetime.now(timezone.utc)
    if value is None:
        return local_day(now, tz_name), utc_naive(now)
    if isinstance(value, datetime):
        return local_day(value, tz_name), utc_naive(value)
    return value, utc_naive(now)


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[int] = None

    def predicates(self) -> list[ColumnElement[bool]]:
        try:
            resolve_period(self.start_date, self.end_date)
        except ValueError as exc:
            raise ValidationError(str(exc), "startDate") from exc

        clauses: list[ColumnElement[bool]] = []
        if self.type is not None:
            clauses.append(Transaction.type == _validated_type(self.type))
        if self.start_date is not None:
            clauses.append(Transaction.date >= self.start_date)
        if self.end_date is not None:
            clauses.append(Transaction.date <= self.end_date)
        if self.category_id is not None:
            clauses.append(Transaction.category_id == self.category_id)
        return clauses


@dataclass(frozen=True)
class Dashboard:
    summary: Summary
    today: DaySummary


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = _require_owner(user_id)

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name, Category.id)
        )
        return list(self.session.scalars(stmt).all())

    def accounts(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id, Category.code.is_not(None))
            .order_by(Category.code)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id, Category.id == category_id
            )
        )
        if not category:
            raise NotFoundError("Category not found")
        return category

    def get_by_code(self, code: str) -> Optional[Category]:
        return self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                func.lower(Category.code) == code.strip().lower(),
            )
        )

    def create(self, data: CategoryIn) -> Category:
        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Name is required", "name")
        code = data.code.strip() if data.code else None
        if code and self.get_by_code(code):
            raise ValidationError("Code already exists", "code")

        category = Category(
            user_id=self.user_id,
            name=name,
            type=TransactionType(data.type) if data.type else None,
            code=code,
        )
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValidationError("Code already exists", "code") from exc
        self.session.refresh(category)
        logger.info(f"category_created: owner={self.user_id} id={category.id}")
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category.id,
            )
            .values(category_id=None)
        )
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: owner={self.user_id} id={category_id}")

    def search(self, query: str, limit: int = 20) -> list[Category]:
        needle = (query or "").strip().lower()
        if not needle:
            return []

        matches: list[Category] = []
        for category in self.list_all():
            name = category.name.strip().lower()
            code = (category.code or "").strip().lower()
            if needle in name or (code and needle in code):
                matches.append(category)
            elif Levenshtein.distance(needle, name) <= 1:
                matches.append(category)
            elif code and Levenshtein.distance(needle, code) <= 1:
                matches.append(category)
        return matches[:limit]


class TransactionService:
    def __init__(
        self, session: Session, user_id: str, *, tz_name: Optional[str] = None
    ) -> None:
        self.session = session
        self.user_id = _require_owner(user_id)
        self.tz_name = tz_name or get_settings().timezone

    def _owned(self):
        return (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
        )

    def has_any(self) -> bool:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == self.user_id
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = self._owned()
        for clause in filters.predicates():
            stmt = stmt.where(clause)
        stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
        return list(self.session.scalars(stmt).all())

    def for_day(self, day: date) -> list[Transaction]:
        stmt = (
            self._owned()
            .where(Transaction.date == day)
            .order_by(Transaction.serial.asc(), Transaction.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(self._owned().where(Transaction.id == transaction_id))
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def _resolve_category_id(self, category_id: Optional[int]) -> Optional[int]:
        if category_id is None:
            return None
        found = self.session.scalar(
            select(Category.id).where(
                Category.user_id == self.user_id, Category.id == category_id
            )
        )
        if found is None:
            raise ValidationError("Category not found", "categoryId")
        return found

    def _insert_with_serial(self, values: dict[str, object]) -> int:
        table = Transaction.__table__
        now = utc_now()
        row = dict(values, created_at=now, updated_at=now)
        names = list(row)
        source = select(
            *[literal(row[name], table.c[name].type) for name in names],
            func.coalesce(func.max(table.c.serial), 0) + 1,
        ).where(table.c.user_id == self.user_id, table.c.date == row["date"])
        stmt = (
            insert(table)
            .from_select([*names, "serial"], source)
            .returning(table.c.id)
        )

        for attempt in range(1, SERIAL_RETRIES + 1):
            try:
                txn_id = self.session.execute(stmt).scalar_one()
                self.session.commit()
                return txn_id
            except IntegrityError as exc:
                self.session.rollback()
                if not _is_serial_conflict(exc):
                    raise
                logger.warning(
                    f"serial_conflict: owner={self.user_id} date={row['date']} attempt={attempt}"
                )
        raise RuntimeError("Could not assign a daily serial number")

    def create(self, data: TransactionIn) -> Transaction:
        amount = _validated_amount(data.amount)
        less = _validated_amount(data.less if data.less is not None else ZERO, "less")
        txn_type = _validated_type(data.type)
        category_id = self._resolve_category_id(data.category_id)
        day, occurred_at = _effective_moment(data.date, self.tz_name)

        txn_id = self._insert_with_serial(
            {
                "user_id": self.user_id,
                "date": day,
                "occurred_at": occurred_at,
                "type": txn_type,
                "amount_cents": to_cents(amount),
                "less_cents": to_cents(less),
                "category_id": category_id,
                "notes": data.notes,
            }
        )
        txn = self.get(txn_id)
        logger.info(
            f"transaction_created: owner={self.user_id} id={txn.id} date={txn.date} serial={txn.serial}"
        )
        return txn

    def _prepare_changes(
        self, changes: dict[str, object]
    ) -> tuple[dict[str, object], Optional[date]]:
        values: dict[str, object] = {}
        new_day: Optional[date] = None
        if "amount" in changes:
            values["amount_cents"] = to_cents(_validated_amount(changes["amount"]))
        if "less" in changes:
            values["less_cents"] = to_cents(_validated_amount(changes["less"], "less"))
        if "type" in changes:
            values["type"] = _validated_type(changes["type"])
        if "category_id" in changes:
            values["category_id"] = self._resolve_category_id(changes["category_id"])
        if "notes" in changes:
            values["notes"] = changes["notes"]
        if "date" in changes:
            raw = changes["date"]
            if raw is None:
                raise ValidationError("Date is required", "date")
            new_day, occurred_at = _effective_moment(raw, self.tz_name)  # type: ignore[arg-type]
            if isinstance(raw, datetime):
                values["occurred_at"] = occurred_at
        return values, new_day

    def _move_to_day(self, transaction_id: int, day: date) -> None:
        table = Transaction.__table__
        peer = table.alias("peer")
        next_serial = (
            select(func.coalesce(func.max(peer.c.serial), 0) + 1)
            .where(peer.c.user_id == self.user_id, peer.c.date == day)
            .scalar_subquery()
        )
        self.session.execute(
            update(table)
            .where(table.c.id == transaction_id, table.c.user_id == self.user_id)
            .values(date=day, serial=next_serial)
        )

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        changes = data.model_dump(exclude_unset=True)
        for attempt in range(1, SERIAL_RETRIES + 1):
            txn = self.get(transaction_id)
            values, new_day = self._prepare_changes(changes)
            for key, value in values.items():
                setattr(txn, key, value)
            try:
                self.session.flush()
                if new_day is not None and new_day != txn.date:
                    self._move_to_day(txn.id, new_day)
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                if not _is_serial_conflict(exc):
                    raise
                logger.warning(
                    f"serial_conflict: owner={self.user_id} id={transaction_id} attempt={attempt}"
                )
                continue
            self.session.refresh(txn)
            logger.info(f"transaction_updated: owner={self.user_id} id={txn.id}")
            return txn
        raise RuntimeError("Could not assign a daily serial number")

    def delete(self, transaction_id: int) -> bool:
        result = self.session.execute(
            delete(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        self.session.commit()
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info(f"transaction_deleted: owner={self.user_id} id={transaction_id}")
        return deleted


class ReportService:
    def __init__(
        self, session: Session, user_id: str, *, tz_name: Optional[str] = None
    ) -> None:
        self.session = session
        self.user_id = _require_owner(user_id)
        self.tz_name = tz_name or get_settings().timezone
        self.transactions = TransactionService(session, user_id, tz_name=self.tz_name)

    def dashboard(self, today: Optional[date] = None) -> Dashboard:
        today = today or local_today(self.tz_name)
        rows = self.transactions.list()
        return Dashboard(summary=summarize(rows), today=summarize_today(rows, today))

    def days(self, filters: Optional[TransactionFilters] = None) -> list[DayTotals]:
        return group_by_day(self.transactions.list(filters))

    def list_reports(self) -> list[DailyReport]:
        stmt = (
            select(DailyReport)
            .where(DailyReport.user_id == self.user_id)
            .order_by(DailyReport.report_date.desc(), DailyReport.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def generate(self, report_date: date) -> DailyReport:
        rows = self.transactions.list(
            TransactionFilters(start_date=report_date, end_date=report_date)
        )
        summary = summarize(rows)
        values = {
            "total_credit_cents": to_cents(summary.total_credit),
            "total_debit_cents": to_cents(summary.total_debit),
            "net_change_cents": to_cents(summary.outstanding_balance),
        }

        # A concurrent first insert for the same day loses on the unique
        # constraint; the second pass then updates that row instead.
        for _attempt in range(2):
            report = self.session.scalar(
                select(DailyReport).where(
                    DailyReport.user_id == self.user_id,
                    DailyReport.report_date == report_date,
                )
            )
            if report is None:
                report = DailyReport(
                    user_id=self.user_id, report_date=report_date, **values
                )
                self.session.add(report)
            else:
                for key, value in values.items():
                    setattr(report, key, value)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                continue
            self.session.refresh(report)
            logger.info(
                f"report_generated: owner={self.user_id} date={report_date} "
                f"credit={summary.total_credit} debit={summary.total_debit}"
            )
            return report
        raise RuntimeError("Could not store daily report")


def owners_with_activity(session: Session, day: date) -> list[str]:
    stmt = (
        select(Transaction.user_id)
        .where(Transaction.date == day)
        .distinct()
        .order_by(Transaction.user_id)
    )
    return list(session.scalars(stmt).all())


class SeedService:
    def __init__(
        self, session: Session, user_id: str, *, tz_name: Optional[str] = None
    ) -> None:
        self.session = session
        self.user_id = _require_owner(user_id)
        self.tz_name = tz_name or get_settings().timezone

    def seed_demo(self, today: Optional[date] = None) -> int:
        txns = TransactionService(self.session, self.user_id, tz_name=self.tz_name)
        if txns.has_any():
            return 0
        today = today or local_today(self.tz_name)

        categories = CategoryService(self.session, self.user_id)
        income = categories.create(CategoryIn(name="Income", type=TransactionType.credit))
        spending = categories.create(
            CategoryIn(name="Household", type=TransactionType.debit)
        )
        plan = [
            (7, TransactionType.credit, "5000.00", income, "Salary"),
            (1, TransactionType.credit, "800.00", income, "Freelance work"),
            (7, TransactionType.debit, "1200.00", spending, "Rent"),
            (1, TransactionType.debit, "156.75", spending, "Groceries"),
            (0, TransactionType.debit, "89.50", spending, "Electricity bill"),
        ]
        for days_ago, txn_type, amount, category, notes in plan:
            txns.create(
                TransactionIn(
                    amount=amount,
                    type=txn_type,
                    category_id=category.id,
                    notes=notes,
                    date=today - timedelta(days=days_ago),
                )
            )
        logger.info(f"demo_seeded: owner={self.user_id} transactions={len(plan)}")
        return len(plan)
