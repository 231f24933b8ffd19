import logging
from datetime import date
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import get_session_factory
from identity import UnauthorizedError, resolve_owner
from models import TransactionType
from periods import local_today
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    CategoryIn,
    CategoryOut,
    DailyReportOut,
    DashboardOut,
    DayTotalsOut,
    OwnerOut,
    ReportGenerateIn,
    SeedOut,
    TodaySummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    CategoryService,
    NotFoundError,
    ReportService,
    SeedService,
    TransactionFilters,
    TransactionService,
    ValidationError,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")


def get_db() -> Iterator[Session]:
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def current_owner(authorization: Optional[str] = Header(default=None)) -> str:
    return resolve_owner(authorization)


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    body: dict[str, str] = {"message": str(exc)}
    if exc.field:
        body["field"] = exc.field
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    message = str(first.get("msg", "Invalid request"))
    if message.startswith("Value error, "):
        message = message[len("Value error, ") :]
    path = [
        str(part)
        for part in first.get("loc", ())
        if part not in ("body", "query", "path", "header")
    ]
    body = {"message": message}
    if path:
        body["field"] = ".".join(path)
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"message": str(exc)})


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    return JSONResponse(
        status_code=401,
        content={"message": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/auth/user", response_model=OwnerOut)
def auth_user(owner: str = Depends(current_owner)):
    return OwnerOut(id=owner)


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(owner: str = Depends(current_owner), db: Session = Depends(get_db)):
    return [CategoryOut.model_validate(c) for c in CategoryService(db, owner).list_all()]


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    payload: CategoryIn,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, owner).create(payload)
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    CategoryService(db, owner).delete(category_id)
    return Response(status_code=204)


@app.get("/api/accounts", response_model=list[CategoryOut])
def list_accounts(owner: str = Depends(current_owner), db: Session = Depends(get_db)):
    return [CategoryOut.model_validate(c) for c in CategoryService(db, owner).accounts()]


@app.get("/api/accounts/search", response_model=list[CategoryOut])
def search_accounts(
    q: str = Query(default=""),
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return [CategoryOut.model_validate(c) for c in CategoryService(db, owner).search(q)]


@app.post("/api/accounts", response_model=CategoryOut, status_code=201)
def create_account(
    payload: AccountIn,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, owner).create(
        CategoryIn(name=payload.name, code=payload.code)
    )
    return CategoryOut.model_validate(category)


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    txn_type: Optional[TransactionType] = Query(default=None, alias="type"),
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    category_id: Optional[int] = Query(default=None, alias="categoryId"),
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(
        type=txn_type,
        start_date=start_date,
        end_date=end_date,
        category_id=category_id,
    )
    items = TransactionService(db, owner).list(filters)
    return [TransactionOut.model_validate(txn) for txn in items]


@app.get("/api/transactions/today", response_model=list[TransactionOut])
def todays_transactions(
    owner: str = Depends(current_owner), db: Session = Depends(get_db)
):
    today = local_today(settings.timezone)
    items = TransactionService(db, owner).for_day(today)
    return [TransactionOut.model_validate(txn) for txn in items]


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionIn,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner).create(payload)
    return TransactionOut.model_validate(txn)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner).update(transaction_id, payload)
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    if not TransactionService(db, owner).delete(transaction_id):
        raise NotFoundError("Transaction not found")
    return Response(status_code=204)


@app.get("/api/reports/dashboard", response_model=DashboardOut)
def dashboard(owner: str = Depends(current_owner), db: Session = Depends(get_db)):
    result = ReportService(db, owner).dashboard()
    return DashboardOut(
        total_credit=result.summary.total_credit,
        total_debit=result.summary.total_debit,
        outstanding_balance=result.summary.outstanding_balance,
        today_summary=TodaySummaryOut(
            credit=result.today.credit, debit=result.today.debit
        ),
    )


@app.get("/api/reports/daily", response_model=list[DailyReportOut])
def daily_reports(owner: str = Depends(current_owner), db: Session = Depends(get_db)):
    reports = ReportService(db, owner).list_reports()
    return [DailyReportOut.model_validate(r) for r in reports]


@app.get("/api/reports/days", response_model=list[DayTotalsOut])
def report_days(
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    rows = ReportService(db, owner).days(
        TransactionFilters(start_date=start_date, end_date=end_date)
    )
    return [DayTotalsOut.model_validate(row) for row in rows]


@app.post("/api/reports/generate", response_model=DailyReportOut)
def generate_report(
    payload: ReportGenerateIn,
    owner: str = Depends(current_owner),
    db: Session = Depends(get_db),
):
    report = ReportService(db, owner).generate(payload.date)
    return DailyReportOut.model_validate(report)


@app.post("/api/seed", response_model=SeedOut)
def seed_demo(owner: str = Depends(current_owner), db: Session = Depends(get_db)):
    return SeedOut(created=SeedService(db, owner).seed_demo())


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
