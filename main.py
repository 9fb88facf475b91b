import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from config import get_settings
from database import SessionLocal, init_db
from errors import NotFound, StaleRecord
from models import BudgetPeriod, Frequency, TransactionType
from periods import resolve_period
from recurrence import UpcomingObligation
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetProgressOut,
    BudgetSummaryOut,
    BulkDeleteIn,
    ProcessOut,
    RecurringObligationIn,
    RecurringObligationOut,
    RecurringSummaryOut,
    ResetIn,
    SpendingIn,
    TransactionOut,
    UpcomingOut,
)
from services import BudgetService, RecurringObligationService, TransactionService

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Recurring Obligations & Budget Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info("ledger_startup: tables ready")


def _http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StaleRecord):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@app.exception_handler(StaleDataError)
async def stale_data_handler(_request: Request, exc: StaleDataError):
    logger.warning(f"stale_write: {exc}")
    return JSONResponse(
        status_code=409, content={"detail": "Record was modified concurrently"}
    )


def _upcoming_out(item: UpcomingObligation) -> UpcomingOut:
    return UpcomingOut(
        obligation=RecurringObligationOut.model_validate(item.obligation),
        due_date=item.due_date,
        days_until_due=item.days_until_due,
        raw_days_until_due=item.raw_days_until_due,
        is_overdue=item.is_overdue,
    )


# Recurring obligations


@app.get("/api/recurring", response_model=list[RecurringObligationOut])
def list_recurring(
    active_only: bool = False,
    frequency: Optional[Frequency] = None,
    type: Optional[TransactionType] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return RecurringObligationService(db).list(
        active_only=active_only, frequency=frequency, type=type, query=q
    )


@app.get("/api/recurring/upcoming", response_model=list[UpcomingOut])
def upcoming_recurring(
    days: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    items = RecurringObligationService(db).upcoming(days=days)
    return [_upcoming_out(item) for item in items]


@app.get("/api/recurring/summary", response_model=RecurringSummaryOut)
def recurring_summary(db: Session = Depends(get_db)):
    return RecurringSummaryOut(**RecurringObligationService(db).summary())


@app.post("/api/recurring/process-due", response_model=list[TransactionOut])
def process_due_recurring(db: Session = Depends(get_db)):
    return RecurringObligationService(db).process_due()


@app.post("/api/recurring/bulk-delete")
def bulk_delete_recurring(payload: BulkDeleteIn, db: Session = Depends(get_db)):
    deleted = RecurringObligationService(db).bulk_delete(payload.ids)
    return {"deleted": deleted}


@app.post("/api/recurring", response_model=RecurringObligationOut, status_code=201)
def create_recurring(payload: RecurringObligationIn, db: Session = Depends(get_db)):
    try:
        return RecurringObligationService(db).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/recurring/{obligation_id}", response_model=RecurringObligationOut)
def get_recurring(obligation_id: int, db: Session = Depends(get_db)):
    try:
        return RecurringObligationService(db).get(obligation_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/recurring/{obligation_id}", response_model=RecurringObligationOut)
def update_recurring(
    obligation_id: int,
    payload: RecurringObligationIn,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        return RecurringObligationService(db).update(
            obligation_id, payload, expected_version=expected_version
        )
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/recurring/{obligation_id}", status_code=204)
def delete_recurring(obligation_id: int, db: Session = Depends(get_db)):
    try:
        RecurringObligationService(db).delete(obligation_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.post("/api/recurring/{obligation_id}/process", response_model=ProcessOut)
def process_recurring(
    obligation_id: int,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        obligation, txn = RecurringObligationService(db).process(
            obligation_id, expected_version=expected_version
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return ProcessOut(
        processed=txn is not None,
        ended=txn is not None and not obligation.is_active,
        obligation=RecurringObligationOut.model_validate(obligation),
        transaction=TransactionOut.model_validate(txn) if txn else None,
    )


@app.post("/api/recurring/{obligation_id}/skip", response_model=ProcessOut)
def skip_recurring(
    obligation_id: int,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        obligation, skipped = RecurringObligationService(db).skip(
            obligation_id, expected_version=expected_version
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return ProcessOut(
        processed=skipped,
        ended=skipped and not obligation.is_active,
        obligation=RecurringObligationOut.model_validate(obligation),
    )


@app.post(
    "/api/recurring/{obligation_id}/deactivate", response_model=RecurringObligationOut
)
def deactivate_recurring(
    obligation_id: int,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        return RecurringObligationService(db).deactivate(
            obligation_id, expected_version=expected_version
        )
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post(
    "/api/recurring/{obligation_id}/activate", response_model=RecurringObligationOut
)
def activate_recurring(
    obligation_id: int,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        return RecurringObligationService(db).activate(
            obligation_id, expected_version=expected_version
        )
    except ValueError as exc:
        raise _http_error(exc) from exc


# Budgets


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    active_only: bool = False,
    period: Optional[BudgetPeriod] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return BudgetService(db).list(active_only=active_only, period=period, query=q)


@app.get("/api/budgets/progress", response_model=list[BudgetProgressOut])
def budget_progress(include_inactive: bool = False, db: Session = Depends(get_db)):
    rows = BudgetService(db).progress(include_inactive=include_inactive)
    return [
        BudgetProgressOut(
            budget=BudgetOut.model_validate(row.budget),
            percentage=row.percentage,
            raw_percentage=row.raw_percentage,
            remaining=row.remaining,
            is_over_budget=row.is_over_budget,
            is_alert=row.is_alert,
            days_remaining=row.days_remaining,
        )
        for row in rows
    ]


@app.get("/api/budgets/summary", response_model=BudgetSummaryOut)
def budget_summary(db: Session = Depends(get_db)):
    summary = BudgetService(db).summary()
    return BudgetSummaryOut.model_validate(summary, from_attributes=True)


@app.get("/api/budgets/over", response_model=list[BudgetOut])
def over_budget(db: Session = Depends(get_db)):
    return BudgetService(db).over_budget()


@app.post("/api/budgets/spending", response_model=Optional[BudgetOut])
def apply_budget_spending(payload: SpendingIn, db: Session = Depends(get_db)):
    try:
        return BudgetService(db).apply_spending(payload.category, payload.amount)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/budgets/reset", response_model=list[BudgetOut])
def reset_budgets(payload: ResetIn, db: Session = Depends(get_db)):
    return BudgetService(db).reset_all(period=payload.period)


@app.post("/api/budgets/bulk-delete")
def bulk_delete_budgets(payload: BulkDeleteIn, db: Session = Depends(get_db)):
    return {"deleted": BudgetService(db).bulk_delete(payload.ids)}


@app.post("/api/budgets", response_model=BudgetOut, status_code=201)
def create_budget(payload: BudgetIn, db: Session = Depends(get_db)):
    try:
        return BudgetService(db).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/budgets/{budget_id}", response_model=BudgetOut)
def get_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        return BudgetService(db).get(budget_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    payload: BudgetIn,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        return BudgetService(db).update(
            budget_id, payload, expected_version=expected_version
        )
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/budgets/{budget_id}/reset", response_model=BudgetOut)
def reset_budget(
    budget_id: int,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        budget, _ = BudgetService(db).reset(
            budget_id, expected_version=expected_version
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return budget


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Transactions


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    period: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    recurring_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        resolved = resolve_period(period, start, end) if period else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionService(db).list(resolved, recurring_id=recurring_id)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
