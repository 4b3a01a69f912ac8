import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from aggregation import budget_alerts, quick_stats
from config import get_settings
from csv_utils import export_expenses, export_report
from cycles import local_today
from database import get_db
from errors import EmptySelection, FieldValidationError, NotConfigured, UpstreamFailure
from import_batch import ImportBatch
from models import Expense, ExpenseSort
from scheduler import SchedulerManager
from schemas import BudgetSettings, ExpenseIn, ImportSaveIn
from services import (
    ExpenseService,
    ImportService,
    ReportService,
    SettingsService,
)

app = FastAPI(title="Salary Cycle Budget")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def validation_error(exc: FieldValidationError) -> HTTPException:
    return HTTPException(
        status_code=422, detail={"field": exc.field, "message": exc.message}
    )


def not_configured() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail="Set up your salary and budget categories to get started.",
    )


def expense_to_dict(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "date": expense.date.isoformat(),
        "category": expense.category,
        "amount_cents": expense.amount_cents,
        "description": expense.description,
        "tags": expense.tag_names,
    }


def check_month(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    if not 1970 <= year <= 3000:
        raise HTTPException(status_code=400, detail="Year is out of range")


@app.get("/settings")
def read_settings(db: Session = Depends(get_db)):
    settings = SettingsService(db).get()
    if settings is None:
        raise HTTPException(status_code=404, detail="Settings not found")
    return settings.model_dump(mode="json")


@app.put("/settings")
def save_settings(payload: BudgetSettings, db: Session = Depends(get_db)):
    try:
        saved = SettingsService(db).put(payload)
    except FieldValidationError as exc:
        raise validation_error(exc) from exc
    return saved.model_dump(mode="json")


@app.get("/expenses")
def list_expenses(
    month: int = Query(...),
    year: int = Query(...),
    category: Optional[str] = Query(None),
    sort: ExpenseSort = Query(ExpenseSort.date_desc),
    db: Session = Depends(get_db),
):
    check_month(month, year)
    expenses = ExpenseService(db).list(month, year, category=category, sort=sort)
    return [expense_to_dict(e) for e in expenses]


@app.get("/expenses/export.csv")
def export_expenses_csv(
    month: int = Query(...), year: int = Query(...), db: Session = Depends(get_db)
):
    check_month(month, year)
    csv_text = export_expenses(ExpenseService(db).list(month, year))
    filename = f"expenses_{year}_{month:02d}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/expenses", status_code=201)
def create_expense(payload: ExpenseIn, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).create(payload)
    except NotConfigured as exc:
        raise not_configured() from exc
    except FieldValidationError as exc:
        raise validation_error(exc) from exc
    return expense_to_dict(expense)


@app.put("/expenses/{expense_id}")
def update_expense(expense_id: int, payload: ExpenseIn, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).update(expense_id, payload)
    except NotConfigured as exc:
        raise not_configured() from exc
    except FieldValidationError as exc:
        raise validation_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return expense_to_dict(expense)


@app.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        ExpenseService(db).delete(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/expenses/import/parse")
async def import_parse(statement: UploadFile = File(...), db: Session = Depends(get_db)):
    content = await statement.read()
    try:
        preview = ImportService(db).parse(content, statement.filename or "")
    except FieldValidationError as exc:
        raise validation_error(exc) from exc
    except UpstreamFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    logging.info(
        f"statement_preview: filename={statement.filename} "
        f"rows={preview.summary.total} skipped={len(preview.errors)}"
    )
    return {
        "transactions": [
            {
                "date": txn.date.isoformat(),
                "description": txn.description,
                "amount_cents": txn.amount_cents,
                "type": txn.type.value,
                "category": txn.category,
                "tags": list(txn.tags),
            }
            for txn in preview.batch.transactions
        ],
        "availableCategories": preview.category_options,
        "summary": {
            "total": preview.summary.total,
            "debits": preview.summary.debits,
            "credits": preview.summary.credits,
        },
        "errors": preview.errors,
    }


@app.post("/expenses/import/save")
def import_save(payload: ImportSaveIn, db: Session = Depends(get_db)):
    batch = ImportBatch.load(payload.transactions)
    try:
        result = ImportService(db).commit(batch)
    except EmptySelection as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except FieldValidationError as exc:
        raise validation_error(exc) from exc
    except UpstreamFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"count": result.count, "message": result.message}


@app.get("/reports/current")
def current_report(db: Session = Depends(get_db)):
    try:
        report = ReportService(db).current_report()
    except NotConfigured:
        return JSONResponse({"configured": False})
    return {"configured": True, **report.to_dict()}


@app.get("/reports/current/stats")
def current_stats(db: Session = Depends(get_db)):
    today = local_today()
    try:
        report = ReportService(db).current_report(today)
    except NotConfigured as exc:
        raise not_configured() from exc
    stats = quick_stats(report, today)
    return {
        "top_category": stats.top_category,
        "top_category_spent_cents": stats.top_category_spent_cents,
        "days_elapsed": stats.days_elapsed,
        "days_remaining": stats.days_remaining,
        "average_daily_cents": stats.average_daily_cents,
    }


@app.get("/reports/current/alerts")
def current_alerts(
    dismissed: Optional[List[str]] = Query(None), db: Session = Depends(get_db)
):
    try:
        report = ReportService(db).current_report()
    except NotConfigured as exc:
        raise not_configured() from exc
    settings = get_settings()
    alerts = budget_alerts(
        report,
        frozenset(dismissed or []),
        warning_percent=settings.alert_warning_percent,
        danger_percent=settings.alert_danger_percent,
    )
    return [
        {"name": a.name, "percent_used": a.percent_used, "level": a.level}
        for a in alerts
    ]


@app.get("/reports/monthly")
def monthly_report(
    month: int = Query(...), year: int = Query(...), db: Session = Depends(get_db)
):
    check_month(month, year)
    try:
        report = ReportService(db).monthly_report(month, year)
    except NotConfigured as exc:
        raise not_configured() from exc
    return report.to_dict()


@app.get("/reports/monthly/export.csv")
def monthly_report_csv(
    month: int = Query(...), year: int = Query(...), db: Session = Depends(get_db)
):
    check_month(month, year)
    try:
        report = ReportService(db).monthly_report(month, year)
    except NotConfigured as exc:
        raise not_configured() from exc
    filename = f"report-{month}-{year}.csv"
    return StreamingResponse(
        iter([export_report(report)]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/reports/history")
def report_history(db: Session = Depends(get_db)):
    return [
        {
            "month": point.month,
            "year": point.year,
            "total_spent_cents": point.total_spent_cents,
            "total_savings_cents": point.total_savings_cents,
        }
        for point in ReportService(db).history()
    ]

