import logging
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from backup import BackupService
from config import get_settings
from database import SessionLocal, session_scope
from models import EntryKind
from periods import PeriodType
from schemas import (
    INPUT_BY_KIND,
    AvailableMonth,
    BackupData,
    CategoryIn,
    EntryBase,
    EntryOut,
    FinancialSummary,
    MonthPage,
    PeriodStats,
    StatsPeriod,
)
from services import (
    CategoryNotFound,
    CategoryService,
    EntryNotFound,
    EntryService,
    InvalidEntryId,
    MonthPageService,
    StatsService,
    financial_summary,
    seed_default_categories,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        seed_default_categories(session)


def stats_period_from_query(
    period: PeriodType = Query(PeriodType.month),
    offset: int = Query(0),
) -> StatsPeriod:
    try:
        return StatsPeriod(type=period, offset=offset)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def payload_for(kind: EntryKind, payload: dict) -> EntryBase:
    try:
        return INPUT_BY_KIND[kind].model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get("/api/overview", response_model=FinancialSummary)
def api_overview(
    period: StatsPeriod = Depends(stats_period_from_query),
    db: Session = Depends(get_db),
):
    expense_stats = StatsService(db, EntryKind.expense).period_stats(period)
    income_stats = StatsService(db, EntryKind.income).period_stats(period)
    return financial_summary(expense_stats, income_stats)


@app.post("/api/backup/restore")
def api_backup_restore(data: BackupData, db: Session = Depends(get_db)):
    counts = BackupService(db).restore(data)
    logger.info(
        f"Restored {counts['expenses']} expenses, {counts['incomes']} incomes "
        f"and {counts['categories']} categories"
    )
    return counts


@app.post("/api/reset")
def api_reset(db: Session = Depends(get_db)):
    return BackupService(db).reset()


@app.get("/api/categories", response_model=list[CategoryIn])
def api_categories(
    kind: Optional[EntryKind] = Query(None),
    include_disabled: bool = Query(False),
    db: Session = Depends(get_db),
):
    return CategoryService(db).list_all(kind, include_disabled=include_disabled)


@app.post("/api/categories", response_model=CategoryIn, status_code=201)
def api_create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.put("/api/categories/{kind}/{name}/enabled", response_model=CategoryIn)
def api_toggle_category(
    kind: EntryKind,
    name: str,
    enabled: bool = Body(..., embed=True),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db).set_enabled(kind, name, enabled)
    except CategoryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/backup", response_model=BackupData)
def api_backup(db: Session = Depends(get_db)):
    return BackupService(db).export()


@app.get("/api/{kind}/months", response_model=list[AvailableMonth])
def api_available_months(kind: EntryKind, db: Session = Depends(get_db)):
    return MonthPageService(db, kind).available_months()


@app.get("/api/{kind}/pages/{offset_month}", response_model=MonthPage)
def api_month_page(kind: EntryKind, offset_month: int, db: Session = Depends(get_db)):
    try:
        return MonthPageService(db, kind).page(offset_month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/{kind}/stats", response_model=PeriodStats)
def api_period_stats(
    kind: EntryKind,
    period: StatsPeriod = Depends(stats_period_from_query),
    clamp: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
):
    return StatsService(db, kind).period_stats(period, clamp_rolling_end_to_now=clamp)


@app.get("/api/{kind}/usage")
def api_group_usage(kind: EntryKind, db: Session = Depends(get_db)):
    return EntryService(db, kind).group_usage_counts()


@app.post("/api/{kind}/groups/{key}/trash")
def api_trash_group(kind: EntryKind, key: str, db: Session = Depends(get_db)):
    changes = EntryService(db, kind).soft_delete_by_group(key)
    return {"trashed": changes}


@app.post("/api/{kind}", response_model=EntryOut, status_code=201)
def api_create_entry(
    kind: EntryKind, payload: dict = Body(...), db: Session = Depends(get_db)
):
    data = payload_for(kind, payload)
    return EntryService(db, kind).create(data)


@app.get("/api/{kind}/{entry_id}", response_model=EntryOut)
def api_get_entry(kind: EntryKind, entry_id: str, db: Session = Depends(get_db)):
    try:
        return EntryService(db, kind).get(entry_id)
    except InvalidEntryId as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except EntryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/{kind}/{entry_id}", response_model=EntryOut)
def api_update_entry(
    kind: EntryKind,
    entry_id: str,
    payload: dict = Body(...),
    db: Session = Depends(get_db),
):
    data = payload_for(kind, payload)
    try:
        return EntryService(db, kind).update(entry_id, data)
    except InvalidEntryId as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except EntryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/{kind}/{entry_id}", status_code=204)
def api_trash_entry(kind: EntryKind, entry_id: str, db: Session = Depends(get_db)):
    try:
        EntryService(db, kind).soft_delete(entry_id)
    except InvalidEntryId as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except EntryNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
