from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.errors import DomainError, http_status_for
from app.core.runtime import get_scheduler
from app.core.security import require_roles, require_user
from app.db.models.auth import ROLE_ADMIN
from app.db.session import get_db
from services.demand.service import list_demands
from services.reports.formatter import format_summary, format_trend
from services.reports.scheduler import ReportScheduler
from services.reports.stats import compute_stats

router = APIRouter(prefix="/api/report", tags=["reports"])


class ScheduleIn(BaseModel):
    # Accepts the dashboard's camelCase keys as well
    model_config = ConfigDict(populate_by_name=True)

    enabled: Optional[bool] = None
    hour: Optional[int] = None
    minute: Optional[int] = None
    send_summary: Optional[bool] = Field(default=None, alias="sendSummary")
    send_graph: Optional[bool] = Field(default=None, alias="sendGraph")
    send_pdf: Optional[bool] = Field(default=None, alias="sendPDF")


def _stats(db: Session):
    try:
        return compute_stats(list_demands(db))
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))


@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    return _stats(db).to_dict()


@router.get("/preview/summary", response_class=PlainTextResponse)
def preview_summary(db: Session = Depends(get_db)):
    return format_summary(_stats(db))


@router.get("/preview/graph", response_class=PlainTextResponse)
def preview_graph(db: Session = Depends(get_db)):
    return format_trend(_stats(db))


@router.get("/schedule")
def get_schedule(scheduler: ReportScheduler = Depends(get_scheduler)):
    return scheduler.schedule.to_dict()


# async so the timer is swapped on the loop that owns it; the store write runs in the executor
@router.post("/schedule", dependencies=[Depends(require_roles([ROLE_ADMIN]))])
async def update_schedule(payload: ScheduleIn, scheduler: ReportScheduler = Depends(get_scheduler)):
    patch = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    try:
        schedule = await scheduler.update_schedule_async(patch)
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))
    return {"ok": True, "schedule": schedule.to_dict()}


@router.post("/send-daily", dependencies=[Depends(require_user)])
async def send_daily(scheduler: ReportScheduler = Depends(get_scheduler)):
    try:
        result = await run_in_threadpool(scheduler.run_now)
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))
    return {
        "ok": result.delivered or not result.deliveries,
        "report": result.to_dict(),
        "schedule": scheduler.schedule.to_dict(),
    }
