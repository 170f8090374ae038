from __future__ import annotations

import asyncio

from fastapi import Depends, FastAPI
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.logging_config import configure_logging
from app.core.middleware import RequestLogMiddleware
from app.db.base import Base
from app.db.session import SessionLocal, engine, get_db

# Register models
from app.db import models  # noqa: F401
from app.db.models.alerts import AlertLog
from app.db.models.demand import Demand

from services.auth.api import router as auth_router, ensure_admin
from services.demand.api import router as demand_router
from services.demand.service import load_all_demands
from services.reports.api import router as reports_router
from services.alerts.api import router as alerts_router
from services.notifications.channels import build_channels
from services.notifications.notifier import Notifier
from services.reports.runner import ReportRunner
from services.reports.scheduler import ReportScheduler
from services.reports.store import SettingStore

configure_logging()

app = FastAPI(title="Demand-Supply Dashboard")
app.add_middleware(RequestLogMiddleware)

app.include_router(auth_router)
app.include_router(demand_router)
app.include_router(reports_router)
app.include_router(alerts_router)


@app.on_event("startup")
async def _startup():
    # Dev-friendly schema creation (migrations are available for real upgrades)
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        ensure_admin(db)

    # Tests and embedders may preset app.state.channels
    channels = getattr(app.state, "channels", None)
    if channels is None:
        channels = build_channels()
    notifier = Notifier(channels, session_factory=SessionLocal)
    runner = ReportRunner(lambda: load_all_demands(SessionLocal), notifier)
    scheduler = ReportScheduler(SettingStore(SessionLocal), runner)
    scheduler.start(asyncio.get_running_loop())

    app.state.notifier = notifier
    app.state.scheduler = scheduler


@app.on_event("shutdown")
async def _shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown()
        await scheduler.wait_idle()


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/")
def info(db: Session = Depends(get_db)):
    total = db.query(func.count(Demand.id)).scalar() or 0
    pending = db.query(func.count(Demand.id)).filter(Demand.status == "Pending", Demand.delayed == False).scalar() or 0  # noqa: E712
    alerts = db.query(func.count(AlertLog.id)).scalar() or 0
    schedule = app.state.scheduler.schedule.to_dict() if getattr(app.state, "scheduler", None) else None
    return {
        "app": "Demand-Supply Dashboard",
        "status": "running",
        "statistics": {"total_demands": total, "pending_demands": pending, "total_alerts": alerts},
        "report_schedule": schedule,
        "channels": [c.name for c in app.state.notifier.channels] if getattr(app.state, "notifier", None) else [],
    }
