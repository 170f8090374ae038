from __future__ import annotations

from fastapi import HTTPException, Request

from services.notifications.notifier import Notifier
from services.reports.scheduler import ReportScheduler


def get_scheduler(request: Request) -> ReportScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(503, "Report scheduler not started")
    return scheduler


def get_notifier(request: Request) -> Notifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        raise HTTPException(503, "Notifier not configured")
    return notifier
