from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.errors import DomainError, http_status_for
from app.core.runtime import get_notifier
from app.core.security import require_roles, require_user
from app.db.models.auth import ROLE_ADMIN
from app.db.session import get_db
from services.alerts.service import (
    alert_type_for,
    clear_alerts,
    demand_alert_data,
    list_alerts,
    send_channel_test,
    send_demand_alert,
)
from services.demand.service import get_demand
from services.notifications.channels import WhatsAppChannel
from services.notifications.notifier import Notifier

router = APIRouter(prefix="/api", tags=["alerts"])


class AlertIn(BaseModel):
    type: str = Field(..., min_length=1, max_length=64)
    message: str = ""
    priority: str = "medium"
    data: dict = Field(default_factory=dict)


class ChannelTestIn(BaseModel):
    message: Optional[str] = None


@router.get("/alerts")
def get_alerts(limit: int = 50, type: Optional[str] = None, db: Session = Depends(get_db)):
    return list_alerts(db, limit=limit, alert_type=type)


@router.delete("/alerts", dependencies=[Depends(require_roles([ROLE_ADMIN]))])
def delete_alerts(db: Session = Depends(get_db)):
    removed = clear_alerts(db)
    return {"ok": True, "removed": removed}


@router.post("/alert", dependencies=[Depends(require_user)])
def send_alert(payload: AlertIn, notifier: Notifier = Depends(get_notifier)):
    data = {"message": payload.message, **payload.data}
    text, results = send_demand_alert(notifier, payload.type, data)
    return {
        "ok": all(r.ok for r in results),
        "type": payload.type,
        "priority": payload.priority,
        "message": text,
        "deliveries": [r.to_dict() for r in results],
    }


@router.post("/trigger-demand-alert/{demand_id}", dependencies=[Depends(require_user)])
def trigger_demand_alert(demand_id: int, db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    try:
        demand = get_demand(db, demand_id)
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))
    alert_type = alert_type_for(demand)
    text, results = send_demand_alert(notifier, alert_type, demand_alert_data(demand), demand.id)
    return {
        "ok": all(r.ok for r in results),
        "demand": {"id": demand.id, "demand_no": demand.demand_no, "item": demand.item, "status": demand.effective_status},
        "alert": {"type": alert_type, "message": text},
        "deliveries": [r.to_dict() for r in results],
    }


@router.get("/whatsapp/status")
def whatsapp_status(notifier: Notifier = Depends(get_notifier)):
    for channel in notifier.channels:
        if isinstance(channel, WhatsAppChannel):
            return {"configured": True, **channel.status()}
    return {"configured": False, "ready": False}


@router.post("/test/{channel}", dependencies=[Depends(require_user)])
def send_test_message(channel: str, payload: Optional[ChannelTestIn] = None, notifier: Notifier = Depends(get_notifier)):
    try:
        text, result = send_channel_test(notifier, channel, payload.message if payload else None)
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))
    if not result.ok:
        raise HTTPException(502, result.error)
    return {"ok": True, "channel": channel, "message": text, "delivery": result.to_dict()}
