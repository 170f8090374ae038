from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.errors import DomainError, http_status_for
from app.core.runtime import get_notifier
from app.core.security import Principal, require_user
from app.db.session import get_db
from services.alerts.service import new_demand_alert, send_demand_alert, supply_alert
from services.demand.service import (
    apply_supply_update,
    create_demand,
    demand_to_dict,
    get_demand,
    list_demands,
    set_delayed,
)
from services.notifications.notifier import Notifier

router = APIRouter(prefix="/demand", tags=["demand"])


class DemandIn(BaseModel):
    project: str = Field(..., max_length=128)
    demand_no: str = Field(..., max_length=64)
    item: str = Field(..., max_length=256)
    unit: str = Field(default="", max_length=32)
    demanded_qty: float = Field(..., ge=0, allow_inf_nan=False)
    supplied_qty: float = Field(default=0, ge=0, allow_inf_nan=False)
    priority: str = "Medium"
    due_date: Optional[date] = None
    remarks: Optional[str] = None


class SupplyUpdateIn(BaseModel):
    supplied_qty: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    received_qty: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    version: Optional[int] = None


class DelayIn(BaseModel):
    delayed: bool = True


@router.get("")
def list_all(
    status: Optional[str] = None,
    project: Optional[str] = None,
    priority: Optional[str] = None,
    limit: int = 500,
    db: Session = Depends(get_db),
):
    try:
        rows = list_demands(db, status=status, project=project, priority=priority, limit=limit)
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))
    return [demand_to_dict(r) for r in rows]


@router.get("/{demand_id}")
def get_one(demand_id: int, db: Session = Depends(get_db)):
    try:
        return demand_to_dict(get_demand(db, demand_id))
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))


@router.post("", status_code=201)
def create(
    payload: DemandIn,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        row = create_demand(db, **payload.model_dump(), created_by=principal.username)
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))

    alert = new_demand_alert(row)
    if alert:
        alert_type, data = alert
        background.add_task(send_demand_alert, notifier, alert_type, data, row.id)
    return {
        "ok": True,
        "demand": demand_to_dict(row),
        "alert_type": alert[0] if alert else None,
    }


@router.patch("/{demand_id}")
def update_supply(
    demand_id: int,
    payload: SupplyUpdateIn,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        row, increase = apply_supply_update(
            db,
            demand_id,
            supplied_qty=payload.supplied_qty,
            received_qty=payload.received_qty,
            expected_version=payload.version,
        )
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))

    alert = supply_alert(row, increase)
    if alert:
        alert_type, data = alert
        background.add_task(send_demand_alert, notifier, alert_type, data, row.id)
    return {
        "ok": True,
        "demand": demand_to_dict(row),
        "supply_increase": increase,
        "alert_type": alert[0] if alert else None,
    }


@router.post("/{demand_id}/delay")
def mark_delayed(
    demand_id: int,
    payload: DelayIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    try:
        row = set_delayed(db, demand_id, payload.delayed)
    except DomainError as e:
        raise HTTPException(http_status_for(e), str(e))
    return {"ok": True, "demand": demand_to_dict(row)}
