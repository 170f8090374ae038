from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.db.models.alerts import AlertLog
from app.db.models.demand import Demand, DemandStatus, Priority
from services.notifications.notifier import DeliveryResult, Notifier
from services.reports.formatter import format_alert, format_test_message

URGENT_DEMAND = "URGENT_DEMAND"
SUPPLY_RECEIVED = "SUPPLY_RECEIVED"
DEMAND_FULFILLED = "DEMAND_FULFILLED"
DEMAND_UPDATE = "DEMAND_UPDATE"
TEST_ALERT = "TEST"


def demand_alert_data(d: Demand, **extra) -> dict:
    data = {
        "item": d.item,
        "quantity": d.demanded_qty,
        "supplied_qty": d.supplied_qty,
        "pending_qty": d.pending_qty,
        "status": d.effective_status,
        "project": d.project,
        "demand_no": d.demand_no,
        "priority": d.priority,
        "due_date": d.due_date.isoformat() if d.due_date else None,
    }
    data.update(extra)
    return data


def alert_type_for(d: Demand) -> str:
    status = d.effective_status
    if status == DemandStatus.PENDING.value and d.priority == Priority.HIGH.value:
        return URGENT_DEMAND
    if status == DemandStatus.SUPPLIED.value:
        return DEMAND_FULFILLED
    if status == DemandStatus.PARTIALLY_SUPPLIED.value:
        return SUPPLY_RECEIVED
    return DEMAND_UPDATE


def send_demand_alert(notifier: Notifier, alert_type: str, data: dict, demand_id: Optional[int] = None) -> tuple[str, list[DeliveryResult]]:
    text = format_alert(alert_type, data)
    return text, notifier.broadcast(text, alert_type=alert_type, demand_id=demand_id)


def send_channel_test(notifier: Notifier, channel: str, message: Optional[str] = None) -> tuple[str, DeliveryResult]:
    if channel not in {c.name for c in notifier.channels}:
        raise NotFoundError(f"Channel {channel!r} is not configured")
    text = message or format_test_message()
    results = notifier.broadcast(text, alert_type=TEST_ALERT, only=channel)
    return text, results[0]


def new_demand_alert(d: Demand) -> Optional[tuple[str, dict]]:
    """Only high-priority demands are announced on creation."""
    if d.priority != Priority.HIGH.value:
        return None
    return URGENT_DEMAND, demand_alert_data(d)


def supply_alert(d: Demand, increase: float) -> Optional[tuple[str, dict]]:
    if increase <= 0:
        return None
    if d.status == DemandStatus.SUPPLIED.value:
        return DEMAND_FULFILLED, demand_alert_data(d, quantity_received=increase)
    return SUPPLY_RECEIVED, demand_alert_data(d, quantity_received=increase)


def list_alerts(db: Session, *, limit: int = 50, alert_type: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    q = db.query(AlertLog)
    if alert_type:
        q = q.filter(AlertLog.alert_type == alert_type)
    rows = q.order_by(AlertLog.created_at.desc(), AlertLog.id.desc()).limit(limit).all()

    by_type = dict(db.query(AlertLog.alert_type, func.count(AlertLog.id)).group_by(AlertLog.alert_type).all())
    total = sum(by_type.values())
    now = now or datetime.now()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    today = db.query(func.count(AlertLog.id)).filter(AlertLog.created_at >= day_start).scalar() or 0

    return {
        "total_alerts": total,
        "showing": len(rows),
        "alerts": [alert_to_dict(r) for r in rows],
        "summary": {"by_type": by_type, "today": today},
    }


def clear_alerts(db: Session) -> int:
    n = db.query(AlertLog).delete()
    db.commit()
    return n


def alert_to_dict(r: AlertLog) -> dict:
    return {
        "id": r.id,
        "type": r.alert_type,
        "channel": r.channel,
        "message": r.message,
        "ok": r.ok,
        "error": r.error,
        "demand_id": r.demand_id,
        "created_at": r.created_at,
    }
