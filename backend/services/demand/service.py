from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import ConflictError, DataReadError, NotFoundError, ValidationError
from app.db.models.demand import Demand, DemandStatus, Priority

logger = logging.getLogger(__name__)

PRIORITIES = {p.value for p in Priority}
STATUSES = {s.value for s in DemandStatus}


def _qty(name: str, value) -> float:
    try:
        q = float(value or 0)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(q):
        raise ValidationError(f"{name} must be a finite number")
    if q < 0:
        raise ValidationError(f"{name} must not be negative")
    return q


def list_demands(
    db: Session,
    *,
    status: Optional[str] = None,
    project: Optional[str] = None,
    priority: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[Demand]:
    try:
        q = db.query(Demand)
        if project:
            q = q.filter(Demand.project == project)
        if priority:
            q = q.filter(Demand.priority == priority)
        if status == DemandStatus.DELAYED.value:
            q = q.filter(Demand.delayed == True)  # noqa: E712
        elif status:
            q = q.filter(Demand.status == status, Demand.delayed == False)  # noqa: E712
        q = q.order_by(Demand.created_at.desc(), Demand.id.desc())
        if limit:
            q = q.limit(limit)
        return q.all()
    except SQLAlchemyError as e:
        raise DataReadError(f"cannot read demands: {e}") from e


def load_all_demands(session_factory: Callable[[], Session]) -> list[Demand]:
    """All demands, detached from their session, for report generation."""
    db = session_factory()
    try:
        rows = list_demands(db)
        db.expunge_all()
        return rows
    finally:
        db.close()


def get_demand(db: Session, demand_id: int) -> Demand:
    try:
        row = db.get(Demand, demand_id)
    except SQLAlchemyError as e:
        raise DataReadError(f"cannot read demand {demand_id}: {e}") from e
    if row is None:
        raise NotFoundError(f"Demand {demand_id} not found")
    return row


def create_demand(
    db: Session,
    *,
    project: str,
    demand_no: str,
    item: str,
    demanded_qty,
    unit: str = "",
    priority: str = Priority.MEDIUM.value,
    supplied_qty=0,
    due_date: Optional[date] = None,
    remarks: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Demand:
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of {sorted(PRIORITIES)}")
    for name, value in (("project", project), ("demand_no", demand_no), ("item", item)):
        if not (value or "").strip():
            raise ValidationError(f"{name} is required")

    row = Demand(
        project=project.strip(),
        demand_no=demand_no.strip(),
        item=item.strip(),
        unit=(unit or "").strip(),
        demanded_qty=_qty("demanded_qty", demanded_qty),
        supplied_qty=_qty("supplied_qty", supplied_qty),
        priority=priority,
        delayed=False,
        due_date=due_date,
        remarks=remarks,
        created_by=created_by,
    )
    row.recompute()
    if row.status == DemandStatus.SUPPLIED.value:
        row.supplied_date = datetime.now()
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Demand %s created: %s x %s for %s", row.demand_no, row.demanded_qty, row.item, row.project)
    return row


def apply_supply_update(
    db: Session,
    demand_id: int,
    *,
    supplied_qty=None,
    received_qty=None,
    expected_version: Optional[int] = None,
) -> tuple[Demand, float]:
    """Record supply against a demand.

    Either the new cumulative ``supplied_qty`` or an incremental
    ``received_qty`` is given. Supplied quantity never decreases. Returns the
    updated demand and the quantity added by this update.
    """
    if (supplied_qty is None) == (received_qty is None):
        raise ValidationError("give exactly one of supplied_qty or received_qty")

    row = get_demand(db, demand_id)
    if expected_version is not None and expected_version != row.version:
        raise ConflictError(f"Demand {demand_id} changed (version {row.version}, expected {expected_version})")

    old_supplied = float(row.supplied_qty or 0)
    if received_qty is not None:
        new_supplied = _qty("supplied_qty", old_supplied + _qty("received_qty", received_qty))
    else:
        new_supplied = _qty("supplied_qty", supplied_qty)
    if new_supplied < old_supplied:
        raise ValidationError(f"supplied_qty cannot decrease ({old_supplied} -> {new_supplied})")

    was_supplied = row.status == DemandStatus.SUPPLIED.value
    row.supplied_qty = new_supplied
    row.recompute()
    if row.status == DemandStatus.SUPPLIED.value and not was_supplied:
        row.supplied_date = datetime.now()

    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConflictError(f"Demand {demand_id} was updated concurrently") from e
    db.refresh(row)
    increase = new_supplied - old_supplied
    logger.info("Demand %s supply updated: +%s (now %s, %s)", row.demand_no, increase, row.supplied_qty, row.status)
    return row, increase


def set_delayed(db: Session, demand_id: int, delayed: bool) -> Demand:
    row = get_demand(db, demand_id)
    row.delayed = bool(delayed)
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConflictError(f"Demand {demand_id} was updated concurrently") from e
    db.refresh(row)
    logger.info("Demand %s delayed flag set to %s", row.demand_no, row.delayed)
    return row


def demand_to_dict(r: Demand) -> dict:
    return {
        "id": r.id,
        "project": r.project,
        "demand_no": r.demand_no,
        "item": r.item,
        "unit": r.unit,
        "demanded_qty": r.demanded_qty,
        "supplied_qty": r.supplied_qty,
        "pending_qty": r.pending_qty,
        "priority": r.priority,
        "status": r.effective_status,
        "delayed": r.delayed,
        "due_date": r.due_date,
        "supplied_date": r.supplied_date,
        "remarks": r.remarks,
        "created_by": r.created_by,
        "created_at": r.created_at,
        "updated_at": r.updated_at,
        "version": r.version,
    }
