from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


class Priority(str, enum.Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class DemandStatus(str, enum.Enum):
    PENDING = "Pending"
    PARTIALLY_SUPPLIED = "Partially Supplied"
    SUPPLIED = "Supplied"
    DELAYED = "Delayed"


def compute_pending(demanded_qty: float, supplied_qty: float) -> float:
    return max(0.0, float(demanded_qty or 0) - float(supplied_qty or 0))


def derive_status(demanded_qty: float, supplied_qty: float) -> DemandStatus:
    """Status implied by quantities alone. Delayed is never derived."""
    demanded = float(demanded_qty or 0)
    supplied = float(supplied_qty or 0)
    if supplied >= demanded:
        return DemandStatus.SUPPLIED
    if supplied > 0:
        return DemandStatus.PARTIALLY_SUPPLIED
    return DemandStatus.PENDING


class Demand(Base, HasId, HasCreatedAt, HasUpdatedAt):
    """One material request raised by a construction site."""

    __tablename__ = "dvs_demand"

    project: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    demand_no: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    item: Mapped[str] = mapped_column(String(256), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    demanded_qty: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    supplied_qty: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pending_qty: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=Priority.MEDIUM.value, index=True)
    # Derived from quantities; see derive_status
    status: Mapped[str] = mapped_column(String(24), nullable=False, default=DemandStatus.PENDING.value, index=True)
    # Externally asserted override layered on top of the derived status
    delayed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    supplied_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def recompute(self) -> None:
        self.pending_qty = compute_pending(self.demanded_qty, self.supplied_qty)
        self.status = derive_status(self.demanded_qty, self.supplied_qty).value

    @property
    def effective_status(self) -> str:
        if self.delayed:
            return DemandStatus.DELAYED.value
        return derive_status(self.demanded_qty, self.supplied_qty).value


Index("ix_dvs_demand_project_created", Demand.project, Demand.created_at)
