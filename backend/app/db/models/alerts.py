from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt


class AlertLog(Base, HasId, HasCreatedAt):
    """One delivery attempt of one alert over one channel."""

    __tablename__ = "dvs_alert"

    alert_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ok: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    demand_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)


Index("ix_dvs_alert_type_created", AlertLog.alert_type, AlertLog.created_at)
