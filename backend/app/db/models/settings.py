from __future__ import annotations

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.models.common import HasUpdatedAt


class SysSetting(Base, HasUpdatedAt):
    """Process-wide key/value settings (report schedule, etc.)."""

    __tablename__ = "sys_setting"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
