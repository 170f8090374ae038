from datetime import datetime
from sqlalchemy import Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

# Timestamps are naive server-local time; report windows ("today", "last 7 days")
# are computed against the server's calendar.

class HasId:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

class HasCreatedAt:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False, index=True)

class HasUpdatedAt:
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)
