from __future__ import annotations

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

ROLE_ADMIN = "admin"
ROLE_CONSTRUCTION = "construction"
ROLES = (ROLE_ADMIN, ROLE_CONSTRUCTION)


class User(Base, HasId, HasCreatedAt):
    __tablename__ = "auth_user"

    username: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    # admin | construction
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_CONSTRUCTION)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
