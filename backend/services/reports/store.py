from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DataReadError
from app.db.models.settings import SysSetting


class SettingStore:
    """Key/value access to ``sys_setting``; one short session per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[dict]:
        db = self._session_factory()
        try:
            row = db.get(SysSetting, key)
            return dict(row.value or {}) if row else None
        except SQLAlchemyError as e:
            raise DataReadError(f"cannot read setting {key!r}: {e}") from e
        finally:
            db.close()

    def put(self, key: str, value: dict) -> None:
        db = self._session_factory()
        try:
            row = db.get(SysSetting, key)
            if row is None:
                db.add(SysSetting(key=key, value=value))
            else:
                row.value = value
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
