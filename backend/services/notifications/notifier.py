from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ChannelDeliveryError
from app.db.models.alerts import AlertLog
from services.notifications.channels import Channel

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    channel: str
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"channel": self.channel, "ok": self.ok, "error": self.error}


class Notifier:
    """Fans one message out to every channel and records each attempt."""

    def __init__(self, channels: Iterable[Channel], session_factory: Callable[[], Session] | None = None):
        self.channels = list(channels)
        self._session_factory = session_factory

    def broadcast(
        self,
        text: str,
        *,
        alert_type: str,
        subject: Optional[str] = None,
        demand_id: Optional[int] = None,
        only: Optional[str] = None,
    ) -> list[DeliveryResult]:
        """Send to every channel, or just the one named ``only``."""
        targets = [c for c in self.channels if only is None or c.name == only]
        results: list[DeliveryResult] = []
        for channel in targets:
            try:
                channel.send(text, subject=subject)
            except ChannelDeliveryError as e:
                logger.warning("Alert %s not delivered: %s", alert_type, e)
                results.append(DeliveryResult(channel=channel.name, ok=False, error=str(e)))
            else:
                logger.info("Alert %s delivered via %s", alert_type, channel.name)
                results.append(DeliveryResult(channel=channel.name, ok=True))

        if not targets:
            logger.info("Alert %s logged only (no channels configured)", alert_type)
            results_to_log = [DeliveryResult(channel="log", ok=True)]
        else:
            results_to_log = results
        self._record(text, alert_type, demand_id, results_to_log)
        return results

    def _record(self, text: str, alert_type: str, demand_id: Optional[int], results: list[DeliveryResult]) -> None:
        if self._session_factory is None:
            return
        db = self._session_factory()
        try:
            for r in results:
                db.add(AlertLog(alert_type=alert_type, channel=r.channel, message=text, ok=r.ok, error=r.error, demand_id=demand_id))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not record alert %s", alert_type)
        finally:
            db.close()
