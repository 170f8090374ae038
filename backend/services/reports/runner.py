from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from app.core.clock import Clock, system_clock
from services.notifications.notifier import DeliveryResult, Notifier
from services.reports.formatter import format_summary, format_trend
from services.reports.stats import ReportStats, compute_stats

logger = logging.getLogger(__name__)

REPORT_ALERT_TYPE = "DAILY_REPORT"
REPORT_SUBJECT = "Daily Demand-Supply Report"


@dataclass
class ReportResult:
    stats: ReportStats
    text: str
    deliveries: list[DeliveryResult] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return any(d.ok for d in self.deliveries)

    def to_dict(self) -> dict:
        return {
            "generated_at": self.stats.generated_at.isoformat(),
            "total": self.stats.total,
            "text": self.text,
            "deliveries": [d.to_dict() for d in self.deliveries],
        }


class ReportRunner:
    """Aggregate, render and hand the daily report to the notifier.

    ``load_records`` may raise ``DataReadError``; it is not caught here so the
    caller decides between failing the request and skipping a cycle.
    """

    def __init__(self, load_records: Callable[[], Sequence[Any]], notifier: Notifier, clock: Clock = system_clock):
        self._load_records = load_records
        self.notifier = notifier
        self._clock = clock

    def render(self, stats: ReportStats, *, send_summary: bool = True, send_graph: bool = False) -> str:
        parts = []
        if send_summary:
            parts.append(format_summary(stats, now=stats.generated_at))
        # No trend to draw before the first demand
        if send_graph and stats.total:
            parts.append(format_trend(stats))
        return "\n\n".join(parts)

    def run(self, *, send_summary: bool = True, send_graph: bool = False) -> ReportResult:
        records = self._load_records()
        stats = compute_stats(records, now=self._clock())
        text = self.render(stats, send_summary=send_summary, send_graph=send_graph)
        if not text:
            logger.info("Daily report has no artifacts enabled; nothing sent")
            return ReportResult(stats=stats, text="")
        deliveries = self.notifier.broadcast(text, alert_type=REPORT_ALERT_TYPE, subject=REPORT_SUBJECT)
        return ReportResult(stats=stats, text=text, deliveries=deliveries)
