"""Report statistics over demand records.

``compute_stats`` is a pure function of the records it is given plus the
``now`` it is handed (or the wall clock). It never touches the database, so
the scheduler, the HTTP previews and the tests all share it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from app.core.clock import Clock, system_clock
from app.db.models.demand import DemandStatus, Priority, compute_pending, derive_status

RECENT_LIMIT = 10
HIGH_PRIORITY_LIMIT = 10
TREND_MONTHS = 6
LAST_DAYS_WINDOW = 7


@dataclass(frozen=True)
class MonthBucket:
    year: int
    month: int
    count: int

    @property
    def label(self) -> str:
        return date(self.year, self.month, 1).strftime("%b %Y")


@dataclass(frozen=True)
class RecordSummary:
    id: Any
    project: str
    demand_no: str
    item: str
    priority: str
    status: str
    demanded_qty: float
    supplied_qty: float
    pending_qty: float
    created_at: Optional[datetime]
    due_date: Optional[date]


@dataclass(frozen=True)
class ReportStats:
    generated_at: datetime
    total: int = 0
    pending: int = 0
    partially_supplied: int = 0
    supplied: int = 0
    delayed: int = 0
    by_priority: dict = field(default_factory=lambda: {p.value: 0 for p in Priority})
    by_project: dict = field(default_factory=dict)
    today_count: int = 0
    last_7_days_count: int = 0
    total_demanded_qty: float = 0.0
    total_supplied_qty: float = 0.0
    total_pending_qty: float = 0.0
    recent_records: tuple = ()
    high_priority_pending: tuple = ()
    monthly_trend: tuple = ()

    @property
    def completion_pct(self) -> int:
        if not self.total:
            return 0
        return round(self.supplied / self.total * 100)

    def to_dict(self) -> dict:
        return {
            "generated_at": self.generated_at.isoformat(),
            "total": self.total,
            "pending": self.pending,
            "partially_supplied": self.partially_supplied,
            "supplied": self.supplied,
            "delayed": self.delayed,
            "completion_pct": self.completion_pct,
            "by_priority": dict(self.by_priority),
            "by_project": dict(self.by_project),
            "today_count": self.today_count,
            "last_7_days_count": self.last_7_days_count,
            "total_demanded_qty": self.total_demanded_qty,
            "total_supplied_qty": self.total_supplied_qty,
            "total_pending_qty": self.total_pending_qty,
            "recent_records": [_summary_dict(r) for r in self.recent_records],
            "high_priority_pending": [_summary_dict(r) for r in self.high_priority_pending],
            "monthly_trend": [
                {"year": b.year, "month": b.month, "label": b.label, "count": b.count}
                for b in self.monthly_trend
            ],
        }


def _summary_dict(r: RecordSummary) -> dict:
    return {
        "id": r.id,
        "project": r.project,
        "demand_no": r.demand_no,
        "item": r.item,
        "priority": r.priority,
        "status": r.status,
        "demanded_qty": r.demanded_qty,
        "supplied_qty": r.supplied_qty,
        "pending_qty": r.pending_qty,
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "due_date": r.due_date.isoformat() if r.due_date else None,
    }


def _get(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def _as_datetime(value: Any) -> Optional[datetime]:
    """Best-effort timestamp coercion; anything unusable becomes None."""
    if isinstance(value, datetime):
        # Aware timestamps are compared in server-local time
        return value.astimezone().replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return _as_datetime(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _trend_months(now: datetime) -> list[tuple[int, int]]:
    """(year, month) for the current month and the months before it, oldest first."""
    months = []
    year, month = now.year, now.month
    for _ in range(TREND_MONTHS):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def _summarize(record: Any, created_at: Optional[datetime], status: str) -> RecordSummary:
    demanded = _as_float(_get(record, "demanded_qty"))
    supplied = _as_float(_get(record, "supplied_qty"))
    due = _get(record, "due_date")
    return RecordSummary(
        id=_get(record, "id"),
        project=_get(record, "project") or "",
        demand_no=_get(record, "demand_no") or "",
        item=_get(record, "item") or "",
        priority=_get(record, "priority") or Priority.MEDIUM.value,
        status=status,
        demanded_qty=demanded,
        supplied_qty=supplied,
        pending_qty=compute_pending(demanded, supplied),
        created_at=created_at,
        due_date=due if isinstance(due, date) else None,
    )


def compute_stats(records: Iterable[Any], now: Optional[datetime] = None, clock: Clock = system_clock) -> ReportStats:
    now = now or clock()
    today = now.date()
    week_start = now - timedelta(days=LAST_DAYS_WINDOW)
    trend = {ym: 0 for ym in _trend_months(now)}

    total = pending = partial = supplied = delayed = 0
    today_count = last_7 = 0
    by_priority = {p.value: 0 for p in Priority}
    by_project: dict[str, int] = {}
    sum_demanded = sum_supplied = sum_pending = 0.0
    dated: list[tuple[datetime, RecordSummary]] = []
    undated: list[RecordSummary] = []
    urgent: list[RecordSummary] = []

    for record in records:
        total += 1
        demanded = _as_float(_get(record, "demanded_qty"))
        supplied_qty = _as_float(_get(record, "supplied_qty"))
        derived = derive_status(demanded, supplied_qty)
        is_delayed = bool(_get(record, "delayed", False))

        if is_delayed:
            delayed += 1
        elif derived is DemandStatus.PENDING:
            pending += 1
        elif derived is DemandStatus.PARTIALLY_SUPPLIED:
            partial += 1
        else:
            supplied += 1

        priority = _get(record, "priority") or Priority.MEDIUM.value
        if priority in by_priority:
            by_priority[priority] += 1
        project = _get(record, "project") or "Unassigned"
        by_project[project] = by_project.get(project, 0) + 1

        pending_qty = compute_pending(demanded, supplied_qty)
        sum_demanded += demanded
        sum_supplied += supplied_qty
        sum_pending += pending_qty

        created_at = _as_datetime(_get(record, "created_at"))
        status = DemandStatus.DELAYED.value if is_delayed else derived.value
        summary = _summarize(record, created_at, status)

        if created_at is not None:
            dated.append((created_at, summary))
            if created_at.date() == today:
                today_count += 1
            if created_at >= week_start:
                last_7 += 1
            key = (created_at.year, created_at.month)
            if key in trend:
                trend[key] += 1
        else:
            undated.append(summary)

        if priority == Priority.HIGH.value and pending_qty > 0:
            urgent.append(summary)

    dated.sort(key=lambda pair: pair[0], reverse=True)
    recent = [s for _, s in dated] + undated
    # Earliest due date first; demands without one go last
    urgent.sort(key=lambda s: (s.due_date is None, s.due_date or date.max))

    return ReportStats(
        generated_at=now,
        total=total,
        pending=pending,
        partially_supplied=partial,
        supplied=supplied,
        delayed=delayed,
        by_priority=by_priority,
        by_project=dict(sorted(by_project.items())),
        today_count=today_count,
        last_7_days_count=last_7,
        total_demanded_qty=sum_demanded,
        total_supplied_qty=sum_supplied,
        total_pending_qty=sum_pending,
        recent_records=tuple(recent[:RECENT_LIMIT]),
        high_priority_pending=tuple(urgent[:HIGH_PRIORITY_LIMIT]),
        monthly_trend=tuple(MonthBucket(year=y, month=m, count=c) for (y, m), c in trend.items()),
    )
