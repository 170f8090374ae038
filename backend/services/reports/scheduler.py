"""Daily report scheduling.

One ``ReportScheduler`` is owned by the running app. It holds the current
``ReportSchedule`` and a job registry with at most one entry: an asyncio timer
that fires the report at ``hour:minute`` and re-arms itself 24 hours later.
Every path that replaces the timer cancels the old handle first, on the
calling thread, before registering the new one.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Optional

from app.core.clock import Clock, system_clock
from app.core.errors import DataReadError, ValidationError
from services.reports.runner import ReportResult, ReportRunner
from services.reports.store import SettingStore

logger = logging.getLogger(__name__)

SCHEDULE_KEY = "report_schedule"
DAILY_JOB = "daily_report"
REPEAT_EVERY = timedelta(hours=24)

_BOOL_FIELDS = ("enabled", "send_summary", "send_graph", "send_pdf")
_INT_FIELDS = {"hour": (0, 23), "minute": (0, 59)}
# Owned by the firing logic; silently ignored in patches
_RUN_FIELDS = ("last_run", "next_run")


@dataclass
class ReportSchedule:
    enabled: bool = False
    hour: int = 9
    minute: int = 0
    send_summary: bool = True
    send_graph: bool = True
    send_pdf: bool = False
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        for k in _RUN_FIELDS:
            d[k] = d[k].isoformat() if d[k] else None
        return d

    @classmethod
    def from_dict(cls, raw: dict) -> "ReportSchedule":
        known = {k: v for k, v in (raw or {}).items() if k in cls.__dataclass_fields__}
        for k in _RUN_FIELDS:
            v = known.get(k)
            if isinstance(v, str):
                try:
                    known[k] = datetime.fromisoformat(v)
                except ValueError:
                    known[k] = None
        return cls(**known)


def next_occurrence(now: datetime, hour: int, minute: int) -> datetime:
    """Today at hour:minute if that is still ahead of ``now``, else tomorrow."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def validate_patch(patch: dict) -> dict:
    """Return the fields of ``patch`` that may be applied, or raise ValidationError."""
    clean: dict[str, Any] = {}
    for key, value in (patch or {}).items():
        if key in _RUN_FIELDS:
            continue
        if key in _INT_FIELDS:
            lo, hi = _INT_FIELDS[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{key} must be an integer")
            if not lo <= value <= hi:
                raise ValidationError(f"{key} must be between {lo} and {hi}")
            clean[key] = value
        elif key in _BOOL_FIELDS:
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be true or false")
            clean[key] = value
        else:
            raise ValidationError(f"unknown schedule field: {key}")
    return clean


class ReportScheduler:
    def __init__(
        self,
        store: SettingStore,
        runner: ReportRunner,
        *,
        clock: Clock = system_clock,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self._store = store
        self._runner = runner
        self._clock = clock
        self._loop = loop
        self._schedule = ReportSchedule()
        self._jobs: dict[str, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Future] = set()
        self._lock = threading.RLock()
        self._update_lock = asyncio.Lock()

    @property
    def schedule(self) -> ReportSchedule:
        with self._lock:
            return replace(self._schedule)

    @property
    def jobs(self) -> dict[str, asyncio.TimerHandle]:
        return dict(self._jobs)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    # ---- lifecycle ----
    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> ReportSchedule:
        """Load the persisted schedule and arm it."""
        if loop is not None:
            self._loop = loop
        raw = self._store.get(SCHEDULE_KEY)
        with self._lock:
            self._schedule = ReportSchedule.from_dict(raw) if raw else ReportSchedule()
            self._rearm(self._clock())
            self._store.put(SCHEDULE_KEY, self._schedule.to_dict())
            logger.info("Report scheduler started: %s", self._describe())
            return replace(self._schedule)

    def shutdown(self) -> None:
        with self._lock:
            self._cancel()

    async def wait_idle(self) -> None:
        """Wait for report runs already in flight."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    # ---- mutation ----
    def update_schedule(self, patch: dict) -> ReportSchedule:
        clean = validate_patch(patch)
        with self._lock:
            candidate = self._plan(clean)
            # Persist first so a failed write leaves both state and timer untouched
            self._store.put(SCHEDULE_KEY, candidate.to_dict())
            return self._apply(candidate)

    async def update_schedule_async(self, patch: dict) -> ReportSchedule:
        """Same as ``update_schedule``, with the store write off the event loop.

        Must be awaited on the loop that owns the timer.
        """
        clean = validate_patch(patch)
        async with self._update_lock:
            with self._lock:
                candidate = self._plan(clean)
            await self._get_loop().run_in_executor(None, self._store.put, SCHEDULE_KEY, candidate.to_dict())
            with self._lock:
                return self._apply(candidate)

    def _plan(self, clean: dict) -> ReportSchedule:
        candidate = replace(self._schedule, **clean)
        candidate.next_run = next_occurrence(self._clock(), candidate.hour, candidate.minute) if candidate.enabled else None
        return candidate

    def _apply(self, candidate: ReportSchedule) -> ReportSchedule:
        # A run may have finished while the write was in flight
        candidate.last_run = self._schedule.last_run
        self._schedule = candidate
        self._cancel()
        if candidate.enabled:
            self._register(candidate.next_run, self._clock())
        logger.info("Report schedule updated: %s", self._describe())
        return replace(self._schedule)

    def _describe(self) -> str:
        s = self._schedule
        if not s.enabled:
            return "disabled"
        return f"daily at {s.hour:02d}:{s.minute:02d}, next run {s.next_run:%Y-%m-%d %H:%M}"

    def _cancel(self) -> None:
        handle = self._jobs.pop(DAILY_JOB, None)
        if handle is not None:
            handle.cancel()

    def _register(self, when: datetime, now: datetime) -> None:
        delay = max(0.0, (when - now).total_seconds())
        self._jobs[DAILY_JOB] = self._get_loop().call_later(delay, self._on_timer)

    def _rearm(self, now: datetime) -> None:
        self._cancel()
        if not self._schedule.enabled:
            self._schedule.next_run = None
            return
        self._schedule.next_run = next_occurrence(now, self._schedule.hour, self._schedule.minute)
        self._register(self._schedule.next_run, now)

    # ---- firing ----
    def _on_timer(self) -> None:
        with self._lock:
            now = self._clock()
            nxt = (self._schedule.next_run or now) + REPEAT_EVERY
            while nxt <= now:
                nxt += REPEAT_EVERY
            self._cancel()
            self._schedule.next_run = nxt
            self._register(nxt, now)
        task = self._get_loop().create_task(self._fire())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _fire(self) -> None:
        try:
            await self._get_loop().run_in_executor(None, self.run_scheduled)
        except Exception:
            # The next occurrence is already registered; a bad run must not kill the loop
            logger.exception("Scheduled daily report crashed")

    def run_scheduled(self) -> Optional[ReportResult]:
        try:
            return self.run_now()
        except DataReadError as e:
            logger.error("Daily report skipped, demand store unreadable: %s", e)
            return None

    def run_now(self) -> ReportResult:
        """Send the report immediately. Raises DataReadError if demands cannot be read."""
        settings = self.schedule
        logger.info("Generating daily report")
        result = self._runner.run(send_summary=settings.send_summary, send_graph=settings.send_graph)
        failed = [d.channel for d in result.deliveries if not d.ok]
        if failed:
            logger.warning("Daily report not delivered via: %s", ", ".join(failed))
        with self._lock:
            # Recorded as an attempt even when channels failed
            self._schedule.last_run = self._clock()
            self._store.put(SCHEDULE_KEY, self._schedule.to_dict())
        logger.info("Daily report sent to %d channel(s)", len(result.deliveries) - len(failed))
        return result
