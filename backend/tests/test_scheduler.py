import threading
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import DataReadError, ValidationError
from app.db.models.alerts import AlertLog
from app.db.session import SessionLocal
from conftest import FakeChannel, FixedClock
from services.demand.service import create_demand, load_all_demands
from services.notifications.notifier import Notifier
from services.reports.runner import ReportRunner
from services.reports.scheduler import DAILY_JOB, SCHEDULE_KEY, ReportScheduler, next_occurrence
from services.reports.store import SettingStore

NOW = datetime(2026, 10, 19, 8, 0)


@pytest.fixture
def clock():
    return FixedClock(NOW)


def _scheduler(loop, clock, channels, load=None):
    notifier = Notifier(channels, session_factory=SessionLocal)
    runner = ReportRunner(load or (lambda: load_all_demands(SessionLocal)), notifier, clock=clock)
    return ReportScheduler(SettingStore(SessionLocal), runner, clock=clock, loop=loop)


def test_next_occurrence_today_or_tomorrow():
    assert next_occurrence(NOW, 9, 0) == datetime(2026, 10, 19, 9, 0)
    assert next_occurrence(NOW, 8, 0) == datetime(2026, 10, 20, 8, 0)
    assert next_occurrence(NOW, 7, 59) == datetime(2026, 10, 20, 7, 59)


def test_enable_registers_single_job(loop, clock):
    s = _scheduler(loop, clock, [FakeChannel()])
    first = s.update_schedule({"enabled": True, "hour": 9, "minute": 30})
    assert first.next_run == datetime(2026, 10, 19, 9, 30)
    handle = s.jobs[DAILY_JOB]

    second = s.update_schedule({"enabled": True})
    assert len(s.jobs) == 1
    assert handle.cancelled()
    assert not s.jobs[DAILY_JOB].cancelled()
    assert second.next_run == first.next_run


def test_disable_cancels_job(loop, clock):
    s = _scheduler(loop, clock, [FakeChannel()])
    s.update_schedule({"enabled": True, "hour": 18})
    handle = s.jobs[DAILY_JOB]
    schedule = s.update_schedule({"enabled": False})
    assert s.jobs == {}
    assert handle.cancelled()
    assert schedule.next_run is None


@pytest.mark.parametrize("patch", [{"hour": 25}, {"hour": -1}, {"minute": 60}, {"hour": "9"}, {"enabled": "yes"}, {"color": "red"}])
def test_invalid_patch_leaves_schedule_untouched(loop, clock, patch):
    s = _scheduler(loop, clock, [FakeChannel()])
    before = s.update_schedule({"enabled": True, "hour": 10, "minute": 15})
    handle = s.jobs[DAILY_JOB]
    with pytest.raises(ValidationError):
        s.update_schedule(patch)
    assert s.schedule == before
    assert s.jobs[DAILY_JOB] is handle
    assert SettingStore(SessionLocal).get(SCHEDULE_KEY)["hour"] == 10


def test_run_fields_in_patch_are_ignored(loop, clock):
    s = _scheduler(loop, clock, [FakeChannel()])
    schedule = s.update_schedule({"last_run": "2020-01-01T00:00:00", "minute": 5})
    assert schedule.last_run is None
    assert schedule.minute == 5


def test_schedule_is_persisted_and_restored(loop, clock):
    s = _scheduler(loop, clock, [FakeChannel()])
    s.update_schedule({"enabled": True, "hour": 7, "minute": 45, "send_graph": False})
    s.shutdown()
    assert s.jobs == {}

    restored = _scheduler(loop, clock, [FakeChannel()])
    schedule = restored.start()
    assert (schedule.enabled, schedule.hour, schedule.minute, schedule.send_graph) == (True, 7, 45, False)
    assert schedule.next_run == datetime(2026, 10, 20, 7, 45)
    assert len(restored.jobs) == 1


def test_timer_rearms_for_next_day_and_sends(loop, clock, db):
    create_demand(db, project="Site A", demand_no="D-1", item="Cement", demanded_qty=10)
    channel = FakeChannel()
    s = _scheduler(loop, clock, [channel])
    s.update_schedule({"enabled": True, "hour": 9, "minute": 0})
    first = s.jobs[DAILY_JOB]

    s._on_timer()
    assert first.cancelled()
    assert len(s.jobs) == 1
    assert s.schedule.next_run == datetime(2026, 10, 20, 9, 0)

    loop.run_until_complete(s.wait_idle())
    assert len(channel.sent) == 1
    text, subject = channel.sent[0]
    assert "Total Demands: 1" in text
    assert "MONTHLY DEMAND TREND" in text
    assert subject == "Daily Demand-Supply Report"
    assert s.schedule.last_run == NOW


def test_channel_failure_still_records_attempt(loop, clock, db):
    create_demand(db, project="Site A", demand_no="D-1", item="Cement", demanded_qty=10)
    good, bad = FakeChannel("email"), FakeChannel("whatsapp", fail=True)
    s = _scheduler(loop, clock, [bad, good])
    s.update_schedule({"enabled": True})

    result = s.run_now()
    assert [d.ok for d in result.deliveries] == [False, True]
    assert len(good.sent) == 1
    assert s.schedule.last_run == NOW
    assert len(s.jobs) == 1

    rows = db.query(AlertLog).filter(AlertLog.alert_type == "DAILY_REPORT").all()
    assert sorted((r.channel, r.ok) for r in rows) == [("email", True), ("whatsapp", False)]


def test_unreadable_store_skips_scheduled_run_but_fails_manual_run(loop, clock):
    def broken():
        raise DataReadError("disk gone")

    channel = FakeChannel()
    s = _scheduler(loop, clock, [channel], load=broken)
    s.update_schedule({"enabled": True})

    assert s.run_scheduled() is None
    assert s.schedule.last_run is None
    with pytest.raises(DataReadError):
        s.run_now()
    assert channel.sent == []
    assert len(s.jobs) == 1


def test_summary_only_when_graph_disabled(loop, clock):
    channel = FakeChannel()
    s = _scheduler(loop, clock, [channel])
    s.update_schedule({"send_graph": False})
    s.run_now()
    text, _ = channel.sent[0]
    assert "No demands have been recorded yet." in text
    assert "MONTHLY DEMAND TREND" not in text


class RecordingStore(SettingStore):
    def __init__(self, fail=False):
        super().__init__(SessionLocal)
        self.fail = fail
        self.put_threads = []

    def put(self, key, value):
        self.put_threads.append(threading.get_ident())
        if self.fail:
            raise OperationalError("UPDATE sys_setting", {}, Exception("database is locked"))
        super().put(key, value)


def test_async_update_writes_off_the_loop_thread(loop, clock):
    store = RecordingStore()
    runner = ReportRunner(lambda: [], Notifier([FakeChannel()]), clock=clock)
    s = ReportScheduler(store, runner, clock=clock, loop=loop)

    updated = loop.run_until_complete(s.update_schedule_async({"enabled": True, "hour": 9}))

    assert updated.next_run == datetime(2026, 10, 19, 9, 0)
    assert list(s.jobs) == [DAILY_JOB]
    assert store.put_threads and threading.get_ident() not in store.put_threads
    assert store.get(SCHEDULE_KEY)["enabled"] is True


def test_async_update_failed_write_leaves_state_untouched(loop, clock):
    store = RecordingStore(fail=True)
    runner = ReportRunner(lambda: [], Notifier([FakeChannel()]), clock=clock)
    s = ReportScheduler(store, runner, clock=clock, loop=loop)

    with pytest.raises(OperationalError):
        loop.run_until_complete(s.update_schedule_async({"enabled": True}))
    assert s.schedule.enabled is False
    assert s.jobs == {}

    with pytest.raises(ValidationError):
        loop.run_until_complete(s.update_schedule_async({"hour": 25}))
    assert len(store.put_threads) == 1
