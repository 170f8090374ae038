from __future__ import annotations

import os
from datetime import datetime
from typing import Optional

from app.core.clock import Clock, system_clock
from services.reports.stats import ReportStats

APP_NAME = "Demand-Supply Dashboard"
APP_PUBLIC_BASE_URL = (os.getenv("APP_PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/")

NO_DATA_TEXT = (
    "📊 *DAILY DEMAND-SUPPLY REPORT*\n\n"
    "No demands have been recorded yet.\n\n"
    f"📊 {APP_NAME}"
)

TREND_BAR_WIDTH = 20


def _footer(now: datetime) -> str:
    return f"🕒 {now.strftime('%I:%M %p')}\n📊 {APP_NAME}\n🔗 {APP_PUBLIC_BASE_URL}"


def _qty(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"


def format_summary(stats: ReportStats, now: Optional[datetime] = None, clock: Clock = system_clock) -> str:
    if stats.total == 0:
        return NO_DATA_TEXT

    now = now or clock()
    lines = [
        "📊 *DAILY DEMAND-SUPPLY REPORT*",
        f"📅 {now.strftime('%d %b %Y, %I:%M %p')}",
        "",
        f"Total Demands: {stats.total}",
        f"✅ Supplied: {stats.supplied}",
        f"⏳ Pending: {stats.pending}",
        f"🔴 Delayed: {stats.delayed}",
    ]
    if stats.partially_supplied:
        lines.append(f"🟡 Partially Supplied: {stats.partially_supplied}")
    lines += [
        f"📈 Completion: {stats.completion_pct}%",
        "",
        f"Pending Qty: {_qty(stats.total_pending_qty)} of {_qty(stats.total_demanded_qty)}",
    ]
    if stats.high_priority_pending:
        lines.append(f"❗ High priority pending: {len(stats.high_priority_pending)}")
    lines += ["", f"📊 {APP_NAME}"]
    return "\n".join(lines)


def format_trend(stats: ReportStats) -> str:
    """Monthly demand counts as a text bar chart."""
    if not stats.monthly_trend:
        return "📈 *MONTHLY DEMAND TREND*\n\nNo data."
    peak = max(b.count for b in stats.monthly_trend) or 1
    lines = ["📈 *MONTHLY DEMAND TREND*", ""]
    for bucket in stats.monthly_trend:
        bar = "█" * round(bucket.count / peak * TREND_BAR_WIDTH)
        lines.append(f"{bucket.label:<9} {bar} {bucket.count}")
    return "\n".join(lines)


def format_alert(alert_type: str, data: dict, now: Optional[datetime] = None, clock: Clock = system_clock) -> str:
    now = now or clock()
    d = data or {}

    if alert_type == "NEW_DEMAND":
        body = (
            "📋 *NEW DEMAND*\n\n"
            f"Item: {d.get('item') or 'N/A'}\n"
            f"Quantity: {d.get('quantity') or 0}\n"
            f"Project: {d.get('project') or 'N/A'}\n"
            f"Demand No: {d.get('demand_no') or 'N/A'}\n"
            f"Priority: {d.get('priority') or 'Medium'}\n"
        )
    elif alert_type == "URGENT_DEMAND":
        body = (
            "🔴 *URGENT! DEMAND PENDING*\n\n"
            f"Item: {d.get('item') or 'N/A'}\n"
            f"Pending Qty: {d.get('pending_qty') or 0}\n"
            f"Due Date: {d.get('due_date') or 'ASAP'}\n"
            f"Project: {d.get('project') or 'N/A'}\n"
            f"Demand No: {d.get('demand_no') or 'N/A'}\n"
            "❗ IMMEDIATE ACTION REQUIRED\n"
        )
    elif alert_type == "SUPPLY_RECEIVED":
        body = (
            "✅ *SUPPLY UPDATE*\n\n"
            f"Item: {d.get('item') or 'N/A'}\n"
            f"Received: {d.get('quantity_received') or 0}\n"
            f"Total Supplied: {d.get('supplied_qty') or 0}\n"
            f"Pending Now: {d.get('pending_qty') or 0}\n"
            f"Status: {d.get('status') or 'N/A'}\n"
        )
    elif alert_type == "DEMAND_FULFILLED":
        body = (
            "🎉 *DEMAND COMPLETED*\n\n"
            f"Item: {d.get('item') or 'N/A'}\n"
            f"Quantity: {d.get('supplied_qty') or 0}\n"
            f"Demand No: {d.get('demand_no') or 'N/A'}\n"
            f"Project: {d.get('project') or 'N/A'}\n"
            "Status: Fully Supplied ✅\n"
        )
    else:
        body = f"📢 *ALERT*\n\n{d.get('message') or 'System alert'}\n"

    return f"{body}\n{_footer(now)}"


def format_test_message(now: Optional[datetime] = None, clock: Clock = system_clock) -> str:
    now = now or clock()
    return f"✅ Test from {APP_NAME}\nTime: {now.strftime('%d %b %Y, %I:%M %p')}\nStatus: System is working!"
