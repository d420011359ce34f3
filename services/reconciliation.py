"""
Read-side projection over schedule entries: day buckets, hour totals,
Upcoming/Ongoing/Completed status, Saturday-anchored week numbers, and the
free-text filter / sort used by the schedule screens.

Nothing here touches the database or caches results. Status depends on the
wall clock, so every call recomputes it from the `now` it is given.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel

from core.exceptions import ValidationError
from models.schedule_entry import ScheduleCategory, ScheduleEntry
from utils.datetime_helpers import (
    combine_local,
    display_tz,
    format_12h,
    format_dmy,
    weekday_name,
)


class ShiftStatus(str, Enum):
    UPCOMING = "Upcoming"
    ONGOING = "Ongoing"
    COMPLETED = "Completed"


STATUS_ORDER = {
    ShiftStatus.UPCOMING: 0,
    ShiftStatus.ONGOING: 1,
    ShiftStatus.COMPLETED: 2,
}

SORT_KEYS = ("date", "startTime", "endTime", "siteName", "derivedStatus")

# Python's weekday(): Monday=0 ... Saturday=5
WEEK_ANCHOR_WEEKDAY = 5


class ScheduleRow(BaseModel):
    id: int
    worker_id: str
    shift_date: date
    day_name: str
    display_date: str
    week_number: int
    start_time: time
    end_time: time
    start_12h: str
    end_12h: str
    site_id: Optional[int] = None
    site_name: Optional[str] = None
    category: ScheduleCategory
    notes: Optional[str] = None
    hours: float
    status: ShiftStatus


class DaySummary(BaseModel):
    shift_date: date
    day_name: str
    display_date: str
    week_number: int
    entries: List[ScheduleRow]
    total_hours: float


class ScheduleSummary(BaseModel):
    generated_at: datetime
    today: date
    week_start: date
    week_number: int
    today_total_hours: float
    total_hours: float
    rows: List[ScheduleRow]
    days: List[DaySummary]


def entry_hours(entry: ScheduleEntry) -> float:
    """Length of one entry in hours; an entry ending at or before its start counts 0."""
    anchor = date(2000, 1, 1)
    span = datetime.combine(anchor, entry.end_time) - datetime.combine(anchor, entry.start_time)
    return max(0.0, span.total_seconds() / 3600)


def total_hours(entries: Iterable[ScheduleEntry]) -> float:
    return sum((entry_hours(entry) for entry in entries), 0.0)


def _aware_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(display_tz())
    if now.tzinfo is None:
        return now.replace(tzinfo=display_tz())
    return now


def classify(entry: ScheduleEntry, now: datetime) -> ShiftStatus:
    now = _aware_now(now)
    start = combine_local(entry.shift_date, entry.start_time)
    end = combine_local(entry.shift_date, entry.end_time)
    if now < start:
        return ShiftStatus.UPCOMING
    if now <= end:
        return ShiftStatus.ONGOING
    return ShiftStatus.COMPLETED


def week_start(day: date) -> date:
    """The Saturday on or before `day`."""
    return day - timedelta(days=(day.weekday() - WEEK_ANCHOR_WEEKDAY) % 7)


def week_number(day: date) -> int:
    """
    Week of the year with weeks starting on Saturday. Week 1 is the week that
    contains January 1st, so numbering restarts every year.
    """
    first = week_start(date(day.year, 1, 1))
    return (week_start(day) - first).days // 7 + 1


def filter_entries(entries: Iterable[ScheduleEntry], text: Optional[str]) -> List[ScheduleEntry]:
    entries = list(entries)
    needle = (text or "").strip().lower()
    if not needle:
        return entries

    def haystack(entry: ScheduleEntry) -> str:
        return " ".join(
            [
                entry.shift_date.isoformat(),
                format_dmy(entry.shift_date),
                weekday_name(entry.shift_date),
                entry.site_name_snapshot or "",
            ]
        ).lower()

    return [entry for entry in entries if needle in haystack(entry)]


def sort_entries(
    entries: Iterable[ScheduleEntry],
    key: str = "date",
    descending: bool = False,
    now: Optional[datetime] = None,
) -> List[ScheduleEntry]:
    if key not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key '{key}'. Use one of: {', '.join(SORT_KEYS)}.")

    now = _aware_now(now)
    key_funcs = {
        "date": lambda e: e.shift_date,
        "startTime": lambda e: e.start_time,
        "endTime": lambda e: e.end_time,
        "siteName": lambda e: (e.site_name_snapshot or "").lower(),
        "derivedStatus": lambda e: STATUS_ORDER[classify(e, now)],
    }
    # sorted() is stable in both directions, so ties keep their incoming order
    return sorted(entries, key=key_funcs[key], reverse=descending)


def to_row(entry: ScheduleEntry, now: datetime) -> ScheduleRow:
    return ScheduleRow(
        id=entry.id,
        worker_id=entry.worker_id,
        shift_date=entry.shift_date,
        day_name=weekday_name(entry.shift_date),
        display_date=format_dmy(entry.shift_date),
        week_number=week_number(entry.shift_date),
        start_time=entry.start_time,
        end_time=entry.end_time,
        start_12h=format_12h(entry.start_time),
        end_12h=format_12h(entry.end_time),
        site_id=entry.site_id,
        site_name=entry.site_name_snapshot,
        category=entry.category,
        notes=entry.notes,
        hours=round(entry_hours(entry), 2),
        status=classify(entry, now),
    )


def group_by_date(entries: Iterable[ScheduleEntry], now: Optional[datetime] = None) -> List[DaySummary]:
    now = _aware_now(now)
    buckets = defaultdict(list)
    for entry in entries:
        buckets[entry.shift_date].append(entry)

    days = []
    for day in sorted(buckets):
        day_entries = sorted(buckets[day], key=lambda e: e.start_time)
        days.append(
            DaySummary(
                shift_date=day,
                day_name=weekday_name(day),
                display_date=format_dmy(day),
                week_number=week_number(day),
                entries=[to_row(entry, now) for entry in day_entries],
                total_hours=round(total_hours(day_entries), 2),
            )
        )
    return days


def summarize(
    entries: Iterable[ScheduleEntry],
    now: Optional[datetime] = None,
    text: Optional[str] = None,
    sort_key: str = "date",
    descending: bool = False,
) -> ScheduleSummary:
    now = _aware_now(now)
    today = now.astimezone(display_tz()).date()

    visible = filter_entries(entries, text)
    ordered = sort_entries(visible, sort_key, descending, now)

    return ScheduleSummary(
        generated_at=now,
        today=today,
        week_start=week_start(today),
        week_number=week_number(today),
        today_total_hours=round(total_hours(e for e in visible if e.shift_date == today), 2),
        total_hours=round(total_hours(visible), 2),
        rows=[to_row(entry, now) for entry in ordered],
        days=group_by_date(visible, now),
    )
