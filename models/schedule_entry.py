from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional

from pydantic import field_serializer
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime


class ScheduleCategory(str, Enum):
    WORK = "Work"
    DAY_OFF = "DayOff"
    SICK = "Sick"
    VACATION = "Vacation"
    TRAINING = "Training"


class ScheduleEntry(SQLModel, table=True):
    """
    A manager-assigned planned shift. One table for every worker; attendance
    sessions are tracked separately and never linked to these rows.
    """
    __tablename__ = "schedule_entry"

    __table_args__ = (
        Index("ix_schedule_entry_worker_id", "worker_id"),
        Index("ix_schedule_entry_worker_id_shift_date", "worker_id", "shift_date"),
        # Roster lookups: who is at site X on day Y
        Index("ix_schedule_entry_site_id_shift_date", "site_id", "shift_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    worker_id: str
    shift_date: date
    start_time: time
    end_time: time

    # Site reference is detached (set to None) when the site is deleted;
    # the name snapshot keeps history readable
    site_id: Optional[int] = Field(default=None, foreign_key="site.id")
    site_name_snapshot: Optional[str] = Field(default=None)

    category: ScheduleCategory = Field(default=ScheduleCategory.WORK)
    notes: Optional[str] = Field(default=None)

    # Administrative
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_by: str  # Manager who assigned the entry
    updated_at: Optional[datetime] = Field(default=None)
    updated_by: Optional[str] = Field(default=None)

    @field_serializer("created_at", "updated_at")
    def serialize_audit_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)
