from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_serializer
from sqlalchemy import text
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime
from utils.device import DeviceClass


# Defines the Structure of Data for a Check-In / Check-Out Call
class PunchRequest(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    # Optional; derived from the User-Agent header when the client doesn't say
    device_class: DeviceClass | None = None


# Defines a Table "attendance_session": one row per check-in/check-out pair
class AttendanceSession(SQLModel, table=True):
    __tablename__ = "attendance_session"

    __table_args__ = (
        # Index for queries filtering by worker_id
        Index("ix_attendance_session_worker_id", "worker_id"),
        # Composite index for the per-worker history, newest first
        Index("ix_attendance_session_worker_id_check_in", "worker_id", "check_in_time"),
        # At most one open session per worker
        Index(
            "ux_attendance_session_open_worker",
            "worker_id",
            unique=True,
            sqlite_where=text("check_out_time IS NULL"),
            postgresql_where=text("check_out_time IS NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    worker_id: str

    check_in_time: datetime
    check_in_latitude: Optional[float] = None
    check_in_longitude: Optional[float] = None
    check_in_site_name: Optional[str] = None
    check_in_device: DeviceClass = Field(default=DeviceClass.UNKNOWN)

    check_out_time: Optional[datetime] = None
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    check_out_site_name: Optional[str] = None
    check_out_device: Optional[DeviceClass] = None

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None


# --- Read models: what a session looks like in API responses ---


class PunchFacet(BaseModel):
    time: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    resolved_site_name: Optional[str] = None
    device_class: Optional[DeviceClass] = None
    # Display-only projections, computed on read
    time_12h: str
    day: date
    display_date: str
    map_link: Optional[str] = None

    @field_serializer("time")
    def serialize_time(self, dt: datetime) -> str:
        """Ensure time is formatted as UTC with Z suffix"""
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()


class AttendanceSessionRead(BaseModel):
    id: int
    worker_id: str
    check_in: PunchFacet
    check_out: Optional[PunchFacet] = None
    is_open: bool
    duration_hours: Optional[float] = None


# Worked (closed sessions) vs scheduled (assigned entries) hours for one month
class AttendanceSummary(BaseModel):
    worker_id: str
    month: str  # YYYY-MM, in the display timezone
    current_status: str  # "In" while a session is open, else "Out"
    current_site_name: Optional[str] = None
    last_check_in: Optional[datetime] = None
    session_count: int
    worked_hours: float
    scheduled_entry_count: int
    scheduled_hours: float
    difference_hours: float  # worked - scheduled

    @field_serializer("last_check_in")
    def serialize_last_check_in(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)
