from .attendance_session import (
    AttendanceSession,
    AttendanceSessionRead,
    PunchFacet,
    PunchRequest,
)
from .schedule_entry import ScheduleCategory, ScheduleEntry
from .site import Site
