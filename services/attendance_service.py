import logging
import threading
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.exceptions import ConflictError, NotFoundError, ValidationError
from models.attendance_session import (
    AttendanceSummary,
    AttendanceSession,
    AttendanceSessionRead,
    PunchFacet,
)
from services.broadcaster import MANAGERS_TOPIC, broadcaster, worker_topic
from services.reconciliation import total_hours
from services.schedule_service import ScheduleService
from services.site_registry import SiteRegistry
from utils.datetime_helpers import ensure_utc, format_12h, format_dmy, to_display
from utils.device import DeviceClass
from utils.geofence import Coordinates

logger = logging.getLogger(__name__)

OPEN_SESSION_EXISTS = "Open shift already exists. Please check out first."
NO_OPEN_SESSION = "No open shift to check out."

# One lock per worker: the second of two racing check-ins waits, then sees
# the first one's open session. The partial unique index on the table backs
# this up across processes. Locks are kept for the life of the process, one
# per worker who has punched; fine for a bounded workforce.
_worker_locks: dict[str, threading.Lock] = {}
_worker_locks_guard = threading.Lock()


def worker_lock(worker_id: str) -> threading.Lock:
    with _worker_locks_guard:
        lock = _worker_locks.get(worker_id)
        if lock is None:
            lock = threading.Lock()
            _worker_locks[worker_id] = lock
        return lock


def _facet(
    moment: datetime,
    latitude: Optional[float],
    longitude: Optional[float],
    site_name: Optional[str],
    device: Optional[DeviceClass],
) -> PunchFacet:
    local = to_display(moment)
    coordinates = Coordinates.from_raw(latitude, longitude)
    return PunchFacet(
        time=ensure_utc(moment),
        latitude=latitude,
        longitude=longitude,
        resolved_site_name=site_name,
        device_class=device,
        time_12h=format_12h(moment),
        day=local.date(),
        display_date=format_dmy(local.date()),
        # Unresolved punches show the raw location instead of a site name
        map_link=coordinates.map_link() if coordinates and not site_name else None,
    )


def session_hours(record: AttendanceSession) -> float:
    """Hours between check-in and check-out; an open session counts 0."""
    if record.check_out_time is None:
        return 0.0
    elapsed = ensure_utc(record.check_out_time) - ensure_utc(record.check_in_time)
    return max(0.0, elapsed.total_seconds() / 3600)


def parse_month(value: Optional[str], today: date) -> date:
    """'YYYY-MM' -> first day of that month; None means the current month."""
    if value is None:
        return today.replace(day=1)
    try:
        year, month = value.split("-")
        return date(int(year), int(month), 1)
    except ValueError:
        raise ValidationError(f"Invalid month '{value}'. Use YYYY-MM.")


def present_session(record: AttendanceSession) -> AttendanceSessionRead:
    """Attach the display-only fields (12h clock, date projections, duration)."""
    check_in = _facet(
        record.check_in_time,
        record.check_in_latitude,
        record.check_in_longitude,
        record.check_in_site_name,
        record.check_in_device,
    )
    check_out = None
    duration_hours = None
    if record.check_out_time is not None:
        check_out = _facet(
            record.check_out_time,
            record.check_out_latitude,
            record.check_out_longitude,
            record.check_out_site_name,
            record.check_out_device,
        )
        duration_hours = round(session_hours(record), 2)

    return AttendanceSessionRead(
        id=record.id,
        worker_id=record.worker_id,
        check_in=check_in,
        check_out=check_out,
        is_open=record.is_open,
        duration_hours=duration_hours,
    )


class AttendanceService:

    @staticmethod
    def get_open_session(session: Session, worker_id: str) -> Optional[AttendanceSession]:
        return session.exec(
            select(AttendanceSession)
            .where(AttendanceSession.worker_id == worker_id)
            .where(AttendanceSession.check_out_time == None)  # noqa: E711
            .order_by(AttendanceSession.id.desc())
        ).first()

    @staticmethod
    def check_in(
        session: Session,
        worker_id: str,
        coordinates: Optional[Coordinates],
        device_class: DeviceClass = DeviceClass.UNKNOWN,
        at: Optional[datetime] = None,
    ) -> AttendanceSession:
        # Capture the time of the request for consistency
        request_time = ensure_utc(at) if at else datetime.now(timezone.utc)

        with worker_lock(worker_id):
            if AttendanceService.get_open_session(session, worker_id):
                logger.warning("Worker %s tried to check in with a shift already open", worker_id)
                raise ConflictError(OPEN_SESSION_EXISTS)

            site = SiteRegistry.resolve(session, coordinates)

            # The whole row, resolved site included, goes in with one commit
            record = AttendanceSession(
                worker_id=worker_id,
                check_in_time=request_time,
                check_in_latitude=coordinates.latitude if coordinates else None,
                check_in_longitude=coordinates.longitude if coordinates else None,
                check_in_site_name=site.name if site else None,
                check_in_device=device_class,
            )
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                # Another process won the race for this worker
                session.rollback()
                logger.warning("Duplicate open shift for worker %s rejected by the database", worker_id)
                raise ConflictError(OPEN_SESSION_EXISTS)
            session.refresh(record)

            logger.info(
                "Worker %s checked in (session %s, site %s)",
                worker_id,
                record.id,
                record.check_in_site_name or "unresolved",
            )
            # Still under the lock: a racing check-out can't overtake this event
            broadcaster.publish_many(
                [worker_topic(worker_id), MANAGERS_TOPIC],
                "session-created",
                present_session(record),
            )
        return record

    @staticmethod
    def check_out(
        session: Session,
        worker_id: str,
        coordinates: Optional[Coordinates],
        device_class: DeviceClass = DeviceClass.UNKNOWN,
        at: Optional[datetime] = None,
    ) -> AttendanceSession:
        request_time = ensure_utc(at) if at else datetime.now(timezone.utc)

        with worker_lock(worker_id):
            record = AttendanceService.get_open_session(session, worker_id)
            if not record:
                logger.warning("Worker %s tried to check out with no open shift", worker_id)
                raise NotFoundError(NO_OPEN_SESSION)

            # Check-out may happen somewhere else than check-in
            site = SiteRegistry.resolve(session, coordinates)

            record.check_out_time = request_time
            record.check_out_latitude = coordinates.latitude if coordinates else None
            record.check_out_longitude = coordinates.longitude if coordinates else None
            record.check_out_site_name = site.name if site else None
            record.check_out_device = device_class
            session.add(record)
            session.commit()
            session.refresh(record)

            logger.info(
                "Worker %s checked out (session %s, site %s)",
                worker_id,
                record.id,
                record.check_out_site_name or "unresolved",
            )
            broadcaster.publish_many(
                [worker_topic(worker_id), MANAGERS_TOPIC],
                "session-updated",
                present_session(record),
            )
        return record

    @staticmethod
    def list_sessions(session: Session, worker_id: str) -> list[AttendanceSession]:
        return list(
            session.exec(
                select(AttendanceSession)
                .where(AttendanceSession.worker_id == worker_id)
                .order_by(AttendanceSession.check_in_time.desc(), AttendanceSession.id.desc())
            ).all()
        )

    @staticmethod
    def delete_session(session: Session, session_id: int, actor: Optional[str] = None) -> None:
        record = session.get(AttendanceSession, session_id)
        if not record:
            raise NotFoundError(f"Session with ID {session_id} not found.")

        worker_id = record.worker_id
        session.delete(record)
        session.commit()

        logger.info("User %s deleted session %s of worker %s", actor, session_id, worker_id)
        broadcaster.publish_many(
            [worker_topic(worker_id), MANAGERS_TOPIC],
            "session-deleted",
            {"id": session_id, "worker_id": worker_id},
        )

    @staticmethod
    def summary(
        session: Session,
        worker_id: str,
        month: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttendanceSummary:
        """
        Compare what a worker actually worked in a month against what was
        assigned to them. Only closed sessions count as worked; the open one
        (if any) shows up as the current status and site instead. Sessions
        belong to the month of their check-in, in the display timezone.
        """
        today = to_display(now or datetime.now(timezone.utc)).date()
        first_day = parse_month(month, today)

        def in_month(day: date) -> bool:
            return (day.year, day.month) == (first_day.year, first_day.month)

        sessions = [
            record
            for record in AttendanceService.list_sessions(session, worker_id)
            if in_month(to_display(record.check_in_time).date())
        ]
        closed = [record for record in sessions if not record.is_open]
        entries = [
            entry
            for entry in ScheduleService.list_for_worker(session, worker_id)
            if in_month(entry.shift_date)
        ]

        open_session = AttendanceService.get_open_session(session, worker_id)
        worked = round(sum((session_hours(record) for record in closed), 0.0), 2)
        scheduled = round(total_hours(entries), 2)

        return AttendanceSummary(
            worker_id=worker_id,
            month=first_day.strftime("%Y-%m"),
            current_status="In" if open_session else "Out",
            current_site_name=open_session.check_in_site_name if open_session else None,
            last_check_in=ensure_utc(open_session.check_in_time) if open_session else None,
            session_count=len(closed),
            worked_hours=worked,
            scheduled_entry_count=len(entries),
            scheduled_hours=scheduled,
            difference_hours=round(worked - scheduled, 2),
        )
