import logging
from collections import defaultdict
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlmodel import Session, select

from core.exceptions import NotFoundError, ValidationError
from models.schedule_entry import ScheduleCategory, ScheduleEntry
from models.site import Site
from services.broadcaster import MANAGERS_TOPIC, broadcaster, worker_topic
from services.reconciliation import entry_hours, total_hours

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("shift_date", "start_time", "end_time", "site_id", "category", "notes")


def _validate_window(start_time: Optional[time], end_time: Optional[time]) -> None:
    if start_time is None or end_time is None:
        raise ValidationError("Missing required fields: start_time and end_time.")
    if end_time <= start_time:
        raise ValidationError("Shift end time must be after its start time.")


def _site_name(session: Session, site_id: Optional[int]) -> Optional[str]:
    if site_id is None:
        return None
    site = session.get(Site, site_id)
    if not site:
        raise NotFoundError(f"Site with ID {site_id} not found.")
    return site.name


def _notify(event: str, entry_worker_id: str, payload) -> None:
    broadcaster.publish_many([worker_topic(entry_worker_id), MANAGERS_TOPIC], event, payload)


class ScheduleService:

    @staticmethod
    def get(session: Session, entry_id: int) -> ScheduleEntry:
        entry = session.get(ScheduleEntry, entry_id)
        if not entry:
            raise NotFoundError(f"Shift with ID {entry_id} not found.")
        return entry

    @staticmethod
    def assign(
        session: Session,
        worker_id: Optional[str],
        shift_date: Optional[date],
        start_time: Optional[time],
        end_time: Optional[time],
        site_id: Optional[int] = None,
        category: ScheduleCategory = ScheduleCategory.WORK,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> ScheduleEntry:
        """
        Put a planned shift on a worker's schedule. Overlapping entries on the
        same day are allowed (split shifts, deliberate double-booking).
        """
        if not worker_id or shift_date is None:
            raise ValidationError("Missing required fields: worker_id and shift_date.")
        _validate_window(start_time, end_time)

        entry = ScheduleEntry(
            worker_id=str(worker_id),
            shift_date=shift_date,
            start_time=start_time,
            end_time=end_time,
            site_id=site_id,
            site_name_snapshot=_site_name(session, site_id),
            category=category or ScheduleCategory.WORK,
            notes=notes,
            created_by=actor or "system",
        )
        session.add(entry)
        session.commit()
        session.refresh(entry)

        logger.info(
            "User %s assigned shift %s to worker %s on %s",
            actor,
            entry.id,
            entry.worker_id,
            entry.shift_date,
        )
        _notify("assigned-shift-created", entry.worker_id, entry)
        return entry

    @staticmethod
    def update(
        session: Session,
        entry_id: int,
        changes: dict,
        actor: Optional[str] = None,
    ) -> ScheduleEntry:
        entry = ScheduleService.get(session, entry_id)

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}.")

        if "shift_date" in changes and changes["shift_date"] is None:
            raise ValidationError("shift_date cannot be cleared.")

        # Validate the entry as it will look after the update
        _validate_window(
            changes.get("start_time", entry.start_time),
            changes.get("end_time", entry.end_time),
        )

        if "site_id" in changes and changes["site_id"] != entry.site_id:
            entry.site_name_snapshot = _site_name(session, changes["site_id"])

        for field in UPDATABLE_FIELDS:
            if field in changes:
                value = changes[field]
                if field == "category" and value is None:
                    value = ScheduleCategory.WORK
                setattr(entry, field, value)

        entry.updated_at = datetime.now(timezone.utc)
        entry.updated_by = actor
        session.add(entry)
        session.commit()
        session.refresh(entry)

        logger.info("User %s updated shift %s of worker %s", actor, entry.id, entry.worker_id)
        _notify("assigned-shift-updated", entry.worker_id, entry)
        return entry

    @staticmethod
    def remove(session: Session, entry_id: int, actor: Optional[str] = None) -> None:
        entry = ScheduleService.get(session, entry_id)
        worker_id = entry.worker_id

        session.delete(entry)
        session.commit()

        logger.info("User %s deleted shift %s of worker %s", actor, entry_id, worker_id)
        # The owning worker's client drops the entry on this event
        _notify("assigned-shift-deleted", worker_id, {"id": entry_id, "worker_id": worker_id})

    @staticmethod
    def remove_day(
        session: Session,
        worker_id: str,
        shift_date: date,
        actor: Optional[str] = None,
    ) -> list[int]:
        entries = session.exec(
            select(ScheduleEntry)
            .where(ScheduleEntry.worker_id == worker_id)
            .where(ScheduleEntry.shift_date == shift_date)
        ).all()
        removed = [entry.id for entry in entries]
        for entry in entries:
            session.delete(entry)
        session.commit()

        logger.info(
            "User %s cleared %d shift(s) of worker %s on %s",
            actor,
            len(removed),
            worker_id,
            shift_date,
        )
        for entry_id in removed:
            _notify("assigned-shift-deleted", worker_id, {"id": entry_id, "worker_id": worker_id})
        return removed

    @staticmethod
    def list_for_worker(session: Session, worker_id: str) -> list[ScheduleEntry]:
        return list(
            session.exec(
                select(ScheduleEntry)
                .where(ScheduleEntry.worker_id == worker_id)
                .order_by(ScheduleEntry.shift_date, ScheduleEntry.start_time, ScheduleEntry.id)
            ).all()
        )

    @staticmethod
    def roster_for_site(session: Session, site_id: int, shift_date: date) -> list[dict]:
        """Who is scheduled at a site on a given day, with hours per entry."""
        if not session.get(Site, site_id):
            raise NotFoundError(f"Site with ID {site_id} not found.")

        entries = session.exec(
            select(ScheduleEntry)
            .where(ScheduleEntry.site_id == site_id)
            .where(ScheduleEntry.shift_date == shift_date)
            .order_by(ScheduleEntry.worker_id, ScheduleEntry.start_time)
        ).all()
        return [
            {
                "entry_id": entry.id,
                "worker_id": entry.worker_id,
                "start_time": entry.start_time,
                "end_time": entry.end_time,
                "category": entry.category,
                "hours": round(entry_hours(entry), 2),
            }
            for entry in entries
        ]

    @staticmethod
    def site_hours_for_day(session: Session, shift_date: date) -> list[dict]:
        """Total scheduled hours per site on a day, sites ordered by name."""
        rows = session.exec(
            select(ScheduleEntry, Site)
            .join(Site, Site.id == ScheduleEntry.site_id)
            .where(ScheduleEntry.shift_date == shift_date)
        ).all()

        by_site = defaultdict(list)
        sites = {}
        for entry, site in rows:
            by_site[site.id].append(entry)
            sites[site.id] = site

        summary = [
            {
                "site_id": site_id,
                "name": sites[site_id].name,
                "external_map_link": sites[site_id].external_map_link,
                "worker_count": len({entry.worker_id for entry in entries}),
                "total_hours": round(total_hours(entries), 2),
            }
            for site_id, entries in by_site.items()
        ]
        return sorted(summary, key=lambda item: (item["name"].lower(), item["site_id"]))
