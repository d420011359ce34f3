import logging
from typing import Optional

from sqlmodel import Session, select

from core.exceptions import NotFoundError, ValidationError
from models.schedule_entry import ScheduleEntry
from models.site import Site
from services.broadcaster import ALL_TOPIC, broadcaster
from utils.geofence import (
    Coordinates,
    SitePoint,
    coordinates_from_map_link,
    resolve_site,
)

logger = logging.getLogger(__name__)


def _coordinates_or_error(latitude, longitude) -> Optional[Coordinates]:
    # Both-or-neither; a lone latitude is a client bug, not an "absent" location
    if latitude is None and longitude is None:
        return None
    coordinates = Coordinates.from_raw(latitude, longitude)
    if coordinates is None:
        raise ValidationError(
            "Site coordinates need a finite latitude (-90..90) and longitude (-180..180)."
        )
    return coordinates


class SiteRegistry:

    @staticmethod
    def snapshot(session: Session) -> tuple[SitePoint, ...]:
        """
        Copy of every site in registry order (ascending id), read in one query.
        The resolver only ever scans this copy, so a concurrent site edit can't
        show up half-applied in the middle of a scan.
        """
        rows = session.exec(select(Site).order_by(Site.id)).all()
        return tuple(
            SitePoint(id=row.id, name=row.name, latitude=row.latitude, longitude=row.longitude)
            for row in rows
        )

    @staticmethod
    def resolve(session: Session, coordinates: Optional[Coordinates]) -> Optional[SitePoint]:
        if coordinates is None:
            return None
        return resolve_site(coordinates, SiteRegistry.snapshot(session))

    @staticmethod
    def list_sites(session: Session) -> list[Site]:
        return list(session.exec(select(Site).order_by(Site.name, Site.id)).all())

    @staticmethod
    def get(session: Session, site_id: int) -> Site:
        site = session.get(Site, site_id)
        if not site:
            raise NotFoundError(f"Site with ID {site_id} not found.")
        return site

    @staticmethod
    def create(
        session: Session,
        name: Optional[str],
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        external_map_link: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Site:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Site name is required.")

        coordinates = _coordinates_or_error(latitude, longitude)
        if coordinates is None:
            # Sites registered from a map link still get a geofence
            coordinates = coordinates_from_map_link(external_map_link)

        site = Site(
            name=name,
            latitude=coordinates.latitude if coordinates else None,
            longitude=coordinates.longitude if coordinates else None,
            external_map_link=external_map_link or None,
        )
        session.add(site)
        session.commit()
        session.refresh(site)

        logger.info("User %s registered site %s (%s)", actor, site.id, site.name)
        broadcaster.publish(ALL_TOPIC, "locations-updated", {"action": "created", "site": site})
        return site

    @staticmethod
    def update(
        session: Session,
        site_id: int,
        changes: dict,
        actor: Optional[str] = None,
    ) -> Site:
        """Back-fill or move coordinates, or change the map link. Names are fixed."""
        site = SiteRegistry.get(session, site_id)

        if "name" in changes and changes["name"] != site.name:
            raise ValidationError("Site names cannot be changed after creation.")

        if "latitude" in changes or "longitude" in changes:
            coordinates = _coordinates_or_error(
                changes.get("latitude", site.latitude),
                changes.get("longitude", site.longitude),
            )
            site.latitude = coordinates.latitude if coordinates else None
            site.longitude = coordinates.longitude if coordinates else None

        if "external_map_link" in changes:
            site.external_map_link = changes["external_map_link"] or None
            if not site.has_coordinates:
                coordinates = coordinates_from_map_link(site.external_map_link)
                if coordinates:
                    site.latitude, site.longitude = coordinates

        session.add(site)
        session.commit()
        session.refresh(site)

        logger.info("User %s updated site %s", actor, site.id)
        broadcaster.publish(ALL_TOPIC, "locations-updated", {"action": "updated", "site": site})
        return site

    @staticmethod
    def delete(session: Session, site_id: int, actor: Optional[str] = None) -> None:
        site = SiteRegistry.get(session, site_id)

        # Detach schedule entries; their site_name_snapshot keeps the history
        entries = session.exec(
            select(ScheduleEntry).where(ScheduleEntry.site_id == site_id)
        ).all()
        for entry in entries:
            entry.site_id = None
            session.add(entry)
        session.flush()
        session.delete(site)
        session.commit()

        logger.info("User %s deleted site %s", actor, site_id)
        broadcaster.publish(ALL_TOPIC, "locations-updated", {"action": "deleted", "site_id": site_id})
