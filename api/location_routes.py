from datetime import date, time
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field as PydanticField
from sqlmodel import Session

from core.deps import get_current_user, require_manager_role, require_staff_role
from db.session import get_session
from models.schedule_entry import ScheduleCategory
from models.site import Site
from services.schedule_service import ScheduleService
from services.site_registry import SiteRegistry
from utils.geofence import GEOFENCE_RADIUS_KM, Coordinates

# --- Router Definition ---
router = APIRouter()


# --- Pydantic Data Models ---


# Create model: Data needed when registering a NEW site via POST
class SiteCreate(BaseModel):
    name: str = PydanticField(..., description="Human-friendly site name")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    external_map_link: Optional[str] = None


# Update model: coordinates can be back-filled later; the name stays fixed
class SiteUpdate(BaseModel):
    # Accepted only so a rename attempt is rejected instead of dropped
    name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    external_map_link: Optional[str] = None


class ResolveResponse(BaseModel):
    resolved: bool
    radius_km: float
    site: Optional[Site] = None
    map_link: Optional[str] = None


class SiteHours(BaseModel):
    site_id: int
    name: str
    external_map_link: Optional[str] = None
    worker_count: int
    total_hours: float


class RosterEntry(BaseModel):
    entry_id: int
    worker_id: str
    start_time: time
    end_time: time
    category: ScheduleCategory
    hours: float


# --- API Endpoints ---


# Endpoint: List All Sites
@router.get("", response_model=List[Site])
def list_sites(
    session: Annotated[Session, Depends(get_session)],
    user: Annotated[dict, Depends(get_current_user)],
):
    return SiteRegistry.list_sites(session)


# Endpoint: Register a New Site
@router.post("", response_model=Site, status_code=status.HTTP_201_CREATED)
def create_site(
    site_in: SiteCreate,
    session: Annotated[Session, Depends(get_session)],
    manager_user: Annotated[dict, Depends(require_manager_role)],
):
    return SiteRegistry.create(
        session,
        name=site_in.name,
        latitude=site_in.latitude,
        longitude=site_in.longitude,
        external_map_link=site_in.external_map_link,
        actor=manager_user["uid"],
    )


# Endpoint: Which site (if any) does this coordinate fall in?
@router.get("/resolve", response_model=ResolveResponse)
def resolve_location(
    session: Annotated[Session, Depends(get_session)],
    user: Annotated[dict, Depends(get_current_user)],
    latitude: Optional[float] = Query(default=None),
    longitude: Optional[float] = Query(default=None),
):
    coordinates = Coordinates.from_raw(latitude, longitude)
    point = SiteRegistry.resolve(session, coordinates)
    if point is None:
        return ResolveResponse(
            resolved=False,
            radius_km=GEOFENCE_RADIUS_KM,
            map_link=coordinates.map_link() if coordinates else None,
        )
    return ResolveResponse(
        resolved=True,
        radius_km=GEOFENCE_RADIUS_KM,
        site=SiteRegistry.get(session, point.id),
    )


# Endpoint: Scheduled hours per site on a day
@router.get("/analytics/{shift_date}", response_model=List[SiteHours])
def site_hours_for_day(
    shift_date: date,
    session: Annotated[Session, Depends(get_session)],
    staff_user: Annotated[dict, Depends(require_staff_role)],
):
    return ScheduleService.site_hours_for_day(session, shift_date)


# Endpoint: Who is scheduled at a site on a day
@router.get("/{site_id}/employees/{shift_date}", response_model=List[RosterEntry])
def site_roster(
    site_id: int,
    shift_date: date,
    session: Annotated[Session, Depends(get_session)],
    staff_user: Annotated[dict, Depends(require_staff_role)],
):
    return ScheduleService.roster_for_site(session, site_id, shift_date)


# Endpoint: Update coordinates / map link
@router.patch("/{site_id}", response_model=Site)
def update_site(
    site_id: int,
    site_in: SiteUpdate,
    session: Annotated[Session, Depends(get_session)],
    manager_user: Annotated[dict, Depends(require_manager_role)],
):
    changes = site_in.model_dump(exclude_unset=True)
    return SiteRegistry.update(session, site_id, changes, actor=manager_user["uid"])


# Endpoint: Delete a site (schedule entries are detached, not deleted)
@router.delete("/{site_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_site(
    site_id: int,
    session: Annotated[Session, Depends(get_session)],
    manager_user: Annotated[dict, Depends(require_manager_role)],
):
    SiteRegistry.delete(session, site_id, actor=manager_user["uid"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
