from datetime import date, time
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel
from sqlmodel import Session

from core.deps import get_current_user, require_manager_role, require_staff_role
from db.session import get_session
from models.schedule_entry import ScheduleCategory, ScheduleEntry
from services import reconciliation
from services.schedule_service import ScheduleService

router = APIRouter()

# --- Pydantic Models for Request Payloads ---


class AssignShiftRequest(BaseModel):
    # Optional here so a missing field comes back as a 400 ValidationError
    worker_id: Optional[str] = None
    shift_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    site_id: Optional[int] = None
    category: ScheduleCategory = ScheduleCategory.WORK
    notes: Optional[str] = None


class UpdateShiftRequest(BaseModel):
    shift_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    site_id: Optional[int] = None
    category: Optional[ScheduleCategory] = None
    notes: Optional[str] = None


def _summary(
    session: Session,
    worker_id: str,
    q: Optional[str],
    sort: str,
    order: str,
) -> reconciliation.ScheduleSummary:
    entries = ScheduleService.list_for_worker(session, worker_id)
    return reconciliation.summarize(
        entries,
        text=q,
        sort_key=sort,
        descending=(order == "desc"),
    )


# --- API Endpoints ---


# Manager assigns shift to worker
@router.post("/assign", response_model=ScheduleEntry, status_code=status.HTTP_201_CREATED)
def assign_shift(
    payload: AssignShiftRequest,
    session: Session = Depends(get_session),
    manager_user: dict = Depends(require_manager_role),
):
    return ScheduleService.assign(
        session,
        worker_id=payload.worker_id,
        shift_date=payload.shift_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        site_id=payload.site_id,
        category=payload.category,
        notes=payload.notes,
        actor=manager_user["uid"],
    )


# Get shifts for the logged-in worker
@router.get("/me", response_model=List[ScheduleEntry])
def get_my_shifts(
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    return ScheduleService.list_for_worker(session, user["uid"])


# Day buckets, totals and status for the logged-in worker
@router.get("/me/summary", response_model=reconciliation.ScheduleSummary)
def get_my_summary(
    q: Optional[str] = Query(default=None, description="Matches date or site name"),
    sort: str = Query(default="date"),
    order: Literal["asc", "desc"] = Query(default="asc"),
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    return _summary(session, user["uid"], q, sort, order)


# Manager/Viewer gets shifts for a specific worker
@router.get("/employee/{worker_id}", response_model=List[ScheduleEntry])
def get_worker_shifts(
    worker_id: str,
    session: Session = Depends(get_session),
    staff_user: dict = Depends(require_staff_role),
):
    return ScheduleService.list_for_worker(session, worker_id)


@router.get("/employee/{worker_id}/summary", response_model=reconciliation.ScheduleSummary)
def get_worker_summary(
    worker_id: str,
    q: Optional[str] = Query(default=None),
    sort: str = Query(default="date"),
    order: Literal["asc", "desc"] = Query(default="asc"),
    session: Session = Depends(get_session),
    staff_user: dict = Depends(require_staff_role),
):
    return _summary(session, worker_id, q, sort, order)


# Manager clears every shift of a worker on one day
@router.delete("/employee/{worker_id}/day/{shift_date}", status_code=status.HTTP_204_NO_CONTENT)
def clear_worker_day(
    worker_id: str,
    shift_date: date,
    session: Session = Depends(get_session),
    manager_user: dict = Depends(require_manager_role),
):
    ScheduleService.remove_day(session, worker_id, shift_date, actor=manager_user["uid"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Manager updates a shift
@router.put("/{entry_id}", response_model=ScheduleEntry)
def update_shift(
    entry_id: int,
    payload: UpdateShiftRequest,
    session: Session = Depends(get_session),
    manager_user: dict = Depends(require_manager_role),
):
    # Only fields the client actually sent are applied
    changes = payload.model_dump(exclude_unset=True)
    return ScheduleService.update(session, entry_id, changes, actor=manager_user["uid"])


# Manager deletes a shift
@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_shift(
    entry_id: int,
    session: Session = Depends(get_session),
    manager_user: dict = Depends(require_manager_role),
):
    ScheduleService.remove(session, entry_id, actor=manager_user["uid"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
