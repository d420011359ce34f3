from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlmodel import Session

from core.deps import get_current_user, require_manager_role, require_staff_role
from db.session import get_session
from models.attendance_session import AttendanceSessionRead, AttendanceSummary, PunchRequest
from services.attendance_service import AttendanceService, present_session
from utils.device import classify_user_agent
from utils.geofence import Coordinates

# Defines API Endpoints
router = APIRouter()


def _device_class(data: PunchRequest, request: Request):
    if data.device_class is not None:
        return data.device_class
    return classify_user_agent(request.headers.get("User-Agent"))


# Check In Endpoint
@router.post(
    "/check-in",
    response_model=AttendanceSessionRead,
    status_code=status.HTTP_201_CREATED,
)
def check_in(
    request: Request,
    data: Optional[PunchRequest] = None,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    # No body at all is the same as an empty one
    data = data or PunchRequest()
    # Location is advisory: a failed/timed-out GPS sample arrives as nulls
    record = AttendanceService.check_in(
        session,
        worker_id=user["uid"],
        coordinates=Coordinates.from_raw(data.latitude, data.longitude),
        device_class=_device_class(data, request),
    )
    return present_session(record)


# Check Out Endpoint
@router.post("/check-out", response_model=AttendanceSessionRead)
def check_out(
    request: Request,
    data: Optional[PunchRequest] = None,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    data = data or PunchRequest()
    record = AttendanceService.check_out(
        session,
        worker_id=user["uid"],
        coordinates=Coordinates.from_raw(data.latitude, data.longitude),
        device_class=_device_class(data, request),
    )
    return present_session(record)


# Get All My Sessions, newest first
@router.get("", response_model=List[AttendanceSessionRead])
@router.get("/me", response_model=List[AttendanceSessionRead])
def get_my_sessions(
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    return [present_session(record) for record in AttendanceService.list_sessions(session, user["uid"])]


# My worked vs scheduled hours for a month (YYYY-MM, default current)
@router.get("/me/summary", response_model=AttendanceSummary)
def get_my_summary(
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    return AttendanceService.summary(session, user["uid"], month)


# Get My Open Session (null when checked out)
@router.get("/open", response_model=Optional[AttendanceSessionRead])
def get_open_session(
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    record = AttendanceService.get_open_session(session, user["uid"])
    return present_session(record) if record else None


# Manager/Viewer: List sessions for a worker
@router.get("/worker/{worker_id}", response_model=List[AttendanceSessionRead])
def get_worker_sessions(
    worker_id: str,
    session: Session = Depends(get_session),
    staff_user: dict = Depends(require_staff_role),
):
    return [present_session(record) for record in AttendanceService.list_sessions(session, worker_id)]


# Manager/Viewer: worked vs scheduled hours for a worker
@router.get("/worker/{worker_id}/summary", response_model=AttendanceSummary)
def get_worker_summary(
    worker_id: str,
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    staff_user: dict = Depends(require_staff_role),
):
    return AttendanceService.summary(session, worker_id, month)


# Manager: Delete a session outright
@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: int,
    session: Session = Depends(get_session),
    manager_user: dict = Depends(require_manager_role),
):
    AttendanceService.delete_session(session, session_id, actor=manager_user["uid"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
