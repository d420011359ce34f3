import logging
from typing import Annotated

from fastapi import (
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocketException,
    status,
)

from core.exceptions import ForbiddenError
from core.firebase import get_firestore, verify_id_token

logger = logging.getLogger(__name__)

# Standard credentials exception
CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)

# Roles Defined
MANAGER_ROLES = ["manager", "owner"]
VIEWER_ROLES = ["viewer"]
STAFF_ROLES = MANAGER_ROLES + VIEWER_ROLES


def is_manager(user: dict) -> bool:
    return user.get("role") in MANAGER_ROLES


def is_staff(user: dict) -> bool:
    return user.get("role") in STAFF_ROLES


def resolve_identity(token: str) -> dict:
    """
    Turn a Firebase ID token into the identity every attendance and schedule
    route works with: {"uid", "name", "email", "role"}. Raises
    CREDENTIALS_EXCEPTION when the token or the profile can't be used.
    """
    # 1) Verify This Points to a Real User Account
    try:
        decoded = verify_id_token(token)
    except Exception:
        logger.warning("Rejected invalid or expired token")
        raise CREDENTIALS_EXCEPTION
    uid = decoded.get("uid")
    if not uid:
        raise CREDENTIALS_EXCEPTION

    # 2) Fetch the Firestore user profile
    try:
        snapshot = get_firestore().collection("users").document(uid).get()
    except Exception:
        logger.exception("Firestore error fetching profile for %s", uid)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not fetch user profile.",
        )
    if not snapshot.exists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found in Firestore",
        )
    profile = snapshot.to_dict()

    # 3) Extract Critical Information
    return {
        "uid": uid,
        "name": profile.get("displayName", ""),
        "email": profile.get("email", ""),
        "role": str(profile.get("role", "employee")).lower(),
    }


# Bearer token check for HTTP routes
async def get_current_user(request: Request) -> dict:
    auth_header = request.headers.get("Authorization", "")

    # Make Sure Formatting Valid
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )

    token = auth_header.split(" ", 1)[1]
    return resolve_identity(token)


# Browsers can't set headers on a WebSocket handshake, so the token rides in the query
async def get_socket_user(
    token: Annotated[str | None, Query()] = None,
) -> dict:
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
    try:
        return resolve_identity(token)
    except HTTPException as exc:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))


# Manager Role Check Dependency
async def require_manager_role(
    current_user: Annotated[dict, Depends(get_current_user)]
):
    if not is_manager(current_user):
        logger.warning("User %s (role %r) denied manager action", current_user.get("uid"), current_user.get("role"))
        raise ForbiddenError("User doesn't have sufficient privileges for this action")
    return current_user


# Manager or Viewer: read-only access to other workers' records
async def require_staff_role(
    current_user: Annotated[dict, Depends(get_current_user)]
):
    if not is_staff(current_user):
        logger.warning("User %s (role %r) denied staff read", current_user.get("uid"), current_user.get("role"))
        raise ForbiddenError("User doesn't have sufficient privileges for this action")
    return current_user
