from enum import Enum
from typing import Optional


class DeviceClass(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


TABLET_MARKERS = ("ipad", "tablet", "kindle", "silk", "playbook")
MOBILE_MARKERS = ("mobi", "iphone", "ipod", "android", "blackberry", "windows phone")
DESKTOP_MARKERS = ("windows nt", "macintosh", "x11", "linux", "cros")


def classify_user_agent(user_agent: Optional[str]) -> DeviceClass:
    if not user_agent:
        return DeviceClass.UNKNOWN

    ua = user_agent.lower()
    if any(marker in ua for marker in TABLET_MARKERS):
        return DeviceClass.TABLET
    # Android tablets omit "mobile" from the UA string
    if "android" in ua and "mobile" not in ua:
        return DeviceClass.TABLET
    if any(marker in ua for marker in MOBILE_MARKERS):
        return DeviceClass.MOBILE
    if any(marker in ua for marker in DESKTOP_MARKERS):
        return DeviceClass.DESKTOP
    return DeviceClass.UNKNOWN
