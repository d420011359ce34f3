from datetime import datetime, timezone
from typing import Optional

from pydantic import field_serializer
from sqlmodel import Field, SQLModel

from utils.datetime_helpers import format_utc_datetime

# Defines the Structure of Data for a Named Work Location

# Site w/ Optional Coordinates (a site can exist as a bookmark only)
class Site(SQLModel, table=True):
    __tablename__ = "site"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, description="Human-friendly site name")
    latitude: Optional[float] = Field(default=None, description="Latitude of site center")
    longitude: Optional[float] = Field(default=None, description="Longitude of site center")
    external_map_link: Optional[str] = Field(default=None, description="Map URL for the site")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @field_serializer("created_at")
    def serialize_created_at(self, dt: datetime) -> str:
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()
