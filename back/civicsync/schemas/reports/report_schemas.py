# Standard library imports
from datetime import UTC, datetime
from enum import Enum
import re
from typing import Any

# Third-party imports
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# PostGIS text form as written by the citizen form: SRID=4326;POINT(lng lat)
_POINT_RE = re.compile(r"POINT\s*\(\s*(?P<lng>-?\d+(?:\.\d+)?)\s+(?P<lat>-?\d+(?:\.\d+)?)\s*\)", re.IGNORECASE)


class ReportStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ReportCategory(str, Enum):
    POTHOLE = "pothole"
    STREETLIGHT = "streetlight"
    GARBAGE = "garbage"
    VANDALISM = "vandalism"
    OTHER = "other"


RESOLVED_STATUSES = frozenset({ReportStatus.RESOLVED, ReportStatus.CLOSED})
PENDING_STATUSES = frozenset({ReportStatus.OPEN, ReportStatus.IN_PROGRESS})


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


def _coerce_location(data: dict[str, Any]) -> dict[str, Any]:
    """Fold the row shape (flat columns, PostGIS text) into a nested location."""
    data = dict(data)
    latitude = data.pop("latitude", None)
    longitude = data.pop("longitude", None)
    location = data.get("location")

    if latitude is not None and longitude is not None:
        data["location"] = {"latitude": latitude, "longitude": longitude}
    elif isinstance(location, str):
        match = _POINT_RE.search(location)
        data["location"] = {"latitude": match["lat"], "longitude": match["lng"]} if match else None
    elif location is not None and not isinstance(location, dict | GeoPoint):
        data["location"] = None
    return data


class Report(BaseModel):
    """A civic-issue report as last seen from the remote system (or staged locally)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    title: str
    description: str
    category: ReportCategory
    status: ReportStatus = ReportStatus.OPEN
    location: GeoPoint | None = None
    address: str | None = None
    image_reference: str | None = Field(None, validation_alias=AliasChoices("image_reference", "image_url"))
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _accept_row_shape(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = _coerce_location(data)
            if data.get("id") is not None:
                data["id"] = str(data["id"])
        return data

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # last-write-wins compares these, so naive values must not mix with aware ones
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value

    @model_validator(mode="after")
    def _check_timestamps(self) -> "Report":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self

    @property
    def has_location(self) -> bool:
        return self.location is not None


class ReportCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: ReportCategory = ReportCategory.POTHOLE
    location: GeoPoint | None = None
    address: str | None = None
    image_reference: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_coordinates(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return _coerce_location(data)
        return data

    @model_validator(mode="after")
    def _fill_address(self) -> "ReportCreate":
        # Reports pinned on the map without a typed address still need a readable one
        if not self.address and self.location is not None:
            self.address = f"Lat: {self.location.latitude}, Lng: {self.location.longitude}"
        return self

    def fingerprint(self) -> tuple[Any, ...]:
        """Fields echoed back unchanged by the remote system for a new report."""
        return (self.title, self.description, self.category, self.address, self.image_reference)


class ReportPatch(BaseModel):
    """
    Fields a caller may change on an existing report.

    Identity and timestamps are owned by the remote system and are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=1)
    category: ReportCategory | None = None
    status: ReportStatus | None = None
    address: str | None = None

    @model_validator(mode="after")
    def _require_a_change(self) -> "ReportPatch":
        if not self.model_fields_set:
            raise ValueError("patch must change at least one field")
        cleared = sorted(f for f in self.model_fields_set - {"address"} if getattr(self, f) is None)
        if cleared:
            raise ValueError(f"fields cannot be cleared: {', '.join(cleared)}")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    @property
    def is_status_only(self) -> bool:
        return self.model_fields_set == {"status"} and self.status is not None


class StatusUpdate(BaseModel):
    status: ReportStatus


def report_fingerprint(report: Report) -> tuple[Any, ...]:
    return (report.title, report.description, report.category, report.address, report.image_reference)
