# Standard library imports
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Literal

# Third-party imports
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Local application imports
from civicsync.schemas.reports.report_schemas import ReportCategory, ReportStatus


class DateRangePreset(str, Enum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


PRESET_WINDOWS: dict[DateRangePreset, timedelta] = {
    DateRangePreset.WEEK: timedelta(days=7),
    DateRangePreset.MONTH: timedelta(days=30),
}


class ReportFilter(BaseModel):
    """Filter state held by one consumer (citizen list, staff map, ...)."""

    model_config = ConfigDict(frozen=True)

    status: ReportStatus | Literal["all"] = "all"
    category: ReportCategory | Literal["all"] = "all"
    date_range: DateRangePreset = DateRangePreset.ALL
    created_from: datetime | None = None
    created_to: datetime | None = None
    order: Literal["asc", "desc"] = "desc"

    @field_validator("created_from", "created_to")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "ReportFilter":
        if self.created_from and self.created_to and self.created_from > self.created_to:
            raise ValueError("created_from must not be after created_to")
        return self


class CountByKey(BaseModel):
    name: str
    count: int


class DailyCount(BaseModel):
    day: date
    count: int


class ReportAggregates(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    by_status: dict[ReportStatus, int]
    by_category: dict[ReportCategory, int]
    daily_counts: list[DailyCount]
    pending: int
    resolved: int
    resolution_rate: float = Field(..., description="Percentage of reports resolved or closed")
    mean_resolution_time: timedelta | None = None
    mean_resolution_days: int = 0
    top_categories: list[CountByKey] = Field(default_factory=list)
