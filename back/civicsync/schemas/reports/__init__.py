from .query_schemas import CountByKey, DailyCount, DateRangePreset, ReportAggregates, ReportFilter
from .report_schemas import (
    GeoPoint,
    Report,
    ReportCategory,
    ReportCreate,
    ReportPatch,
    ReportStatus,
    StatusUpdate,
)

__all__ = [
    "CountByKey",
    "DailyCount",
    "DateRangePreset",
    "GeoPoint",
    "Report",
    "ReportAggregates",
    "ReportCategory",
    "ReportCreate",
    "ReportFilter",
    "ReportPatch",
    "ReportStatus",
    "StatusUpdate",
]
