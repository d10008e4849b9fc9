"""
Pure projections over a store snapshot.

Nothing here holds state: the same snapshot and filter always give the same
sequence, so any number of views can call these as often as the store moves.
"""

# Standard library imports
from collections.abc import Iterable
from datetime import UTC, datetime

# Local application imports
from civicsync.schemas.reports import DateRangePreset, Report, ReportFilter
from civicsync.schemas.reports.query_schemas import PRESET_WINDOWS


def created_lower_bound(report_filter: ReportFilter, now: datetime | None = None) -> datetime | None:
    """Earliest ``created_at`` admitted by the filter's date range, if any."""
    bounds: list[datetime] = []
    if report_filter.created_from is not None:
        bounds.append(report_filter.created_from)

    preset = report_filter.date_range
    if preset is not DateRangePreset.ALL:
        now = now or datetime.now(UTC)
        if preset is DateRangePreset.TODAY:
            bounds.append(now.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0))
        else:
            bounds.append(now - PRESET_WINDOWS[preset])

    return max(bounds) if bounds else None


def matches(report: Report, report_filter: ReportFilter, lower_bound: datetime | None = None) -> bool:
    if report_filter.status != "all" and report.status != report_filter.status:
        return False
    if report_filter.category != "all" and report.category != report_filter.category:
        return False
    if lower_bound is not None and report.created_at < lower_bound:
        return False
    if report_filter.created_to is not None and report.created_at > report_filter.created_to:
        return False
    return True


def filter_reports(
    snapshot: Iterable[Report],
    report_filter: ReportFilter | None = None,
    now: datetime | None = None,
) -> tuple[Report, ...]:
    """
    Reports from ``snapshot`` that satisfy every active predicate.

    Snapshots arrive newest first; ``order="asc"`` reverses them for time
    series consumers. Ties on ``created_at`` keep a stable id order.
    """
    report_filter = report_filter or ReportFilter()
    lower_bound = created_lower_bound(report_filter, now)
    selected = [r for r in snapshot if matches(r, report_filter, lower_bound)]
    selected.sort(key=lambda r: (r.created_at, r.id), reverse=report_filter.order == "desc")
    return tuple(selected)


def map_reports(
    snapshot: Iterable[Report],
    report_filter: ReportFilter | None = None,
    now: datetime | None = None,
) -> tuple[Report, ...]:
    """Same as ``filter_reports`` but only reports that can be pinned on a map."""
    return tuple(r for r in filter_reports(snapshot, report_filter, now) if r.location is not None)
