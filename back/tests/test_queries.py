"""
Tests for the filter/query engine:
- Status, category and date predicates.
- Ordering and the map projection.
"""

# Standard library imports
from datetime import timedelta

# Third-party imports
from pydantic import ValidationError
import pytest

# Local application imports
from civicsync.schemas.reports import ReportFilter
from civicsync.sync import filter_reports, map_reports
from civicsync.sync.queries import created_lower_bound
from tests.conftest import BASE_TIME, make_report


@pytest.fixture
def snapshot():
    records = [
        make_report("o1", created=0, status="open"),
        make_report("o2", created=30, status="open", category="streetlight"),
        make_report("o3", created=60, status="open", location=None),
        make_report("s1", created=10, status="resolved", updated=90),
        make_report("s2", created=50, status="resolved", updated=95, category="streetlight"),
    ]
    return tuple(sorted(records, key=lambda r: r.created_at, reverse=True))


def test_open_filter_returns_open_reports_newest_first(snapshot):
    result = filter_reports(snapshot, ReportFilter(status="open"))

    assert [r.id for r in result] == ["o3", "o2", "o1"]


def test_default_filter_returns_everything(snapshot):
    assert len(filter_reports(snapshot)) == 5


def test_category_filter_combines_with_status(snapshot):
    result = filter_reports(snapshot, ReportFilter(status="resolved", category="streetlight"))

    assert [r.id for r in result] == ["s2"]


def test_ascending_order(snapshot):
    result = filter_reports(snapshot, ReportFilter(order="asc"))

    assert [r.id for r in result] == ["o1", "s1", "o2", "s2", "o3"]


def test_explicit_bounds_are_inclusive(snapshot):
    report_filter = ReportFilter(
        created_from=BASE_TIME + timedelta(minutes=10),
        created_to=BASE_TIME + timedelta(minutes=50),
    )

    assert [r.id for r in filter_reports(snapshot, report_filter)] == ["s2", "o2", "s1"]


def test_week_preset_is_relative_to_now(snapshot):
    now = BASE_TIME + timedelta(days=7, minutes=20)

    result = filter_reports(snapshot, ReportFilter(date_range="week"), now=now)

    assert [r.id for r in result] == ["o3", "s2", "o2"]


def test_today_preset_starts_at_utc_midnight():
    now = BASE_TIME.replace(hour=23)
    bound = created_lower_bound(ReportFilter(date_range="today"), now)

    assert bound == BASE_TIME.replace(hour=0)


def test_tightest_lower_bound_wins():
    now = BASE_TIME + timedelta(days=40)
    report_filter = ReportFilter(date_range="month", created_from=BASE_TIME)

    assert created_lower_bound(report_filter, now) == now - timedelta(days=30)


def test_map_projection_drops_reports_without_location(snapshot):
    result = map_reports(snapshot, ReportFilter(status="open"))

    assert [r.id for r in result] == ["o2", "o1"]


def test_filtering_does_not_touch_the_snapshot(snapshot):
    before = tuple(snapshot)
    filter_reports(snapshot, ReportFilter(order="asc", status="open"))

    assert snapshot == before


def test_inverted_bounds_are_rejected():
    with pytest.raises(ValidationError):
        ReportFilter(created_from=BASE_TIME, created_to=BASE_TIME - timedelta(days=1))
