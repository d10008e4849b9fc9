"""
Tests for dashboard aggregates:
- Counts per status and category, zero-filled.
- Daily submissions, resolution time and rates.
- Cached view equals a full recompute.
"""

# Standard library imports
from datetime import date, timedelta

# Local application imports
from civicsync.schemas.reports import ReportCategory, ReportStatus
from civicsync.sync import AggregateView, EntityStore, compute_aggregates
from tests.conftest import make_report


def sample():
    return (
        make_report("a", created=0, status="open"),
        make_report("b", created=60, status="in_progress", category="garbage"),
        make_report("c", created=24 * 60, status="resolved", updated=24 * 60 + 36 * 60),
        make_report("d", created=24 * 60 + 5, status="closed", category="garbage", updated=24 * 60 + 5 + 60 * 60),
        make_report("e", created=3 * 24 * 60, status="open", category="vandalism"),
    )


def test_status_counts_sum_to_total():
    aggregates = compute_aggregates(sample())

    assert aggregates.total == 5
    assert sum(aggregates.by_status.values()) == aggregates.total
    assert sum(aggregates.by_category.values()) == aggregates.total


def test_every_enum_member_is_present():
    aggregates = compute_aggregates(sample())

    assert set(aggregates.by_status) == set(ReportStatus)
    assert aggregates.by_category[ReportCategory.STREETLIGHT] == 0
    assert aggregates.by_category[ReportCategory.GARBAGE] == 2


def test_daily_counts_ascending_by_utc_date():
    aggregates = compute_aggregates(sample())

    assert [(d.day, d.count) for d in aggregates.daily_counts] == [
        (date(2024, 5, 1), 2),
        (date(2024, 5, 2), 2),
        (date(2024, 5, 4), 1),
    ]


def test_mean_resolution_time_over_resolved_and_closed():
    aggregates = compute_aggregates(sample())

    # 36h and 60h
    assert aggregates.mean_resolution_time == timedelta(hours=48)
    assert aggregates.mean_resolution_days == 2
    assert aggregates.resolved == 2
    assert aggregates.pending == 3
    assert aggregates.resolution_rate == 40.0


def test_top_categories_ranked_by_count():
    aggregates = compute_aggregates(sample())

    assert [(c.name, c.count) for c in aggregates.top_categories] == [
        ("pothole", 2),
        ("garbage", 2),
        ("vandalism", 1),
    ]


def test_empty_snapshot():
    aggregates = compute_aggregates(())

    assert aggregates.total == 0
    assert aggregates.resolution_rate == 0.0
    assert aggregates.mean_resolution_time is None
    assert aggregates.daily_counts == []


def test_view_tracks_the_store():
    store = EntityStore()
    view = AggregateView(store)
    store.load(sample())

    first = view.current()
    assert view.current() is first

    store.apply_remote_change(make_report("a", updated=100, status="resolved"))
    current = view.current()
    assert current == compute_aggregates(store.snapshot())
    assert current.by_status[ReportStatus.RESOLVED] == 2
