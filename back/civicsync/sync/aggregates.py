# Standard library imports
from collections import Counter
from collections.abc import Sequence
from datetime import UTC, timedelta

# Local application imports
from civicsync.schemas.reports import CountByKey, DailyCount, Report, ReportAggregates, ReportCategory, ReportStatus
from civicsync.schemas.reports.report_schemas import PENDING_STATUSES, RESOLVED_STATUSES

TOP_CATEGORY_LIMIT = 5
SECONDS_PER_DAY = 24 * 60 * 60


def compute_aggregates(snapshot: Sequence[Report]) -> ReportAggregates:
    """Dashboard statistics, recomputed from scratch over the whole snapshot."""
    status_counts = Counter(r.status for r in snapshot)
    category_counts = Counter(r.category for r in snapshot)
    daily = Counter(r.created_at.astimezone(UTC).date() for r in snapshot)

    resolved = [r for r in snapshot if r.status in RESOLVED_STATUSES]
    mean_resolution: timedelta | None = None
    if resolved:
        total = sum((r.updated_at - r.created_at for r in resolved), timedelta())
        mean_resolution = total / len(resolved)

    total_reports = len(snapshot)
    resolution_rate = round(len(resolved) / total_reports * 100, 2) if total_reports else 0.0

    # Ties keep enum order so the ranking is deterministic
    ranked = sorted(ReportCategory, key=lambda c: -category_counts[c])
    top_categories = [
        CountByKey(name=c.value, count=category_counts[c]) for c in ranked[:TOP_CATEGORY_LIMIT] if category_counts[c]
    ]

    return ReportAggregates(
        total=total_reports,
        by_status={s: status_counts[s] for s in ReportStatus},
        by_category={c: category_counts[c] for c in ReportCategory},
        daily_counts=[DailyCount(day=d, count=n) for d, n in sorted(daily.items())],
        pending=sum(status_counts[s] for s in PENDING_STATUSES),
        resolved=len(resolved),
        resolution_rate=resolution_rate,
        mean_resolution_time=mean_resolution,
        mean_resolution_days=round(mean_resolution.total_seconds() / SECONDS_PER_DAY) if mean_resolution else 0,
        top_categories=top_categories,
    )
