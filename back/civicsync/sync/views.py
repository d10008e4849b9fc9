# Standard library imports
from datetime import datetime

# Local application imports
from civicsync.schemas.reports import Report, ReportAggregates, ReportFilter
from civicsync.sync.aggregates import compute_aggregates
from civicsync.sync.queries import filter_reports, map_reports
from civicsync.sync.store import EntityStore, StoreChange


class FilteredView:
    """
    One consumer's filtered projection of the shared store.

    Each view owns its filter; views never share or mutate each other's
    state. The projection is recomputed lazily the first time it is read after
    the store version moves. Date presets are relative to read time, so a
    view with one set is recomputed on every read.
    """

    def __init__(self, store: EntityStore, report_filter: ReportFilter | None = None, *, map_only: bool = False):
        self._store = store
        self._filter = report_filter or ReportFilter()
        self._map_only = map_only
        self._cache: tuple[int, tuple[Report, ...]] | None = None
        self._dirty = True
        self._remove_listener = store.add_listener(self._on_store_change)
        self._closed = False

    @property
    def filter(self) -> ReportFilter:
        return self._filter

    def set_filter(self, report_filter: ReportFilter) -> None:
        self._filter = report_filter
        self._cache = None

    def update_filter(self, **changes: object) -> ReportFilter:
        self.set_filter(ReportFilter.model_validate({**self._filter.model_dump(), **changes}))
        return self._filter

    @property
    def dirty(self) -> bool:
        """True when the store moved since the projection was last read."""
        return self._dirty

    def reports(self, now: datetime | None = None) -> tuple[Report, ...]:
        version = self._store.version
        relative = self._filter.date_range != "all"
        if self._cache is not None and self._cache[0] == version and not relative and now is None:
            self._dirty = False
            return self._cache[1]

        project = map_reports if self._map_only else filter_reports
        result = project(self._store.snapshot(), self._filter, now)
        self._cache = (version, result)
        self._dirty = False
        return result

    def close(self) -> None:
        if not self._closed:
            self._remove_listener()
            self._closed = True
            self._cache = None

    def _on_store_change(self, change: StoreChange) -> None:
        self._dirty = True


class AggregateView:
    """Dashboard statistics cached per store version; always equal to a full recompute."""

    def __init__(self, store: EntityStore):
        self._store = store
        self._cache: tuple[int, ReportAggregates] | None = None

    def current(self) -> ReportAggregates:
        version = self._store.version
        if self._cache is None or self._cache[0] != version:
            self._cache = (version, compute_aggregates(self._store.snapshot()))
        return self._cache[1]
