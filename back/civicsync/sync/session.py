# Standard library imports
from collections.abc import Callable, Mapping
from datetime import datetime
from types import TracebackType
from typing import Any

# Local application imports
from civicsync.schemas.reports import Report, ReportAggregates, ReportCreate, ReportFilter, ReportPatch, ReportStatus
from civicsync.settings import settings
from civicsync.sync.feed import ChangeFeedSubscriber, ErrorListener
from civicsync.sync.interfaces import ChangeChannel, ReportFetcher, ReportWriter
from civicsync.sync.mutations import MutationAttempt, MutationCoordinator
from civicsync.sync.queries import filter_reports, map_reports
from civicsync.sync.store import EntityStore, StoreListener
from civicsync.sync.views import AggregateView, FilteredView


class SyncSession:
    """
    Owns the report store and everything that keeps it current.

    Constructed explicitly (no module-level instance) so each application,
    worker or test gets an isolated store. ``start`` seeds it and opens the
    single change subscription; ``stop`` tears the subscription down. Views
    created with ``view`` share this one store.
    """

    def __init__(
        self,
        fetcher: ReportFetcher,
        channel: ChangeChannel,
        writer: ReportWriter,
        *,
        store: EntityStore | None = None,
        reconciliation_timeout: float | None = None,
        resync_max_retries: int | None = None,
        resync_backoff_seconds: float | None = None,
        filter_hints: Mapping[str, Any] | None = None,
    ):
        self.store = store or EntityStore()
        self.feed = ChangeFeedSubscriber(
            self.store,
            channel,
            fetcher,
            max_retries=resync_max_retries if resync_max_retries is not None else settings.SYNC_RESYNC_MAX_RETRIES,
            backoff_seconds=(
                resync_backoff_seconds if resync_backoff_seconds is not None else settings.SYNC_RESYNC_BACKOFF_SECONDS
            ),
            filter_hints=filter_hints,
        )
        self.coordinator = MutationCoordinator(
            self.store,
            writer,
            timeout=(
                reconciliation_timeout
                if reconciliation_timeout is not None
                else settings.SYNC_RECONCILIATION_TIMEOUT_SECONDS
            ),
        )
        self._aggregates = AggregateView(self.store)
        self._views: list[FilteredView] = []

    # Lifecycle

    async def start(self) -> None:
        self.coordinator.attach()
        await self.feed.start()

    async def stop(self) -> None:
        for view in self._views:
            view.close()
        self._views.clear()
        await self.feed.stop()
        await self.coordinator.close()

    async def __aenter__(self) -> "SyncSession":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    @property
    def connected(self) -> bool:
        return self.feed.connected

    async def resync(self) -> None:
        await self.feed.resync()

    # Reads

    def snapshot(self) -> tuple[Report, ...]:
        return self.store.snapshot()

    def get(self, report_id: str) -> Report | None:
        return self.store.get(report_id)

    def filtered(self, report_filter: ReportFilter | None = None, now: datetime | None = None) -> tuple[Report, ...]:
        return filter_reports(self.store.snapshot(), report_filter, now)

    def map_reports(self, report_filter: ReportFilter | None = None, now: datetime | None = None) -> tuple[Report, ...]:
        return map_reports(self.store.snapshot(), report_filter, now)

    def aggregates(self) -> ReportAggregates:
        return self._aggregates.current()

    def view(self, report_filter: ReportFilter | None = None, *, map_only: bool = False) -> FilteredView:
        view = FilteredView(self.store, report_filter, map_only=map_only)
        self._views.append(view)
        return view

    # Writes

    async def request_mutation(self, report_id: str, patch: ReportPatch | Mapping[str, Any]) -> Report:
        return await self.coordinator.request_mutation(report_id, patch)

    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        return await self.coordinator.update_status(report_id, status)

    async def submit_report(self, fields: ReportCreate) -> Report:
        return await self.coordinator.submit_report(fields)

    def pending_mutations(self) -> list[MutationAttempt]:
        return self.coordinator.pending()

    # Signals

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        """Re-render trigger: called after every effective store change."""
        return self.store.add_listener(listener)

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        """Called with ``ChannelDisconnected`` / ``TransportError`` raised outside any caller."""
        return self.feed.add_error_listener(listener)

