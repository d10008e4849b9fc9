# Standard library imports
import asyncio
from collections.abc import Callable, Mapping
from typing import Any

# Third-party imports
from pydantic import ValidationError

# Local application imports
from civicsync.core.monitoring.logging import get_contextual_logger
from civicsync.schemas.reports import Report
from civicsync.sync.exceptions import ChannelDisconnected, SyncError, TransportError
from civicsync.sync.interfaces import ChangeChannel, ReportFetcher
from civicsync.sync.store import EntityStore, MergeOutcome

logger = get_contextual_logger(__name__)

ErrorListener = Callable[[SyncError], None]


class ChangeFeedSubscriber:
    """
    Keeps an ``EntityStore`` in step with the remote collection.

    Holds one channel subscription for the whole process. Every notification
    is merged through last-write-wins, so redelivery and reordering are
    harmless. The subscription is always opened before the bulk fetch, so a
    change landing between the two is still delivered. Anything missed while
    the channel was down is never redelivered, so a disconnect always forces
    a fresh subscription followed by a bulk fetch.
    """

    def __init__(
        self,
        store: EntityStore,
        channel: ChangeChannel,
        fetcher: ReportFetcher,
        *,
        max_retries: int = 5,
        backoff_seconds: float = 1.0,
        filter_hints: Mapping[str, Any] | None = None,
    ):
        self._store = store
        self._channel = channel
        self._fetcher = fetcher
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._filter_hints = filter_hints

        self._handle: Any = None
        # handles dropped by the channel, released before the next subscribe
        self._dead_handles: list[Any] = []
        # set once a bulk fetch has completed under the current subscription
        self._synced = False
        # Bumped on every (re)subscribe and on stop; callbacks from older handles are dropped
        self._generation = 0
        self._active = False
        self._resync_task: asyncio.Task[None] | None = None
        self._error_listeners: list[ErrorListener] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def connected(self) -> bool:
        return self._active and self._handle is not None and self._synced

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        self._error_listeners.append(listener)

        def remove() -> None:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

        return remove

    async def start(self) -> None:
        """Subscribe, then seed the store from a bulk fetch. Raises ``TransportError``."""
        if self._active:
            return
        self._active = True
        self._synced = False
        try:
            await self._catch_up()
        except BaseException:
            self._active = False
            self._generation += 1
            await self._release_all()
            raise
        logger.info(f"Change feed started with {len(self._store)} reports")

    async def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._synced = False
        self._generation += 1

        if self._resync_task is not None and not self._resync_task.done():
            self._resync_task.cancel()
            try:
                await self._resync_task
            except asyncio.CancelledError:
                pass
        self._resync_task = None

        await self._release_all()
        logger.info("Change feed stopped")

    async def resync(self) -> None:
        """Re-establish the subscription and fetch everything again."""
        if not self._active:
            raise ChannelDisconnected("change feed is not active")
        handle, self._handle = self._handle, None
        self._synced = False
        self._generation += 1
        if handle is not None:
            await self._release(handle)
        await self._release_dead_handles()

        await self._catch_up()

    # Channel callbacks

    def _on_insert(self, generation: int, payload: Mapping[str, Any]) -> None:
        self._on_record(generation, payload, "insert")

    def _on_update(self, generation: int, payload: Mapping[str, Any]) -> None:
        self._on_record(generation, payload, "update")

    def _on_record(self, generation: int, payload: Mapping[str, Any], kind: str) -> None:
        if generation != self._generation or not self._active:
            return
        try:
            record = Report.model_validate(payload)
        except ValidationError as e:
            logger.bind(kind=kind, report_id=payload.get("id")).error(f"Rejected malformed notification: {e}")
            return
        outcome = self._store.apply_remote_change(record)
        if outcome is MergeOutcome.APPLIED:
            logger.bind(kind=kind, report_id=record.id).debug("Merged notification")

    def _on_disconnect(self, generation: int, exc: BaseException | None) -> None:
        if generation != self._generation or not self._active:
            return
        self._generation += 1
        self._synced = False
        dead_handle, self._handle = self._handle, None
        if dead_handle is not None:
            self._dead_handles.append(dead_handle)
        logger.warning(f"Change channel disconnected: {exc or 'no reason given'}")
        self._notify(ChannelDisconnected(str(exc) if exc else "change channel disconnected"))
        if self._resync_task is None or self._resync_task.done():
            self._resync_task = asyncio.get_running_loop().create_task(self._resync_with_retry())

    # Internals

    async def _resync_with_retry(self) -> None:
        for attempt in range(1, self._max_retries + 1):
            if not self._active:
                return
            await self._release_dead_handles()
            error: SyncError
            try:
                await self._catch_up()
            except TransportError as e:
                error = e
            else:
                if self.connected:
                    logger.info(f"Change feed resynced after {attempt} attempt(s)")
                    return
                error = ChannelDisconnected("change channel dropped during resync")

            if attempt == self._max_retries:
                logger.error(f"Resync failed after {attempt} attempts: {error}")
                self._notify(error)
                return
            # Exponential backoff: backoff * 2^(attempt - 1)
            delay = self._backoff_seconds * (2 ** (attempt - 1))
            logger.warning(f"Resync attempt {attempt}/{self._max_retries} failed, retrying in {delay:g}s: {error}")
            await asyncio.sleep(delay)

    async def _catch_up(self) -> None:
        # subscribe before fetching so nothing changed during the fetch is lost;
        # notifications overlapping the snapshot are absorbed by last-write-wins
        if self._handle is None:
            await self._subscribe()
        await self._fetch_into_store()
        self._synced = self._active and self._handle is not None

    async def _fetch_into_store(self) -> None:
        records = await self._fetcher.fetch_all(self._filter_hints)
        if not self._active:
            # stopped while the fetch was in flight
            return
        applied = self._store.load(records)
        logger.debug(f"Bulk fetch returned {len(records)} reports, {applied} changed the store")

    async def _subscribe(self) -> None:
        if not self._active:
            return
        self._generation += 1
        generation = self._generation
        handle = await self._channel.subscribe(
            lambda payload: self._on_insert(generation, payload),
            lambda payload: self._on_update(generation, payload),
            lambda exc: self._on_disconnect(generation, exc),
        )
        if not self._active or generation != self._generation:
            await self._release(handle)
            return
        self._handle = handle

    async def _release_dead_handles(self) -> None:
        while self._dead_handles:
            await self._release(self._dead_handles.pop(0))

    async def _release_all(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            await self._release(handle)
        await self._release_dead_handles()

    async def _release(self, handle: Any) -> None:
        try:
            await self._channel.unsubscribe(handle)
        except TransportError as e:
            logger.warning(f"Failed to release change channel handle: {e}")

    def _notify(self, error: SyncError) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Feed error listener failed")
