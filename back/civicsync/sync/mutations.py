"""
Optimistic writes against the remote system.

Every write is a ``MutationAttempt`` walking
``initiated -> optimistically_applied -> reconciled | rolled_back``. The
optimistic overlay is retired by whichever confirmation arrives first: the
write response, or the channel echo of the same change. A failed or silent
write is rolled back, which leaves the confirmed record exactly as it was.
"""

# Standard library imports
import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

# Third-party imports
from pydantic import ValidationError

# Local application imports
from civicsync.core.monitoring.logging import get_contextual_logger
from civicsync.schemas.reports import Report, ReportCreate, ReportPatch, ReportStatus
from civicsync.schemas.reports.report_schemas import report_fingerprint
from civicsync.sync.exceptions import InvalidPatchError, ReconciliationTimeout, TransportError, UnknownReportError
from civicsync.sync.interfaces import ReportWriter
from civicsync.sync.store import ChangeSource, EntityStore, StoreChange

logger = get_contextual_logger(__name__)

LOCAL_ID_PREFIX = "local-"


class MutationState(str, Enum):
    INITIATED = "initiated"
    OPTIMISTICALLY_APPLIED = "optimistically_applied"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"


class MutationKind(str, Enum):
    UPDATE = "update"
    CREATE = "create"


_TRANSITIONS: dict[MutationState, frozenset[MutationState]] = {
    MutationState.INITIATED: frozenset({MutationState.OPTIMISTICALLY_APPLIED, MutationState.ROLLED_BACK}),
    MutationState.OPTIMISTICALLY_APPLIED: frozenset({MutationState.RECONCILED, MutationState.ROLLED_BACK}),
    MutationState.RECONCILED: frozenset(),
    MutationState.ROLLED_BACK: frozenset(),
}


@dataclass
class MutationAttempt:
    kind: MutationKind
    report_id: str
    changes: dict[str, Any]
    token: str = field(default_factory=lambda: uuid4().hex)
    state: MutationState = MutationState.INITIATED
    # updated_at of the confirmed record when the patch was staged
    baseline_updated_at: datetime | None = None
    fingerprint: tuple[Any, ...] | None = None
    result: Report | None = None
    error: BaseException | None = None
    confirmation: asyncio.Future[Report] = field(default_factory=lambda: asyncio.get_running_loop().create_future())

    @property
    def done(self) -> bool:
        return self.state in (MutationState.RECONCILED, MutationState.ROLLED_BACK)

    def transition(self, state: MutationState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal mutation transition {self.state.value} -> {state.value}")
        self.state = state

    def confirm(self, record: Report) -> None:
        if not self.confirmation.done():
            self.confirmation.set_result(record)

    def matches_echo(self, record: Report) -> bool:
        """Whether a remote record is the echo of this attempt's write."""
        if self.kind is MutationKind.CREATE:
            return report_fingerprint(record) == self.fingerprint
        if record.id != self.report_id:
            return False
        if self.baseline_updated_at is not None and record.updated_at <= self.baseline_updated_at:
            return False
        return all(getattr(record, name) == value for name, value in self.changes.items())


class MutationCoordinator:
    def __init__(self, store: EntityStore, writer: ReportWriter, *, timeout: float = 5.0):
        self._store = store
        self._writer = writer
        self._timeout = timeout
        self._attempts: dict[str, MutationAttempt] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._remove_listener: Callable[[], None] | None = None
        self.attach()

    @property
    def timeout(self) -> float:
        return self._timeout

    def attach(self) -> None:
        """Start watching the store for echoes of in-flight writes."""
        if self._remove_listener is None:
            self._remove_listener = self._store.add_listener(self._on_store_change)

    def pending(self) -> list[MutationAttempt]:
        return [a for a in self._attempts.values() if not a.done]

    async def request_mutation(self, report_id: str, patch: ReportPatch | Mapping[str, Any]) -> Report:
        """
        Apply ``patch`` optimistically and write it remotely.

        Returns the reconciled record. Raises ``InvalidPatchError`` or
        ``UnknownReportError`` before anything is applied, and
        ``TransportError`` or ``ReconciliationTimeout`` after rolling back.
        """
        if not isinstance(patch, ReportPatch):
            try:
                patch = ReportPatch.model_validate(patch)
            except ValidationError as e:
                raise InvalidPatchError(str(e)) from e

        confirmed = self._store.confirmed(report_id)
        if confirmed is None:
            raise UnknownReportError(report_id)

        changes = patch.changes()
        attempt = MutationAttempt(
            kind=MutationKind.UPDATE,
            report_id=report_id,
            changes=changes,
            baseline_updated_at=confirmed.updated_at,
        )
        self._store.apply_optimistic_patch(report_id, changes, attempt.token)
        self._begin(attempt)

        status = patch.status
        if patch.is_status_only and status is not None:
            return await self._settle(attempt, lambda: self._writer.write_status(report_id, status))
        return await self._settle(attempt, lambda: self._writer.update_report(report_id, changes))

    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        return await self.request_mutation(report_id, ReportPatch(status=status))

    async def submit_report(self, fields: ReportCreate) -> Report:
        """
        Stage a new report under a temporary id and create it remotely.

        The temporary record is listed like any other until the server record
        replaces it.
        """
        now = datetime.now(UTC)
        local = Report(
            id=f"{LOCAL_ID_PREFIX}{uuid4()}",
            title=fields.title,
            description=fields.description,
            category=fields.category,
            status=ReportStatus.OPEN,
            location=fields.location,
            address=fields.address,
            image_reference=fields.image_reference,
            created_at=now,
            updated_at=now,
        )
        attempt = MutationAttempt(
            kind=MutationKind.CREATE,
            report_id=local.id,
            changes=fields.model_dump(),
            fingerprint=fields.fingerprint(),
        )
        self._store.stage_local_record(local, attempt.token, matches=attempt.matches_echo)
        self._begin(attempt)
        return await self._settle(attempt, lambda: self._writer.create_report(fields))

    async def close(self) -> None:
        """Detach from the store and cancel writes still running after their echo."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()

    # Internals

    def _begin(self, attempt: MutationAttempt) -> None:
        attempt.transition(MutationState.OPTIMISTICALLY_APPLIED)
        self._attempts[attempt.token] = attempt
        logger.bind(report_id=attempt.report_id, kind=attempt.kind.value).debug("Optimistic change applied")

    async def _settle(self, attempt: MutationAttempt, write: Callable[[], Awaitable[Report]]) -> Report:
        try:
            write_task: asyncio.Task[Report] = asyncio.ensure_future(write())
        except Exception as e:
            self._roll_back(attempt, e)
            raise

        try:
            async with asyncio.timeout(self._timeout):
                await asyncio.wait({write_task, attempt.confirmation}, return_when=asyncio.FIRST_COMPLETED)
                if not attempt.confirmation.done():
                    # the write finished first; a failed write raises here
                    record = write_task.result()
                    if attempt.kind is MutationKind.CREATE:
                        self._store.replace_local(attempt.report_id, attempt.token, record)
                    else:
                        self._store.apply_remote_change(record)
                    attempt.confirm(record)
        except TimeoutError:
            write_task.cancel()
            error = ReconciliationTimeout(attempt.report_id, self._timeout)
            self._roll_back(attempt, error)
            raise error from None
        except asyncio.CancelledError:
            write_task.cancel()
            self._roll_back(attempt, asyncio.CancelledError())
            raise
        except Exception as e:
            if not isinstance(e, TransportError):
                logger.exception(f"Writer raised an unexpected {type(e).__name__}")
            self._roll_back(attempt, e)
            raise

        if not write_task.done():
            # echo arrived first; the response is still merged when it lands
            self._background.add(write_task)
            write_task.add_done_callback(self._on_late_write)

        record = attempt.confirmation.result()
        self._reconcile(attempt, record)
        return self._store.get(record.id) or record

    def _on_store_change(self, change: StoreChange) -> None:
        # the store swaps a local record for the first new remote record its creation matches
        for temp_id, server_id in change.replaced:
            server_record = self._store.confirmed(server_id)
            if server_record is None:
                continue
            for attempt in self._attempts.values():
                if attempt.kind is MutationKind.CREATE and attempt.report_id == temp_id:
                    attempt.confirm(server_record)

        if change.source not in (ChangeSource.REMOTE, ChangeSource.SNAPSHOT):
            return
        for record in change.applied:
            for attempt in self._attempts.values():
                if attempt.kind is MutationKind.UPDATE and not attempt.done and attempt.matches_echo(record):
                    attempt.confirm(record)

    def _on_late_write(self, task: asyncio.Task[Report]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Write response failed after the change was already echoed: {exc}")
            return
        self._store.apply_remote_change(task.result())

    def _reconcile(self, attempt: MutationAttempt, record: Report) -> None:
        attempt.transition(MutationState.RECONCILED)
        attempt.result = record
        self._store.reconcile(attempt.report_id, attempt.token)
        self._attempts.pop(attempt.token, None)
        logger.bind(report_id=attempt.report_id, remote_id=record.id).info(f"Reconciled {attempt.kind.value}")

    def _roll_back(self, attempt: MutationAttempt, error: BaseException) -> None:
        if attempt.done:
            return
        attempt.transition(MutationState.ROLLED_BACK)
        attempt.error = error
        self._store.rollback(attempt.report_id, attempt.token)
        self._attempts.pop(attempt.token, None)
        if not attempt.confirmation.done():
            attempt.confirmation.cancel()
        logger.bind(report_id=attempt.report_id, kind=attempt.kind.value).warning(
            f"Rolled back after {type(error).__name__}: {error}"
        )
