"""
In-memory entity store for reports.

Confirmed state only ever moves forward by ``updated_at`` (last write wins);
optimistic overlays and locally staged records sit beside it and are retired
explicitly, so a rollback always lands on the exact confirmed record.
"""

# Standard library imports
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

# Third-party imports
from pydantic import ValidationError

# Local application imports
from civicsync.core.monitoring.logging import get_contextual_logger
from civicsync.schemas.reports import Report
from civicsync.sync.exceptions import InvalidPatchError, UnknownReportError

logger = get_contextual_logger(__name__)

# Owned by the remote system; never patched locally
REMOTE_OWNED_FIELDS = frozenset({"id", "created_at", "updated_at"})


class MergeOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"


class ChangeSource(str, Enum):
    SNAPSHOT = "snapshot"
    REMOTE = "remote"
    OPTIMISTIC = "optimistic"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"
    LOCAL = "local"


@dataclass(frozen=True)
class StoreChange:
    version: int
    source: ChangeSource
    report_ids: tuple[str, ...]
    # Confirmed records merged by a snapshot or remote change
    applied: tuple[Report, ...] = ()
    # (temporary id, server id) pairs for local records superseded in this change
    replaced: tuple[tuple[str, str], ...] = ()


StoreListener = Callable[[StoreChange], None]
RecordMatcher = Callable[[Report], bool]


class _StagedRecord(NamedTuple):
    token: str
    record: Report
    matches: RecordMatcher | None


class EntityStore:
    def __init__(self) -> None:
        self._confirmed: dict[str, Report] = {}
        # report id -> {token: fields}, kept in staging order
        self._overlays: dict[str, dict[str, dict[str, Any]]] = {}
        # temporary id -> staged record for reports not yet created remotely
        self._local: dict[str, _StagedRecord] = {}
        self._listeners: list[StoreListener] = []
        self._version = 0
        self._snapshot_cache: tuple[int, tuple[Report, ...]] | None = None

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._confirmed) + len(self._local)

    def __contains__(self, report_id: object) -> bool:
        return report_id in self._confirmed or report_id in self._local

    # Remote state

    def load(self, records: Iterable[Report]) -> int:
        """Merge a bulk snapshot; returns how many records changed the store."""
        applied: list[Report] = []
        replaced: list[tuple[str, str]] = []
        stale = 0
        for record in records:
            is_new = record.id not in self._confirmed
            outcome = self._merge(record)
            if outcome is MergeOutcome.APPLIED:
                applied.append(record)
                temp_id = self._claim_local(record) if is_new else None
                if temp_id is not None:
                    replaced.append((temp_id, record.id))
            elif outcome is MergeOutcome.STALE:
                stale += 1

        if stale:
            logger.debug(f"Snapshot skipped {stale} records older than the stored state")
        if applied:
            ids = tuple(r.id for r in applied) + tuple(temp_id for temp_id, _ in replaced)
            self._emit(ChangeSource.SNAPSHOT, ids, tuple(applied), tuple(replaced))
        return len(applied)

    def apply_remote_change(self, record: Report) -> MergeOutcome:
        is_new = record.id not in self._confirmed
        outcome = self._merge(record)
        if outcome is MergeOutcome.APPLIED:
            # only a record seen for the first time can be the server copy of a local one
            temp_id = self._claim_local(record) if is_new else None
            if temp_id is None:
                self._emit(ChangeSource.REMOTE, (record.id,), (record,))
            else:
                self._emit(ChangeSource.REMOTE, (temp_id, record.id), (record,), ((temp_id, record.id),))
        else:
            logger.bind(report_id=record.id, updated_at=record.updated_at.isoformat()).debug(
                f"Ignoring {outcome.value} change"
            )
        return outcome

    def _merge(self, record: Report) -> MergeOutcome:
        current = self._confirmed.get(record.id)
        if current is not None:
            if record.updated_at < current.updated_at:
                return MergeOutcome.STALE
            if record == current:
                return MergeOutcome.DUPLICATE
        self._confirmed[record.id] = record
        return MergeOutcome.APPLIED

    # Local state

    def apply_optimistic_patch(self, report_id: str, fields: Mapping[str, Any], token: str) -> Report:
        """Stage ``fields`` over the confirmed record; returns the rendered result."""
        if report_id not in self._confirmed:
            raise UnknownReportError(report_id)
        if not fields:
            raise InvalidPatchError("patch must change at least one field")
        owned = REMOTE_OWNED_FIELDS.intersection(fields)
        if owned:
            raise InvalidPatchError(f"fields owned by the remote system: {', '.join(sorted(owned))}")

        overlays = self._overlays.setdefault(report_id, {})
        if token in overlays:
            raise InvalidPatchError(f"token {token} already staged for report {report_id}")

        current = self._render(report_id)
        if current is None:
            raise UnknownReportError(report_id)
        try:
            rendered = Report.model_validate({**current.model_dump(), **fields})
        except ValidationError as e:
            if not overlays:
                del self._overlays[report_id]
            raise InvalidPatchError(str(e)) from e

        # keep the validated values so rendering never needs to coerce again
        overlays[token] = {name: getattr(rendered, name) for name in fields}
        self._emit(ChangeSource.OPTIMISTIC, (report_id,))
        return rendered

    def stage_local_record(self, record: Report, token: str, matches: RecordMatcher | None = None) -> None:
        """
        Insert a record that only exists locally until its creation is confirmed.

        When ``matches`` is given, the first remote record it accepts that is
        new to the store replaces the local record in the same change.
        """
        if record.id in self:
            raise InvalidPatchError(f"report {record.id} already exists")
        self._local[record.id] = _StagedRecord(token, record, matches)
        self._emit(ChangeSource.LOCAL, (record.id,))

    def replace_local(self, temp_id: str, token: str, record: Report) -> MergeOutcome:
        """Swap a local record for its server copy as a single change."""
        staged = self._local.get(temp_id)
        retired = staged is not None and staged.token == token
        if retired:
            del self._local[temp_id]
        outcome = self._merge(record)

        if retired:
            applied = (record,) if outcome is MergeOutcome.APPLIED else ()
            self._emit(ChangeSource.RECONCILED, (temp_id, record.id), applied, ((temp_id, record.id),))
        elif outcome is MergeOutcome.APPLIED:
            self._emit(ChangeSource.REMOTE, (record.id,), (record,))
        return outcome

    def _claim_local(self, record: Report) -> str | None:
        for temp_id, staged in self._local.items():
            if staged.matches is not None and staged.matches(record):
                del self._local[temp_id]
                return temp_id
        return None

    def reconcile(self, report_id: str, token: str) -> bool:
        """Retire a confirmed overlay or local record. Returns False if there was nothing to retire."""
        return self._retire(report_id, token, ChangeSource.RECONCILED)

    def rollback(self, report_id: str, token: str) -> bool:
        """Discard an overlay or local record, leaving confirmed state untouched."""
        retired = self._retire(report_id, token, ChangeSource.ROLLED_BACK)
        if retired:
            logger.bind(report_id=report_id, token=token).warning("Rolled back optimistic change")
        return retired

    def _retire(self, report_id: str, token: str, source: ChangeSource) -> bool:
        local = self._local.get(report_id)
        if local is not None and local.token == token:
            del self._local[report_id]
            self._emit(source, (report_id,))
            return True

        overlays = self._overlays.get(report_id)
        if not overlays or token not in overlays:
            return False
        del overlays[token]
        if not overlays:
            del self._overlays[report_id]
        self._emit(source, (report_id,))
        return True

    # Reads

    def get(self, report_id: str) -> Report | None:
        return self._render(report_id)

    def confirmed(self, report_id: str) -> Report | None:
        return self._confirmed.get(report_id)

    def is_pending(self, report_id: str) -> bool:
        return report_id in self._local or bool(self._overlays.get(report_id))

    def is_local(self, report_id: str) -> bool:
        return report_id in self._local

    def snapshot(self) -> tuple[Report, ...]:
        """Rendered records, newest ``created_at`` first. Cached until the next change."""
        if self._snapshot_cache is not None and self._snapshot_cache[0] == self._version:
            return self._snapshot_cache[1]

        ids = list(self._confirmed) + list(self._local)
        records = [r for r in map(self._render, ids) if r is not None]
        records.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        snapshot = tuple(records)
        self._snapshot_cache = (self._version, snapshot)
        return snapshot

    def _render(self, report_id: str) -> Report | None:
        local = self._local.get(report_id)
        base = local.record if local is not None else self._confirmed.get(report_id)
        if base is None:
            return None

        overlays = self._overlays.get(report_id)
        if not overlays:
            return base
        merged: dict[str, Any] = {}
        for fields in overlays.values():
            merged.update(fields)
        return base.model_copy(update=merged)

    # Change signal

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(
        self,
        source: ChangeSource,
        report_ids: tuple[str, ...],
        applied: tuple[Report, ...] = (),
        replaced: tuple[tuple[str, str], ...] = (),
    ) -> None:
        self._version += 1
        change = StoreChange(
            version=self._version, source=source, report_ids=report_ids, applied=applied, replaced=replaced
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Store listener failed on {source.value} change v{self._version}")
