"""
Shared fixtures: in-memory stand-ins for the remote collection, the change
channel and a report factory.
"""

# Standard library imports
import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from itertools import count
from typing import Any
from uuid import uuid4

# Third-party imports
import pytest

# Local application imports
from civicsync.schemas.reports import GeoPoint, Report, ReportCreate, ReportStatus
from civicsync.sync import EntityStore, SyncSession, TransportError

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_report(
    report_id: str = "r1",
    *,
    created: int = 0,
    updated: int | None = None,
    status: ReportStatus | str = ReportStatus.OPEN,
    category: str = "pothole",
    title: str | None = None,
    location: tuple[float, float] | None = (12.97, 77.59),
    **fields: Any,
) -> Report:
    """A report created ``created`` minutes and last updated ``updated`` minutes after ``BASE_TIME``."""
    created_at = BASE_TIME + timedelta(minutes=created)
    updated_at = BASE_TIME + timedelta(minutes=created if updated is None else updated)
    return Report(
        id=report_id,
        title=title or f"Report {report_id}",
        description=fields.pop("description", "Something is broken"),
        category=category,
        status=status,
        location=GeoPoint(latitude=location[0], longitude=location[1]) if location else None,
        created_at=created_at,
        updated_at=updated_at,
        **fields,
    )


def as_payload(record: Report | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(record, Report):
        return record.model_dump(mode="json")
    return dict(record)


class FakeChannel:
    """Change channel that delivers synchronously to every live handle."""

    def __init__(self, log: list[str] | None = None):
        self.log = log if log is not None else []
        self._ids = count(1)
        self.handles: dict[int, tuple[Any, Any, Any]] = {}
        # every callback triple ever handed out, to simulate late delivery on released handles
        self.history: dict[int, tuple[Any, Any, Any]] = {}
        self.released: list[int] = []
        self.fail_subscribe = 0

    async def subscribe(self, on_insert, on_update, on_disconnect) -> int:
        self.log.append("subscribe")
        if self.fail_subscribe:
            self.fail_subscribe -= 1
            raise TransportError("subscribe failed")
        handle = next(self._ids)
        self.handles[handle] = (on_insert, on_update, on_disconnect)
        self.history[handle] = (on_insert, on_update, on_disconnect)
        return handle

    async def unsubscribe(self, handle: int) -> None:
        self.log.append("unsubscribe")
        self.handles.pop(handle, None)
        self.released.append(handle)

    @property
    def subscriber_count(self) -> int:
        return len(self.handles)

    def emit_insert(self, record: Report | Mapping[str, Any]) -> None:
        for on_insert, _, _ in list(self.handles.values()):
            on_insert(as_payload(record))

    def emit_update(self, record: Report | Mapping[str, Any]) -> None:
        for _, on_update, _ in list(self.handles.values()):
            on_update(as_payload(record))

    def emit_on(self, handle: int, record: Report | Mapping[str, Any]) -> None:
        self.history[handle][1](as_payload(record))

    def disconnect(self, exc: BaseException | None = None) -> None:
        for _, _, on_disconnect in list(self.handles.values()):
            on_disconnect(exc or ConnectionError("socket closed"))


class FakeRemote:
    """
    The remote collection: answers bulk fetches and performs writes.

    ``write_mode`` is ``"ok"``, ``"fail"`` or ``"hang"``. With ``echo`` set,
    every successful write is broadcast on the channel before the response is
    returned; ``response_gate`` holds the response back until it is set.
    """

    def __init__(self, records: list[Report] | None = None, log: list[str] | None = None):
        self.rows: dict[str, Report] = {r.id: r for r in records or []}
        self.log = log if log is not None else []
        self.fail_fetches = 0
        self.write_mode = "ok"
        self.echo: FakeChannel | None = None
        self.response_gate: asyncio.Event | None = None
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self.fetch_hints: list[Mapping[str, Any] | None] = []

    async def fetch_all(self, filter_hints: Mapping[str, Any] | None = None) -> list[Report]:
        self.log.append("fetch")
        self.fetch_hints.append(filter_hints)
        if self.fail_fetches:
            self.fail_fetches -= 1
            raise TransportError("fetch failed")
        return sorted(self.rows.values(), key=lambda r: r.created_at, reverse=True)

    async def write_status(self, report_id: str, status: ReportStatus) -> Report:
        return await self._update("write_status", report_id, {"status": status})

    async def update_report(self, report_id: str, fields: Mapping[str, Any]) -> Report:
        return await self._update("update_report", report_id, dict(fields))

    async def create_report(self, fields: ReportCreate) -> Report:
        self.writes.append(("create_report", "", fields.model_dump()))
        await self._before_write()
        now = max((r.updated_at for r in self.rows.values()), default=BASE_TIME) + timedelta(minutes=1)
        record = Report(
            id=str(uuid4()),
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
        self.rows[record.id] = record
        return await self._respond(record, insert=True)

    async def _update(self, method: str, report_id: str, fields: dict[str, Any]) -> Report:
        self.writes.append((method, report_id, fields))
        await self._before_write()
        current = self.rows[report_id]
        record = current.model_copy(update={**fields, "updated_at": current.updated_at + timedelta(minutes=1)})
        self.rows[report_id] = record
        return await self._respond(record, insert=False)

    async def _before_write(self) -> None:
        if self.write_mode == "fail":
            raise TransportError("write rejected")
        if self.write_mode == "hang":
            await asyncio.Event().wait()

    async def _respond(self, record: Report, *, insert: bool) -> Report:
        if self.echo is not None:
            if insert:
                self.echo.emit_insert(record)
            else:
                self.echo.emit_update(record)
        if self.response_gate is not None:
            await self.response_gate.wait()
        return record


# --- Fixtures ---


@pytest.fixture
def event_log() -> list[str]:
    """Ordered record of fetch/subscribe/unsubscribe calls across the fakes."""
    return []


@pytest.fixture
def channel(event_log) -> FakeChannel:
    return FakeChannel(event_log)


@pytest.fixture
def remote(event_log) -> FakeRemote:
    return FakeRemote(
        [
            make_report("r1", created=0),
            make_report("r2", created=10, category="garbage"),
            make_report("r3", created=20, status="resolved", updated=80, location=None),
        ],
        event_log,
    )


@pytest.fixture
def store() -> EntityStore:
    return EntityStore()


@pytest.fixture
def session(remote, channel) -> SyncSession:
    return SyncSession(
        remote,
        channel,
        remote,
        reconciliation_timeout=0.2,
        resync_max_retries=3,
        resync_backoff_seconds=0.01,
    )
