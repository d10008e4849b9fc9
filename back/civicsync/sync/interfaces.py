"""
Boundaries to the remote system.

The sync layer only talks to these protocols. ``civicsync.services.reports``
(Postgres) and ``civicsync.services.realtime`` (Redis pub/sub) implement them;
the tests use in-memory fakes.
Every method raises ``TransportError`` when the remote call fails.
"""

# Standard library imports
from collections.abc import Callable, Mapping
from typing import Any, Protocol

# Local application imports
from civicsync.schemas.reports import Report, ReportCreate, ReportStatus

RecordCallback = Callable[[Mapping[str, Any]], None]
DisconnectCallback = Callable[[BaseException | None], None]


class ReportFetcher(Protocol):
    async def fetch_all(self, filter_hints: Mapping[str, Any] | None = None) -> list[Report]: ...


class ReportWriter(Protocol):
    async def write_status(self, report_id: str, status: ReportStatus) -> Report: ...

    async def update_report(self, report_id: str, fields: Mapping[str, Any]) -> Report: ...

    async def create_report(self, fields: ReportCreate) -> Report: ...


class ChangeChannel(Protocol):
    """
    At-least-once, unordered feed of full records for inserts and updates.

    Nothing missed while disconnected is redelivered.
    """

    async def subscribe(
        self,
        on_insert: RecordCallback,
        on_update: RecordCallback,
        on_disconnect: DisconnectCallback,
    ) -> Any: ...

    async def unsubscribe(self, handle: Any) -> None: ...
