"""
Errors raised by the sync layer.

Merge-time anomalies (stale or duplicate changes) are not errors; they are
reported as a ``MergeOutcome`` by the store and only logged.
"""


class SyncError(Exception):
    """Base class for every error surfaced by the sync layer."""


class TransportError(SyncError):
    """A fetch or write against the remote system failed."""


class ChannelDisconnected(SyncError):
    """The change channel dropped; a resync is required before trusting the store."""


class ReconciliationTimeout(SyncError):
    """An optimistic mutation was neither confirmed nor echoed in time and was rolled back."""

    def __init__(self, report_id: str, timeout: float):
        super().__init__(f"Mutation of report {report_id} not confirmed within {timeout:g}s")
        self.report_id = report_id
        self.timeout = timeout


class UnknownReportError(SyncError, LookupError):
    def __init__(self, report_id: str):
        super().__init__(f"Report {report_id} is not in the store")
        self.report_id = report_id


class InvalidPatchError(SyncError, ValueError):
    """A patch was rejected as a whole; nothing was applied."""
