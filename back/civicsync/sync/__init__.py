"""
Client-side synchronisation of the report collection.

``SyncSession`` is the entry point: it wires an ``EntityStore`` to the change
feed and the mutation coordinator and serves the list, map and dashboard
projections.
"""

# Local application imports
from civicsync.sync.aggregates import compute_aggregates
from civicsync.sync.exceptions import (
    ChannelDisconnected,
    InvalidPatchError,
    ReconciliationTimeout,
    SyncError,
    TransportError,
    UnknownReportError,
)
from civicsync.sync.feed import ChangeFeedSubscriber
from civicsync.sync.mutations import MutationAttempt, MutationCoordinator, MutationState
from civicsync.sync.queries import filter_reports, map_reports
from civicsync.sync.session import SyncSession
from civicsync.sync.store import ChangeSource, EntityStore, MergeOutcome, StoreChange
from civicsync.sync.views import AggregateView, FilteredView

__all__ = [
    "AggregateView",
    "ChangeFeedSubscriber",
    "ChangeSource",
    "ChannelDisconnected",
    "EntityStore",
    "FilteredView",
    "InvalidPatchError",
    "MergeOutcome",
    "MutationAttempt",
    "MutationCoordinator",
    "MutationState",
    "ReconciliationTimeout",
    "StoreChange",
    "SyncError",
    "SyncSession",
    "TransportError",
    "UnknownReportError",
    "compute_aggregates",
    "filter_reports",
    "map_reports",
]
