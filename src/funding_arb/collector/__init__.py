"""Collection layer: listing reconciliation and incremental funding sync."""

from funding_arb.collector.guard import OperationGuard, OperationState
from funding_arb.collector.listing_reconciler import ListingReconciler
from funding_arb.collector.sync_coordinator import SyncCoordinator

__all__ = [
    "ListingReconciler",
    "OperationGuard",
    "OperationState",
    "SyncCoordinator",
]
