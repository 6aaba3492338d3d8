"""Reconciliation pipeline - window filter, normalizer, merger and writer."""

from polymarket_sports_sync.sync.reconciler import ReconcileResult, Reconciler
from polymarket_sports_sync.sync.service import (
    CatalogSync,
    RunStatus,
    SyncState,
    SyncStats,
    SyncSummary,
)
from polymarket_sports_sync.sync.window import EventWindow, WindowFilter

__all__ = [
    "CatalogSync",
    "EventWindow",
    "ReconcileResult",
    "Reconciler",
    "RunStatus",
    "SyncState",
    "SyncStats",
    "SyncSummary",
    "WindowFilter",
]
