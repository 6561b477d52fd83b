"""Sync package - diff engine, retry policy and the update orchestrator."""

from packsync.sync.batch import BatchProcessor
from packsync.sync.diff import build_preview, compute_diff, index_by_project_id
from packsync.sync.orchestrator import SyncOrchestrator
from packsync.sync.retry import RetryPolicy, RetryState, is_retryable
from packsync.sync.session import (
    CancellationToken,
    SyncPhase,
    SyncProgress,
    SyncResult,
    SyncSession,
)
from packsync.sync.singleflight import SingleFlight


__all__ = [
    "BatchProcessor",
    "CancellationToken",
    "RetryPolicy",
    "RetryState",
    "SingleFlight",
    "SyncOrchestrator",
    "SyncPhase",
    "SyncProgress",
    "SyncResult",
    "SyncSession",
    "build_preview",
    "compute_diff",
    "index_by_project_id",
    "is_retryable",
]
