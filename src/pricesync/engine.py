"""
ConflictEngine - the interface the sync driver and UI call into

Wires the detector, applier and lifecycle manager around one injected
store. Detection is fail-open (errors come back as an empty result with
`error` set, so a sync is never blocked). Resolution is fail-closed
(errors propagate and the conflict stays pending).

Usage:
    engine = ConflictEngine(InMemoryConflictStore())

    result = engine.detect_conflicts(local, remote, "update")
    if result.has_conflicts:
        strategy = result.resolution_suggestions[0]
        if strategy.automatic:
            engine.resolve_conflicts_automatically(result.conflicts, strategy)
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from .applier import ResolutionApplier
from .config import EngineConfig
from .detector import DEFAULT_CLOCK_SKEW_THRESHOLD_MS, ConflictDetector
from .errors import StorageError, ValidationError
from .lifecycle import DEFAULT_RETENTION_DAYS, ConflictLifecycleManager
from .models import (
    Conflict,
    ConflictDetectionResult,
    ConflictResolution,
    ConflictStatistics,
    ConflictType,
    MutationAction,
    ResolutionOutcome,
    ResolutionStrategy,
    Severity,
    utcnow,
)
from .store import DEFAULT_PAGE_SIZE, ConflictStore, SQLiteConflictStore
from .strategies import list_strategies

logger = logging.getLogger(__name__)


class ConflictEngine:
    """Stateless service object over a conflict store"""

    def __init__(
        self,
        store: ConflictStore,
        clock_skew_threshold_ms: int = DEFAULT_CLOCK_SKEW_THRESHOLD_MS,
        identity_field: str = "id",
        retention_days: float = DEFAULT_RETENTION_DAYS,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize ConflictEngine.

        Args:
            store: Conflict store backend
            clock_skew_threshold_ms: Data-conflict threshold in milliseconds
            identity_field: Record field holding the entity identity
            retention_days: Default retention window for cleanup
            page_size: Records read per page during scans
            clock: Source of the current time
        """
        self.store = store
        self.retention_days = retention_days
        self.detector = ConflictDetector(
            clock_skew_threshold_ms=clock_skew_threshold_ms,
            identity_field=identity_field,
            clock=clock,
        )
        self.applier = ResolutionApplier(clock=clock)
        self.lifecycle = ConflictLifecycleManager(
            store, applier=self.applier, page_size=page_size, clock=clock
        )

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ConflictEngine":
        """Build an engine backed by the SQLite store named in config."""
        return cls(
            SQLiteConflictStore(config.db_path),
            clock_skew_threshold_ms=config.clock_skew_threshold_ms,
            identity_field=config.identity_field,
            retention_days=config.retention_days,
            page_size=config.page_size,
        )

    # ==================== Detection ====================

    def detect_conflicts(
        self,
        local: Mapping[str, Any],
        remote: Optional[Mapping[str, Any]],
        action: MutationAction,
    ) -> ConflictDetectionResult:
        """
        Detect and record conflicts for one attempted mutation.

        Never raises for malformed input or storage failures; the returned
        result has no conflicts and carries the error message instead, and
        no conflict from the failed call is left pending in the store.
        """
        try:
            result = self.detector.detect(local, remote, action)
            if result.has_conflicts:
                self.lifecycle.record(result.conflicts)
            return result
        except (ValidationError, StorageError) as e:
            logger.error(f"Conflict detection failed: {e}")
            return ConflictDetectionResult(error=str(e))

    # ==================== Resolution ====================

    def apply_strategy(self, conflict: Conflict, strategy: ResolutionStrategy) -> ConflictResolution:
        """
        Decide a conflict with a strategy.

        Automatic strategies are persisted immediately. For manual ones the
        caller collects a choice and calls resolve_conflict_manually().
        """
        resolution = self.applier.apply(conflict, strategy)
        if strategy.automatic:
            self.lifecycle.mark_resolved(conflict.id, resolution)
        return resolution

    def resolve_conflicts_automatically(
        self,
        conflicts: List[Conflict],
        strategy: ResolutionStrategy,
    ) -> List[ConflictResolution]:
        return self.lifecycle.resolve_automatically(conflicts, strategy)

    def resolve_conflict_manually(
        self,
        conflict_id: str,
        resolution: ResolutionOutcome,
        details: Optional[str] = None,
    ) -> ConflictResolution:
        return self.lifecycle.resolve_manually(conflict_id, resolution, details)

    # ==================== Queries ====================

    def get_conflict(self, conflict_id: str) -> Optional[Conflict]:
        return self.lifecycle.get_conflict(conflict_id)

    def get_pending_conflicts(
        self,
        conflict_type: Optional[ConflictType] = None,
        severity: Optional[Severity] = None,
    ) -> List[Conflict]:
        return self.lifecycle.pending_conflicts(conflict_type=conflict_type, severity=severity)

    def get_resolution_history(self) -> List[ConflictResolution]:
        return self.lifecycle.resolution_history()

    def get_conflict_statistics(self) -> ConflictStatistics:
        return self.lifecycle.statistics()

    def cleanup_resolved_conflicts(self, days: Optional[float] = None) -> int:
        """Delete resolved conflicts older than `days` (default: configured retention)."""
        return self.lifecycle.cleanup(self.retention_days if days is None else days)

    @staticmethod
    def list_strategies() -> List[ResolutionStrategy]:
        return list_strategies()

    def close(self) -> None:
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
