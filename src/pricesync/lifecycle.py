"""
Conflict lifecycle - persistence, pending -> resolved transitions, queries

State machine per conflict:
    pending --resolve(resolution)--> resolved --cleanup--> (deleted)

Every transition is a compare-and-set on the stored record keyed on
status = pending, so two resolvers racing on one conflict cannot both win.
Pending conflicts are never deleted.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Iterator, List, Optional

from .applier import ResolutionApplier
from .errors import NotFoundError, StorageError, ValidationError
from .models import (
    Conflict,
    ConflictResolution,
    ConflictStatistics,
    ConflictStatus,
    ConflictType,
    ResolutionOutcome,
    ResolutionStrategy,
    Severity,
    utcnow,
)
from .store import CONFLICTS_COLLECTION, DEFAULT_PAGE_SIZE, ConflictStore

logger = logging.getLogger(__name__)


DEFAULT_RETENTION_DAYS = 30


class ConflictLifecycleManager:
    """
    Owns conflict records in the store.

    Holds no state of its own beyond its collaborators; every query goes
    back to the store.
    """

    def __init__(
        self,
        store: ConflictStore,
        applier: Optional[ResolutionApplier] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize ConflictLifecycleManager.

        Args:
            store: Conflict store backend
            applier: Resolution applier (default: one sharing `clock`)
            page_size: Records read per page during scans
            clock: Source of the current time for cleanup
        """
        self.store = store
        self.applier = applier or ResolutionApplier(clock=clock)
        self.page_size = page_size
        self._clock = clock

    # ==================== Recording ====================

    def record(self, conflicts: Iterable[Conflict]) -> None:
        """
        Persist newly detected conflicts.

        All or nothing: if the store fails partway, the conflicts already
        written from this batch are deleted before the error propagates.

        Raises:
            ValidationError: If a conflict is not pending (nothing is written)
            StorageError: If the store rejects a write
        """
        conflicts = list(conflicts)
        for conflict in conflicts:
            if not conflict.is_pending:
                raise ValidationError(f"Only pending conflicts can be recorded: {conflict.id}")

        written: List[str] = []
        try:
            for conflict in conflicts:
                self.store.put(CONFLICTS_COLLECTION, conflict.to_dict())
                written.append(conflict.id)
        except StorageError:
            self._discard(written)
            raise

    def _discard(self, conflict_ids: List[str]) -> None:
        for conflict_id in conflict_ids:
            try:
                self.store.delete(CONFLICTS_COLLECTION, conflict_id)
            except StorageError as e:
                logger.warning(f"Could not discard partially recorded conflict {conflict_id}: {e}")

    def get_conflict(self, conflict_id: str) -> Optional[Conflict]:
        data = self.store.get(CONFLICTS_COLLECTION, conflict_id)
        return Conflict.from_dict(data) if data else None

    # ==================== Transitions ====================

    def mark_resolved(self, conflict_id: str, resolution: ConflictResolution) -> Conflict:
        """
        Transition a pending conflict to resolved.

        Args:
            conflict_id: Conflict to resolve
            resolution: Resolution to attach

        Returns:
            The resolved Conflict as stored

        Raises:
            NotFoundError: If the conflict is absent or no longer pending
        """
        conflict = self.get_conflict(conflict_id)
        if conflict is None:
            raise NotFoundError(f"Conflict not found: {conflict_id}")
        if not conflict.is_pending:
            raise NotFoundError(f"Conflict already resolved: {conflict_id}")

        resolved = conflict.mark_resolved(resolution)
        written = self.store.compare_and_put(
            CONFLICTS_COLLECTION,
            resolved.to_dict(),
            expected={"status": ConflictStatus.PENDING.value},
        )
        if not written:
            raise NotFoundError(f"Conflict no longer pending: {conflict_id}")

        logger.info(
            f"Resolved conflict {conflict_id} with {resolution.strategy.id} "
            f"-> {resolution.resolution.value} (by {resolution.resolved_by.value})"
        )
        return resolved

    def resolve_automatically(
        self,
        conflicts: Iterable[Conflict],
        strategy: ResolutionStrategy,
    ) -> List[ConflictResolution]:
        """
        Apply an automatic strategy to each conflict and persist the result.

        Conflicts already resolved elsewhere are skipped, so the result may
        be shorter than the input.

        Args:
            conflicts: Conflicts to resolve
            strategy: Strategy to apply; a manual strategy resolves nothing

        Returns:
            Resolutions actually produced

        Raises:
            NotFoundError: If a conflict was never recorded
        """
        if not strategy.automatic:
            logger.info(f"Strategy {strategy.id} is not automatic; nothing resolved")
            return []

        resolutions = []
        for conflict in conflicts:
            stored = self.get_conflict(conflict.id)
            if stored is None:
                raise NotFoundError(f"Conflict not found: {conflict.id}")
            if not stored.is_pending:
                logger.warning(f"Skipping conflict {conflict.id}: already resolved")
                continue

            resolution = self.applier.apply(stored, strategy)
            try:
                self.mark_resolved(stored.id, resolution)
            except NotFoundError:
                logger.warning(f"Skipping conflict {conflict.id}: resolved concurrently")
                continue
            resolutions.append(resolution)

        return resolutions

    def resolve_manually(
        self,
        conflict_id: str,
        outcome: ResolutionOutcome,
        details: Optional[str] = None,
    ) -> ConflictResolution:
        """
        Record a user's decision for a pending conflict.

        Raises:
            NotFoundError: If the id does not reference a pending conflict
            ValidationError: If outcome is invalid
        """
        conflict = self.get_conflict(conflict_id)
        if conflict is None or not conflict.is_pending:
            raise NotFoundError(f"No pending conflict with id {conflict_id}")

        resolution = self.applier.apply_manual(conflict, outcome, details)
        self.mark_resolved(conflict_id, resolution)
        return resolution

    # ==================== Queries ====================

    def _iter_conflicts(self) -> Iterator[Conflict]:
        for data in self.store.scan(CONFLICTS_COLLECTION, page_size=self.page_size):
            yield Conflict.from_dict(data)

    def pending_conflicts(
        self,
        conflict_type: Optional[ConflictType] = None,
        severity: Optional[Severity] = None,
    ) -> List[Conflict]:
        """
        Pending conflicts, oldest first.

        Args:
            conflict_type: Only return conflicts of this type
            severity: Only return conflicts of this severity

        Raises:
            ValidationError: If a filter is not a known type or severity
        """
        try:
            if conflict_type is not None:
                conflict_type = ConflictType.from_string(conflict_type)
            if severity is not None:
                severity = Severity.from_string(severity)
        except ValueError as e:
            raise ValidationError(str(e)) from None

        pending = [
            c for c in self._iter_conflicts()
            if c.is_pending
            and (conflict_type is None or c.type == conflict_type)
            and (severity is None or c.severity == severity)
        ]
        return sorted(pending, key=lambda c: c.detected_at)

    def resolution_history(self) -> List[ConflictResolution]:
        """Resolutions of every resolved conflict, in no particular order"""
        return [
            c.resolution for c in self._iter_conflicts()
            if not c.is_pending and c.resolution is not None
        ]

    def statistics(self) -> ConflictStatistics:
        """Counts by status, type and severity from one pass over the store"""
        stats = ConflictStatistics()
        for conflict in self._iter_conflicts():
            stats.add(conflict)
        return stats

    # ==================== Retention ====================

    def cleanup(self, retention_days: float = DEFAULT_RETENTION_DAYS) -> int:
        """
        Delete resolved conflicts older than the retention window.

        Args:
            retention_days: Keep conflicts resolved within this many days

        Returns:
            Number of conflicts deleted

        Raises:
            ValidationError: If retention_days is negative
        """
        if retention_days < 0:
            raise ValidationError("retention_days must be >= 0")

        cutoff = self._clock() - timedelta(days=retention_days)
        deleted = 0
        for conflict in self._iter_conflicts():
            if conflict.is_pending or conflict.resolved_at is None:
                continue
            if conflict.resolved_at < cutoff:
                if self.store.delete(CONFLICTS_COLLECTION, conflict.id):
                    deleted += 1

        logger.info(f"Cleanup finished: {deleted} resolved conflict(s) older than {retention_days} days deleted")
        return deleted
