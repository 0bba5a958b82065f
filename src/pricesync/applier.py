"""
Resolution applier

Turns a (conflict, strategy) pair into a ConflictResolution record. The
applier only decides; persisting the transition is the lifecycle
manager's job.

Decision table:
- last_modified: local iff local updatedAt is strictly newer, else remote;
  skip when either timestamp is missing
- local_priority: local
- remote_priority: remote
- merge_data: merge (the decision only, no merged payload is computed)
- any other catalog id (user_preference): skip

Human decisions go through apply_manual(), which never consults the table.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from .errors import ValidationError
from .models import (
    Conflict,
    ConflictResolution,
    ResolutionOutcome,
    ResolutionStrategy,
    ResolvedBy,
    utcnow,
)
from .strategies import (
    LAST_MODIFIED,
    LOCAL_PRIORITY,
    MANUAL,
    MANUAL_STRATEGY,
    MERGE_DATA,
    REMOTE_PRIORITY,
    STRATEGY_CATALOG,
)

logger = logging.getLogger(__name__)


class ResolutionApplier:
    """Applies catalog strategies and manual decisions to conflicts"""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def apply(self, conflict: Conflict, strategy: ResolutionStrategy) -> ConflictResolution:
        """
        Decide a conflict with a catalog strategy.

        Args:
            conflict: Conflict to decide
            strategy: Strategy to apply

        Returns:
            ConflictResolution; resolved_by is always system, only
            apply_manual() records user decisions

        Raises:
            ValidationError: If the strategy id is not in the catalog
        """
        if strategy.id != MANUAL and strategy.id not in STRATEGY_CATALOG:
            raise ValidationError(f"Unknown resolution strategy: {strategy.id}")
        if strategy.id in STRATEGY_CATALOG and strategy.automatic != STRATEGY_CATALOG[strategy.id].automatic:
            raise ValidationError(f"Strategy {strategy.id} does not match the catalog entry")

        outcome, details = self._decide(conflict, strategy)
        resolution = ConflictResolution(
            conflict_id=conflict.id,
            strategy=strategy,
            resolved_at=self._clock(),
            resolved_by=ResolvedBy.SYSTEM,
            resolution=outcome,
            details=details,
        )
        logger.debug(f"Conflict {conflict.id}: {strategy.id} -> {outcome.value}")
        return resolution

    def apply_manual(
        self,
        conflict: Conflict,
        outcome: ResolutionOutcome,
        details: Optional[str] = None,
    ) -> ConflictResolution:
        """
        Record a decision made by a person.

        Args:
            conflict: Conflict being settled
            outcome: Version the user chose
            details: Optional free-text rationale

        Raises:
            ValidationError: If outcome is not a ResolutionOutcome value
        """
        try:
            outcome = ResolutionOutcome.from_string(outcome)
        except ValueError as e:
            raise ValidationError(str(e)) from None

        return ConflictResolution(
            conflict_id=conflict.id,
            strategy=MANUAL_STRATEGY,
            resolved_at=self._clock(),
            resolved_by=ResolvedBy.USER,
            resolution=outcome,
            details=details,
        )

    @staticmethod
    def _decide(conflict: Conflict, strategy: ResolutionStrategy):
        if strategy.id == LAST_MODIFIED:
            local_time = conflict.local_updated_at
            remote_time = conflict.remote_updated_at
            if local_time is None or remote_time is None:
                return ResolutionOutcome.SKIP, "Cannot compare versions without both timestamps"
            outcome = ResolutionOutcome.LOCAL if local_time > remote_time else ResolutionOutcome.REMOTE
            return outcome, f"Kept the most recent version ({outcome.value})"

        if strategy.id == LOCAL_PRIORITY:
            return ResolutionOutcome.LOCAL, "Local version takes priority"

        if strategy.id == REMOTE_PRIORITY:
            return ResolutionOutcome.REMOTE, "Server version takes priority"

        if strategy.id == MERGE_DATA:
            return ResolutionOutcome.MERGE, "Merge of the non-conflicting fields"

        return ResolutionOutcome.SKIP, "Manual resolution required"
