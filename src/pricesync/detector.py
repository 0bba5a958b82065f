"""
Conflict detection between a local record and its remote counterpart

Pattern: independent rules over one (local, remote, action) triple
- Data conflict: both sides timestamped and more than the clock skew
  threshold apart (sub-threshold differences are clock noise)
- Deletion conflict: local delete of a record the server holds live
- Creation conflict: local create of an identity that already exists remotely

Usage:
    detector = ConflictDetector()
    result = detector.detect(local_record, remote_record, "update")

    if result.has_conflicts:
        for strategy in result.resolution_suggestions:
            ...
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ValidationError
from .models import (
    Conflict,
    ConflictDetectionResult,
    ConflictType,
    MutationAction,
    Severity,
    record_timestamp,
    utcnow,
)
from .strategies import suggest_strategies

logger = logging.getLogger(__name__)


DEFAULT_CLOCK_SKEW_THRESHOLD_MS = 1000

SEVERITY_BY_TYPE: Dict[ConflictType, Severity] = {
    ConflictType.DATA: Severity.MEDIUM,
    ConflictType.DELETION: Severity.HIGH,
    ConflictType.CREATION: Severity.LOW,
}

DESCRIPTION_BY_TYPE: Dict[ConflictType, str] = {
    ConflictType.DATA: "The record was modified both locally and on the server",
    ConflictType.DELETION: "Attempted to delete a record that is still live on the server",
    ConflictType.CREATION: "The record already exists on the server",
}


class ConflictDetector:
    """
    Detects divergences between two versions of a record.

    Stateless apart from its settings; safe to share between threads.
    """

    def __init__(
        self,
        clock_skew_threshold_ms: int = DEFAULT_CLOCK_SKEW_THRESHOLD_MS,
        identity_field: str = "id",
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize ConflictDetector.

        Args:
            clock_skew_threshold_ms: Timestamp differences up to this many
                milliseconds are not reported as data conflicts
            identity_field: Record field holding the entity identity
            clock: Source of detection timestamps
        """
        if clock_skew_threshold_ms < 0:
            raise ValidationError("clock_skew_threshold_ms must be >= 0")
        self.clock_skew_threshold_ms = clock_skew_threshold_ms
        self.identity_field = identity_field
        self._clock = clock

    def detect(
        self,
        local_record: Mapping[str, Any],
        remote_record: Optional[Mapping[str, Any]],
        action: MutationAction,
    ) -> ConflictDetectionResult:
        """
        Detect conflicts for one attempted mutation.

        Args:
            local_record: Record as known locally
            remote_record: Record as known by the server (None if absent)
            action: Mutation the local replica was attempting

        Returns:
            ConflictDetectionResult with conflicts and ranked suggestions

        Raises:
            ValidationError: If records or action are malformed
        """
        action = self._validate(local_record, remote_record, action)
        conflicts: List[Conflict] = []

        if self._is_data_conflict(local_record, remote_record):
            conflicts.append(self._new_conflict(ConflictType.DATA, local_record, remote_record, action))

        if action == MutationAction.DELETE and self._is_live(remote_record):
            conflicts.append(self._new_conflict(ConflictType.DELETION, local_record, remote_record, action))

        if action == MutationAction.CREATE and self._identity(remote_record) is not None:
            conflicts.append(self._new_conflict(ConflictType.CREATION, local_record, remote_record, action))

        if not conflicts:
            logger.debug(f"No conflicts for {action.value} of {self._identity(local_record)}")
            return ConflictDetectionResult()

        logger.info(
            f"Detected {len(conflicts)} conflict(s) for {action.value} of "
            f"{self._identity(local_record) or self._identity(remote_record)}: "
            f"{', '.join(c.type.value for c in conflicts)}"
        )
        return ConflictDetectionResult(
            has_conflicts=True,
            conflicts=conflicts,
            resolution_suggestions=suggest_strategies(conflicts),
        )

    def _validate(
        self,
        local_record: Any,
        remote_record: Any,
        action: Any,
    ) -> MutationAction:
        if not isinstance(local_record, Mapping):
            raise ValidationError("Local record must be a mapping")
        if remote_record is not None and not isinstance(remote_record, Mapping):
            raise ValidationError("Remote record must be a mapping or None")
        try:
            action = MutationAction.from_string(action)
        except ValueError as e:
            raise ValidationError(str(e)) from None

        local_id = self._identity(local_record)
        remote_id = self._identity(remote_record)
        if local_id is not None and remote_id is not None and str(local_id) != str(remote_id):
            raise ValidationError(
                f"Records describe different entities ({local_id} != {remote_id})"
            )
        return action

    def _identity(self, record: Optional[Mapping[str, Any]]) -> Optional[Any]:
        if not record:
            return None
        value = record.get(self.identity_field)
        return None if value in (None, "") else value

    def _is_data_conflict(
        self,
        local_record: Mapping[str, Any],
        remote_record: Optional[Mapping[str, Any]],
    ) -> bool:
        local_time = record_timestamp(local_record)
        remote_time = record_timestamp(remote_record)
        if local_time is None or remote_time is None:
            return False
        return abs(local_time - remote_time) > timedelta(milliseconds=self.clock_skew_threshold_ms)

    @staticmethod
    def _is_live(remote_record: Optional[Mapping[str, Any]]) -> bool:
        return remote_record is not None and not remote_record.get("deleted")

    def _new_conflict(
        self,
        conflict_type: ConflictType,
        local_record: Mapping[str, Any],
        remote_record: Optional[Mapping[str, Any]],
        action: MutationAction,
    ) -> Conflict:
        return Conflict(
            id=str(uuid.uuid4()),
            type=conflict_type,
            severity=SEVERITY_BY_TYPE[conflict_type],
            description=DESCRIPTION_BY_TYPE[conflict_type],
            local_data=dict(local_record),
            remote_data=dict(remote_record) if remote_record is not None else None,
            detected_at=self._clock(),
            action=action,
        )
