"""
Data model for offline conflict detection and resolution

Pattern: frozen dataclasses with to_dict/from_dict for storage,
str enums with case-insensitive from_string for external input.

Record snapshots (local_data / remote_data) are opaque mappings. The only
field the engine reads from them is the modification timestamp, exposed
through record_timestamp().
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .errors import InvalidTransitionError, ValidationError


TIMESTAMP_FIELDS = ("updatedAt", "updated_at")


class _ChoiceEnum(str, Enum):
    """str enum accepting case-insensitive string input"""

    @classmethod
    def from_string(cls, value: str) -> "_ChoiceEnum":
        """
        Convert a string to an enum member

        Args:
            value: Member value (case-insensitive)

        Returns:
            Enum member

        Raises:
            ValueError: If value is not a member
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        choices = ", ".join(m.value for m in cls)
        raise ValueError(
            f"Invalid {cls.__name__} '{value}'. Must be one of: {choices}"
        )

    def __str__(self) -> str:
        return self.value


class ConflictType(_ChoiceEnum):
    """
    Kinds of divergence between a local and a remote record

    - DATA: both sides modified the record (timestamps disagree)
    - DELETION: local delete of a record the server still holds live
    - CREATION: local create of a record that already exists remotely
    """
    DATA = "data_conflict"
    DELETION = "deletion_conflict"
    CREATION = "creation_conflict"


class Severity(_ChoiceEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MutationAction(_ChoiceEnum):
    """Mutation the local replica was attempting"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ConflictStatus(_ChoiceEnum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ResolutionOutcome(_ChoiceEnum):
    """Which version survives a resolution"""
    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"
    SKIP = "skip"


class ResolvedBy(_ChoiceEnum):
    SYSTEM = "system"
    USER = "user"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalize a timestamp to an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), epoch milliseconds,
    and ISO-8601 strings (a trailing 'Z' is accepted).

    Args:
        value: Raw timestamp value

    Returns:
        Aware datetime, or None if value is None or empty

    Raises:
        ValidationError: If value is present but not a timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(timezone.utc)
        except OverflowError:
            raise ValidationError(f"Timestamp out of range: {value!r}") from None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValidationError(f"Invalid timestamp: {value!r}")
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValidationError(f"Timestamp out of range: {value!r}") from None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}") from None
        return parse_timestamp(parsed)
    raise ValidationError(f"Invalid timestamp: {value!r}")


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def record_timestamp(record: Optional[Mapping[str, Any]]) -> Optional[datetime]:
    """
    Modification timestamp of a record snapshot.

    Args:
        record: Opaque record mapping (may be None)

    Returns:
        Aware datetime, or None when the record carries no timestamp
    """
    if not record:
        return None
    for key in TIMESTAMP_FIELDS:
        if record.get(key) not in (None, ""):
            return parse_timestamp(record[key])
    return None


def _json_safe(value: Any) -> Any:
    """Convert datetimes nested in a record snapshot to ISO strings"""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


@dataclass(frozen=True)
class ResolutionStrategy:
    """
    A named resolution policy

    Lower priority values are preferred when strategies are ranked.
    """
    id: str
    name: str
    description: str
    automatic: bool
    priority: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "automatic": self.automatic,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResolutionStrategy":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            automatic=bool(data.get("automatic", False)),
            priority=int(data.get("priority", 0)),
        )


@dataclass(frozen=True)
class ConflictResolution:
    """
    Record of how a conflict was settled

    The strategy is snapshotted by value so later catalog edits do not
    rewrite history.
    """
    conflict_id: str
    strategy: ResolutionStrategy
    resolved_at: datetime
    resolved_by: ResolvedBy
    resolution: ResolutionOutcome
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflict_id": self.conflict_id,
            "strategy": self.strategy.to_dict(),
            "resolved_at": format_timestamp(self.resolved_at),
            "resolved_by": self.resolved_by.value,
            "resolution": self.resolution.value,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConflictResolution":
        return cls(
            conflict_id=data["conflict_id"],
            strategy=ResolutionStrategy.from_dict(data["strategy"]),
            resolved_at=parse_timestamp(data["resolved_at"]),
            resolved_by=ResolvedBy.from_string(data["resolved_by"]),
            resolution=ResolutionOutcome.from_string(data["resolution"]),
            details=data.get("details"),
        )


@dataclass(frozen=True)
class Conflict:
    """
    A detected divergence between a local and a remote record

    Only the status / resolved_at / resolution triad changes after
    detection, and only once, through mark_resolved().
    """
    id: str
    type: ConflictType
    severity: Severity
    description: str
    local_data: Dict[str, Any]
    remote_data: Optional[Dict[str, Any]]
    detected_at: datetime
    action: MutationAction
    status: ConflictStatus = ConflictStatus.PENDING
    resolved_at: Optional[datetime] = None
    resolution: Optional[ConflictResolution] = None

    def __hash__(self) -> int:
        # Snapshots are dicts; identity is the id
        return hash(self.id)

    @property
    def is_pending(self) -> bool:
        return self.status == ConflictStatus.PENDING

    @property
    def local_updated_at(self) -> Optional[datetime]:
        return record_timestamp(self.local_data)

    @property
    def remote_updated_at(self) -> Optional[datetime]:
        return record_timestamp(self.remote_data)

    def mark_resolved(self, resolution: ConflictResolution) -> "Conflict":
        """
        Transition pending -> resolved.

        Args:
            resolution: Resolution produced for this conflict

        Returns:
            New Conflict in the resolved state

        Raises:
            InvalidTransitionError: If already resolved or the resolution
                belongs to another conflict
        """
        if not self.is_pending:
            raise InvalidTransitionError(f"Conflict already resolved: {self.id}")
        if resolution.conflict_id != self.id:
            raise InvalidTransitionError(
                f"Resolution for {resolution.conflict_id} cannot settle {self.id}"
            )
        return replace(
            self,
            status=ConflictStatus.RESOLVED,
            resolved_at=resolution.resolved_at,
            resolution=resolution,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "local_data": _json_safe(self.local_data),
            "remote_data": _json_safe(self.remote_data),
            "detected_at": format_timestamp(self.detected_at),
            "action": self.action.value,
            "status": self.status.value,
            "resolved_at": format_timestamp(self.resolved_at),
            "resolution": self.resolution.to_dict() if self.resolution else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Conflict":
        """Rebuild a Conflict from its storage dictionary"""
        resolution = data.get("resolution")
        return cls(
            id=data["id"],
            type=ConflictType.from_string(data["type"]),
            severity=Severity.from_string(data["severity"]),
            description=data.get("description", ""),
            local_data=dict(data.get("local_data") or {}),
            remote_data=dict(data["remote_data"]) if data.get("remote_data") is not None else None,
            detected_at=parse_timestamp(data["detected_at"]),
            action=MutationAction.from_string(data["action"]),
            status=ConflictStatus.from_string(data.get("status", "pending")),
            resolved_at=parse_timestamp(data.get("resolved_at")),
            resolution=ConflictResolution.from_dict(resolution) if resolution else None,
        )


@dataclass
class ConflictDetectionResult:
    """Outcome of one detection call"""
    has_conflicts: bool = False
    conflicts: List[Conflict] = field(default_factory=list)
    resolution_suggestions: List[ResolutionStrategy] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_conflicts": self.has_conflicts,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "resolution_suggestions": [s.to_dict() for s in self.resolution_suggestions],
            "error": self.error,
        }


@dataclass
class ConflictStatistics:
    """Aggregate counts over the conflict store"""
    total: int = 0
    pending: int = 0
    resolved: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)

    def add(self, conflict: Conflict) -> None:
        self.total += 1
        if conflict.is_pending:
            self.pending += 1
        else:
            self.resolved += 1
        self.by_type[conflict.type.value] = self.by_type.get(conflict.type.value, 0) + 1
        self.by_severity[conflict.severity.value] = (
            self.by_severity.get(conflict.severity.value, 0) + 1
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "resolved": self.resolved,
            "by_type": dict(self.by_type),
            "by_severity": dict(self.by_severity),
        }
