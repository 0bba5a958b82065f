"""
Resolution strategy catalog

A fixed table of named strategies keyed by id, plus the conflict types
each one applies to. The catalog is validated at import time.
"""

from typing import Dict, FrozenSet, Iterable, List, Mapping

from .errors import CatalogError, ValidationError
from .models import Conflict, ConflictType, ResolutionStrategy


LAST_MODIFIED = "last_modified"
USER_PREFERENCE = "user_preference"
LOCAL_PRIORITY = "local_priority"
REMOTE_PRIORITY = "remote_priority"
MERGE_DATA = "merge_data"
MANUAL = "manual"


STRATEGY_CATALOG: Dict[str, ResolutionStrategy] = {
    LAST_MODIFIED: ResolutionStrategy(
        id=LAST_MODIFIED,
        name="Last modified",
        description="Keep the most recently modified version",
        automatic=True,
        priority=1,
    ),
    USER_PREFERENCE: ResolutionStrategy(
        id=USER_PREFERENCE,
        name="User preference",
        description="Ask the user which version to keep",
        automatic=False,
        priority=2,
    ),
    LOCAL_PRIORITY: ResolutionStrategy(
        id=LOCAL_PRIORITY,
        name="Local priority",
        description="Always keep the local version",
        automatic=True,
        priority=3,
    ),
    REMOTE_PRIORITY: ResolutionStrategy(
        id=REMOTE_PRIORITY,
        name="Remote priority",
        description="Always keep the server version",
        automatic=True,
        priority=4,
    ),
    MERGE_DATA: ResolutionStrategy(
        id=MERGE_DATA,
        name="Merge data",
        description="Merge the non-conflicting fields",
        automatic=False,
        priority=5,
    ),
}

APPLICABILITY: Dict[str, FrozenSet[ConflictType]] = {
    LAST_MODIFIED: frozenset({ConflictType.DATA}),
    USER_PREFERENCE: frozenset({ConflictType.DATA, ConflictType.DELETION}),
    LOCAL_PRIORITY: frozenset({ConflictType.CREATION, ConflictType.DATA}),
    REMOTE_PRIORITY: frozenset({
        ConflictType.DELETION, ConflictType.CREATION, ConflictType.DATA,
    }),
    MERGE_DATA: frozenset({ConflictType.DATA}),
}

# Recorded on resolutions chosen by a person; never part of the catalog
MANUAL_STRATEGY = ResolutionStrategy(
    id=MANUAL,
    name="Manual resolution",
    description="Resolution chosen by the user",
    automatic=False,
    priority=99,
)


def validate_catalog(
    catalog: Mapping[str, ResolutionStrategy],
    applicability: Mapping[str, Iterable[ConflictType]],
) -> None:
    """
    Check a strategy catalog for internal consistency.

    Args:
        catalog: Strategies keyed by id
        applicability: Conflict types keyed by strategy id

    Raises:
        CatalogError: If keys and ids disagree, priorities collide,
            or applicability references unknown strategies or types
    """
    priorities = set()
    for key, strategy in catalog.items():
        if key != strategy.id:
            raise CatalogError(f"Catalog key '{key}' does not match strategy id '{strategy.id}'")
        if strategy.priority in priorities:
            raise CatalogError(f"Duplicate strategy priority {strategy.priority}")
        priorities.add(strategy.priority)
        if key == MANUAL:
            raise CatalogError(f"'{MANUAL}' is reserved for user resolutions")

    for key, types in applicability.items():
        if key not in catalog:
            raise CatalogError(f"Applicability references unknown strategy '{key}'")
        for conflict_type in types:
            if not isinstance(conflict_type, ConflictType):
                raise CatalogError(f"Unknown conflict type {conflict_type!r} for '{key}'")

    covered = set()
    for types in applicability.values():
        covered.update(types)
    missing = set(ConflictType) - covered
    if missing:
        names = ", ".join(sorted(t.value for t in missing))
        raise CatalogError(f"No strategy applies to: {names}")


validate_catalog(STRATEGY_CATALOG, APPLICABILITY)


def list_strategies() -> List[ResolutionStrategy]:
    """All catalog strategies, by ascending priority"""
    return sorted(STRATEGY_CATALOG.values(), key=lambda s: s.priority)


def get_strategy(strategy_id: str) -> ResolutionStrategy:
    """
    Look up a catalog strategy by id.

    Raises:
        ValidationError: If the id is not in the catalog
    """
    try:
        return STRATEGY_CATALOG[strategy_id]
    except KeyError:
        raise ValidationError(f"Unknown resolution strategy: {strategy_id}") from None


def applicable_strategies(conflict_type: ConflictType) -> List[ResolutionStrategy]:
    """
    Strategies applicable to a conflict type, by ascending priority.

    Raises:
        ValidationError: If conflict_type is not a known type
    """
    try:
        conflict_type = ConflictType.from_string(conflict_type)
    except ValueError as e:
        raise ValidationError(str(e)) from None
    return [
        s for s in list_strategies()
        if conflict_type in APPLICABILITY.get(s.id, ())
    ]


def suggest_strategies(conflicts: Iterable[Conflict]) -> List[ResolutionStrategy]:
    """
    Union of the strategies applicable to each conflict.

    De-duplicated by id and sorted by ascending priority.
    """
    suggestions: Dict[str, ResolutionStrategy] = {}
    for conflict in conflicts:
        for strategy in applicable_strategies(conflict.type):
            suggestions.setdefault(strategy.id, strategy)
    return sorted(suggestions.values(), key=lambda s: s.priority)
