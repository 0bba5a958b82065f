"""
pricesync - conflict detection and resolution for offline price records

Reconciles records created, edited or deleted while offline against the
server's version once connectivity returns.
"""

__version__ = "0.1.0"

from .applier import ResolutionApplier
from .config import EngineConfig, load_config
from .detector import ConflictDetector
from .engine import ConflictEngine
from .errors import (
    CatalogError,
    ConflictEngineError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .lifecycle import ConflictLifecycleManager
from .models import (
    Conflict,
    ConflictDetectionResult,
    ConflictResolution,
    ConflictStatistics,
    ConflictStatus,
    ConflictType,
    MutationAction,
    ResolutionOutcome,
    ResolutionStrategy,
    ResolvedBy,
    Severity,
)
from .store import (
    CONFLICTS_COLLECTION,
    ConflictStore,
    InMemoryConflictStore,
    SQLiteConflictStore,
)
from .strategies import (
    MANUAL_STRATEGY,
    STRATEGY_CATALOG,
    applicable_strategies,
    get_strategy,
    list_strategies,
)

__all__ = [
    "__version__",
    "ConflictEngine",
    "ConflictDetector",
    "ResolutionApplier",
    "ConflictLifecycleManager",
    "EngineConfig",
    "load_config",
    "Conflict",
    "ConflictDetectionResult",
    "ConflictResolution",
    "ConflictStatistics",
    "ConflictStatus",
    "ConflictType",
    "MutationAction",
    "ResolutionOutcome",
    "ResolutionStrategy",
    "ResolvedBy",
    "Severity",
    "ConflictStore",
    "InMemoryConflictStore",
    "SQLiteConflictStore",
    "CONFLICTS_COLLECTION",
    "STRATEGY_CATALOG",
    "MANUAL_STRATEGY",
    "applicable_strategies",
    "get_strategy",
    "list_strategies",
    "ConflictEngineError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "StorageError",
    "CatalogError",
]
