"""
Exceptions raised by the conflict engine

All engine errors derive from ConflictEngineError so callers can catch
the whole family at a sync boundary.
"""


class ConflictEngineError(Exception):
    """Base exception for conflict engine errors"""
    pass


class ValidationError(ConflictEngineError, ValueError):
    """Exception for malformed records, actions or strategy ids"""
    pass


class NotFoundError(ConflictEngineError, LookupError):
    """Exception for conflict ids that are absent or no longer pending"""
    pass


class InvalidTransitionError(ConflictEngineError):
    """Exception for lifecycle transitions out of the resolved state"""
    pass


class StorageError(ConflictEngineError):
    """Exception for conflict store failures"""
    pass


class CatalogError(ConflictEngineError):
    """Exception for a malformed resolution strategy catalog"""
    pass
