from .engine import CleanupEngine
from .errors import (
    CleanupError,
    ConfigInvalid,
    DependencyUnavailable,
    InvalidToken,
    QueryFailure,
    StatePersistFailure,
    StoreUnavailable,
    Unauthorized,
)
from .state import CleanupOutcome, CleanupResult, ScheduleState


__all__ = [
    "CleanupEngine",
    "CleanupError",
    "CleanupOutcome",
    "CleanupResult",
    "ConfigInvalid",
    "DependencyUnavailable",
    "InvalidToken",
    "QueryFailure",
    "ScheduleState",
    "StatePersistFailure",
    "StoreUnavailable",
    "Unauthorized",
]
