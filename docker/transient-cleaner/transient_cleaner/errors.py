from __future__ import annotations


class CleanupError(Exception):
    """Base class for failures surfaced by the cleaner."""

    kind = "cleanup_error"

    def __init__(self, message: str, *, expired_removed: int = 0, domain_removed: int = 0):
        super().__init__(message)
        self.expired_removed = int(expired_removed)
        self.domain_removed = int(domain_removed)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": str(self)}


class DependencyUnavailable(CleanupError):
    kind = "dependency_unavailable"


class StoreUnavailable(CleanupError):
    kind = "store_unavailable"


class QueryFailure(CleanupError):
    kind = "query_failure"


class StatePersistFailure(CleanupError):
    kind = "state_persist_failure"


class Unauthorized(CleanupError):
    kind = "unauthorized"


class InvalidToken(CleanupError):
    kind = "invalid_token"


class ConfigInvalid(CleanupError):
    kind = "config_invalid"
