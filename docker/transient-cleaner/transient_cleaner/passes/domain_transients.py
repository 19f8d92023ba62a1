from typing import Callable, Optional

from ..models import DataStore
from .base import CleanupPass, PassResult


DEFAULT_DOMAIN_PATTERN = "_wc_transient_"


class DomainTransientsPass(CleanupPass):
    """Drop every row in the domain cache namespace, then flush its memory cache."""

    name = "domain_transients"
    category = "domain"

    def __init__(self, pattern: str = DEFAULT_DOMAIN_PATTERN, cache_flush: Optional[Callable[[], None]] = None):
        pattern = str(pattern or "").strip()
        if not pattern:
            raise ValueError("domain pattern must not be empty")
        self._pattern = pattern
        self._cache_flush = cache_flush

    @property
    def pattern(self) -> str:
        return self._pattern

    def run(self, data_store: DataStore, *, now: int, batch_size: int) -> PassResult:
        removed = int(data_store.delete_matching(substring=self._pattern, batch_size=int(batch_size)))
        if self._cache_flush is not None:
            self._cache_flush()
        return PassResult(rows_removed=removed)
