from typing import Callable, Optional

from .base import CleanupPass, PassResult
from .domain_transients import DEFAULT_DOMAIN_PATTERN, DomainTransientsPass
from .expired_transients import ExpiredTransientsPass


def build_passes(
    *,
    domain_pattern: str = DEFAULT_DOMAIN_PATTERN,
    cache_flush: Optional[Callable[[], None]] = None,
) -> tuple[CleanupPass, CleanupPass]:
    return ExpiredTransientsPass(), DomainTransientsPass(pattern=domain_pattern, cache_flush=cache_flush)


__all__ = [
    "CleanupPass",
    "PassResult",
    "ExpiredTransientsPass",
    "DomainTransientsPass",
    "DEFAULT_DOMAIN_PATTERN",
    "build_passes",
]
