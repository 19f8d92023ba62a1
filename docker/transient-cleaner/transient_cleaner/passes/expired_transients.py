from ..models import TRANSIENT_FAMILIES, DataStore
from .base import CleanupPass, PassResult


class ExpiredTransientsPass(CleanupPass):
    name = "expired_transients"
    category = "expired"

    def __init__(self, families: tuple[tuple[str, str], ...] = TRANSIENT_FAMILIES):
        self._families = tuple(families)

    def run(self, data_store: DataStore, *, now: int, batch_size: int) -> PassResult:
        removed = 0
        for timeout_prefix, value_prefix in self._families:
            timeouts, values = data_store.delete_expired(
                timeout_prefix=timeout_prefix,
                value_prefix=value_prefix,
                now=int(now),
                batch_size=int(batch_size),
            )
            removed += int(timeouts) + int(values)
        return PassResult(rows_removed=removed)
