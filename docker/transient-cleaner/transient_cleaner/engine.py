from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .errors import CleanupError, DependencyUnavailable, QueryFailure, StatePersistFailure, StoreUnavailable
from .models import DataStore, SettingsStore
from .passes import DEFAULT_DOMAIN_PATTERN, CleanupPass, build_passes
from .state import OPTION_NAME, CleanupOutcome, CleanupResult, ScheduleState


LOGGER = logging.getLogger("transient_cleaner")
ACTIVITY_LOGGER = logging.getLogger("transient_cleaner.activity")

DEFAULT_BATCH_SIZE = 500


class CleanupEngine:
    """Decides whether a cleanup is due, runs the deletion passes and owns the schedule record.

    The engine is the only writer of the schedule record. Runs and state writes
    share one lock: a second run arriving while one is in flight gets a BUSY
    result instead of starting a parallel pass.
    """

    def __init__(
        self,
        *,
        settings_store: SettingsStore,
        data_store: DataStore,
        passes: Optional[Sequence[CleanupPass]] = None,
        dependency_probe: Optional[Callable[[], bool]] = None,
        cache_flush: Optional[Callable[[], None]] = None,
        domain_pattern: str = DEFAULT_DOMAIN_PATTERN,
        batch_size: int = DEFAULT_BATCH_SIZE,
        option_name: str = OPTION_NAME,
    ):
        if int(batch_size) < 1:
            raise ValueError("batch_size must be >= 1")
        self._settings_store = settings_store
        self._data_store = data_store
        if passes is None:
            passes = build_passes(domain_pattern=domain_pattern, cache_flush=cache_flush)
        self._passes = tuple(passes)
        self._dependency_probe = dependency_probe
        self._batch_size = int(batch_size)
        self._option_name = option_name
        self._lock = threading.Lock()
        self._state = self._load_state()

    @property
    def state(self) -> ScheduleState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def dependency_active(self) -> bool:
        if self._dependency_probe is None:
            return True
        try:
            return bool(self._dependency_probe())
        except Exception:
            LOGGER.warning("[CLEANER]: Dependency probe raised", exc_info=True)
            return False

    def is_due(self, now: Optional[int] = None) -> bool:
        now = _resolve_now(now)
        return now - self._state.last_run >= self._state.interval_seconds

    def run_cleanup(self, now: Optional[int] = None, *, force: bool = False) -> CleanupResult:
        if not self._lock.acquire(blocking=False):
            LOGGER.info("[CLEANER]: Cleanup already in progress, refusing a second run")
            return CleanupResult(outcome=CleanupOutcome.BUSY, state=self._state)
        try:
            return self._run_locked(_resolve_now(now), force=force)
        finally:
            self._lock.release()

    def reschedule(self) -> bool:
        return self.update_state(lambda state: state.rescheduled())

    def update_state(self, mutator: Callable[[ScheduleState], ScheduleState]) -> bool:
        """Read-modify-write the stored record under the run lock."""
        with self._lock:
            self._state = self._load_state()
            return self._write_state(mutator(self._state))

    def activate_state(self) -> ScheduleState:
        """Create the record with defaults if absent, reload it and recompute next_run."""
        with self._lock:
            if self._settings_store.get(self._option_name) is None:
                self._settings_store.add(self._option_name, ScheduleState().to_dict())
            self._state = self._load_state()
            if not self._write_state(self._state.rescheduled()):
                LOGGER.warning("[CLEANER]: Failed to initialise the next run time")
            return self._state

    def reload(self) -> ScheduleState:
        with self._lock:
            self._state = self._load_state()
            return self._state

    def _run_locked(self, now: int, *, force: bool) -> CleanupResult:
        try:
            self._state = self._load_state()
        except Exception as exc:
            raise self._fail(StoreUnavailable(f"Failed to read schedule state: {exc}")) from exc

        if not self.dependency_active():
            raise self._fail(DependencyUnavailable("Required data-store dependency is not active"))

        if not force and not self.is_due(now):
            LOGGER.debug("[CLEANER]: Cleanup not due until %s", self._state.last_run + self._state.interval_seconds)
            return CleanupResult(outcome=CleanupOutcome.SKIPPED_NOT_DUE, state=self._state)

        try:
            reachable = bool(self._data_store.ping())
        except Exception as exc:
            raise self._fail(StoreUnavailable(f"Database connection failed: {exc}")) from exc
        if not reachable:
            raise self._fail(StoreUnavailable("Database connection failed"))

        expired_removed = 0
        domain_removed = 0
        for cleanup_pass in self._passes:
            try:
                result = cleanup_pass.run(self._data_store, now=now, batch_size=self._batch_size)
            except Exception as exc:
                raise self._fail(
                    QueryFailure(
                        f"Deletion pass '{cleanup_pass.name}' failed: {exc}",
                        expired_removed=expired_removed,
                        domain_removed=domain_removed,
                    )
                ) from exc
            if cleanup_pass.category == "expired":
                expired_removed += result.rows_removed
            else:
                domain_removed += result.rows_removed

        if not self._write_state(self._state.completed_at(now)):
            raise self._fail(
                StatePersistFailure(
                    "Failed to update schedule state after cleanup",
                    expired_removed=expired_removed,
                    domain_removed=domain_removed,
                )
            )

        if self._state.logging_enabled:
            self._log_activity(now, expired_removed, domain_removed)

        return CleanupResult(
            outcome=CleanupOutcome.SUCCESS,
            state=self._state,
            expired_removed=expired_removed,
            domain_removed=domain_removed,
        )

    def _load_state(self) -> ScheduleState:
        return ScheduleState.from_mapping(self._settings_store.get(self._option_name))

    def _write_state(self, state: ScheduleState) -> bool:
        # The store has no atomic upsert: update first, add only when the record is missing.
        state = state.normalized()
        payload = state.to_dict()
        try:
            saved = bool(self._settings_store.set(self._option_name, payload))
            if not saved and self._settings_store.get(self._option_name) is None:
                saved = bool(self._settings_store.add(self._option_name, payload))
        except Exception:
            LOGGER.warning("[CLEANER]: Settings store raised while saving schedule state", exc_info=True)
            return False

        if saved:
            self._state = state
        else:
            LOGGER.warning("[CLEANER]: Failed to save schedule state")
        return saved

    def _fail(self, error: CleanupError) -> CleanupError:
        LOGGER.warning(
            "[CLEANER]: Cleanup failed (%s): %s [expired_removed=%d domain_removed=%d]",
            error.kind,
            error,
            error.expired_removed,
            error.domain_removed,
        )
        return error

    def _log_activity(self, now: int, expired_removed: int, domain_removed: int) -> None:
        try:
            ACTIVITY_LOGGER.info(
                "[%s] Transient Cleaner: Cleaned %d expired transients and %d domain transients. "
                "Next run scheduled for %s.",
                _format_utc(now),
                expired_removed,
                domain_removed,
                _format_utc(self._state.next_run),
                extra={
                    "cleanup_at": int(now),
                    "expired_removed": int(expired_removed),
                    "domain_removed": int(domain_removed),
                    "next_run": int(self._state.next_run),
                },
            )
        except Exception:
            pass


def _resolve_now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else int(now)


def _format_utc(timestamp: int) -> str:
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
