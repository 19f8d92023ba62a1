from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .engine import CleanupEngine
from .errors import CleanupError
from .state import CleanupOutcome, CleanupResult


LOGGER = logging.getLogger("transient_cleaner")

TICK_JOB_ID = "transient_cleaner_tick"

SUCCESS_MESSAGE = "Transients cleaned successfully!"
SKIPPED_MESSAGE = "Cleanup skipped: the next run is not due yet."
BUSY_MESSAGE = "A cleanup is already running. Please try again shortly."
UNEXPECTED_MESSAGE = "Cleanup process did not complete successfully."


def format_timestamp(timestamp: int, *, datetime_format: str, empty_label: str) -> str:
    if not timestamp:
        return empty_label
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime(datetime_format)


@dataclass
class ManualTriggerResponse:
    success: bool
    message: str
    outcome: CleanupOutcome
    last_run: str = ""
    next_run: str = ""
    counts: dict[str, int] = field(default_factory=dict)
    error_kind: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message, "outcome": self.outcome.value}
        if self.success:
            data.update({"last_run": self.last_run, "next_run": self.next_run, **self.counts})
        if self.error_kind:
            data["error"] = self.error_kind
        return {"success": self.success, "data": data}


class CleanupScheduler:
    """Funnels the periodic tick and manual requests into one engine.

    The tick fires at a fixed cadence regardless of the configured interval;
    the engine's throttle decides whether a tick actually cleans anything.
    """

    def __init__(
        self,
        *,
        engine: CleanupEngine,
        tick_interval_hours: int = 24,
        manual_respects_interval: bool = False,
        datetime_format: str = "%Y-%m-%d %H:%M:%S",
    ):
        self._engine = engine
        self._tick_interval_hours = int(tick_interval_hours)
        self._manual_respects_interval = bool(manual_respects_interval)
        self._datetime_format = datetime_format
        self._scheduler = BackgroundScheduler(timezone=timezone.utc)
        self._running = False

    @property
    def engine(self) -> CleanupEngine:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def next_tick_at(self) -> Optional[datetime]:
        job = self._scheduler.get_job(TICK_JOB_ID)
        if job is None:
            return None
        return job.next_run_time

    def activate(self) -> None:
        # State is initialised before the first tick is registered.
        try:
            self._engine.activate_state()
        except Exception:
            LOGGER.warning("[CLEANER]: Failed to initialise schedule state on activation", exc_info=True)

        if not self._running:
            self._scheduler.start()
            self._running = True

        if self._scheduler.get_job(TICK_JOB_ID) is None:
            self._scheduler.add_job(
                self.run_once,
                "interval",
                hours=self._tick_interval_hours,
                id=TICK_JOB_ID,
                next_run_time=datetime.now(timezone.utc),
                max_instances=1,
                coalesce=True,
            )

    def deactivate(self) -> None:
        if self._scheduler.get_job(TICK_JOB_ID) is not None:
            self._scheduler.remove_job(TICK_JOB_ID)
        if not self._running:
            return
        self._scheduler.shutdown(wait=False)
        self._running = False

    def run_once(self, now: Optional[int] = None) -> CleanupResult:
        try:
            result = self._engine.run_cleanup(now)
        except CleanupError as exc:
            return CleanupResult(outcome=CleanupOutcome.FAILURE, state=self._engine.state, error=exc)
        except Exception as exc:
            LOGGER.warning("[CLEANER]: Scheduled cleanup crashed", exc_info=True)
            return CleanupResult(
                outcome=CleanupOutcome.FAILURE,
                state=self._engine.state,
                error=CleanupError(str(exc) or UNEXPECTED_MESSAGE),
            )

        if result.outcome == CleanupOutcome.SUCCESS:
            LOGGER.info(
                "[CLEANER]: Scheduled cleanup removed %d expired and %d domain transients",
                result.expired_removed,
                result.domain_removed,
            )
        return result

    def trigger_manual(self, now: Optional[int] = None) -> ManualTriggerResponse:
        force = not self._manual_respects_interval
        try:
            result = self._engine.run_cleanup(now, force=force)
        except CleanupError as exc:
            return ManualTriggerResponse(
                success=False,
                message=str(exc),
                outcome=CleanupOutcome.FAILURE,
                error_kind=exc.kind,
            )
        except Exception:
            LOGGER.warning("[CLEANER]: Manual cleanup crashed", exc_info=True)
            return ManualTriggerResponse(
                success=False,
                message=UNEXPECTED_MESSAGE,
                outcome=CleanupOutcome.FAILURE,
                error_kind=CleanupError.kind,
            )

        if result.outcome == CleanupOutcome.BUSY:
            return ManualTriggerResponse(success=False, message=BUSY_MESSAGE, outcome=result.outcome, error_kind="busy")

        message = SUCCESS_MESSAGE if result.outcome == CleanupOutcome.SUCCESS else SKIPPED_MESSAGE
        return ManualTriggerResponse(
            success=True,
            message=message,
            outcome=result.outcome,
            last_run=self.format_timestamp(result.state.last_run, empty_label="Never"),
            next_run=self.format_timestamp(result.state.next_run, empty_label="Not scheduled"),
            counts={
                "expired_removed": result.expired_removed,
                "domain_removed": result.domain_removed,
            },
        )

    def format_timestamp(self, timestamp: int, *, empty_label: str) -> str:
        return format_timestamp(timestamp, datetime_format=self._datetime_format, empty_label=empty_label)
