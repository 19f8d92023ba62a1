from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Optional

from .errors import CleanupError


DAY_IN_SECONDS = 86400
DEFAULT_INTERVAL_DAYS = 3
MAX_INTERVAL_DAYS = 30
OPTION_NAME = "transient_cleaner_options"


def coerce_non_negative_int(value: Any) -> int:
    """Parse loosely like a form field: junk becomes 0, negatives become 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        return max(int(value), 0)
    text = str(value if value is not None else "").strip()
    try:
        parsed = int(text)
    except ValueError:
        try:
            parsed = int(float(text))
        except (ValueError, OverflowError):
            return 0
    return max(parsed, 0)


def coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(frozen=True)
class ScheduleState:
    interval_days: int = DEFAULT_INTERVAL_DAYS
    last_run: int = 0
    next_run: int = 0
    logging_enabled: bool = False

    @classmethod
    def from_mapping(cls, raw: Any) -> "ScheduleState":
        """Merge a stored record with the defaults and coerce every field."""
        data = dict(raw) if isinstance(raw, dict) else {}
        return cls(
            interval_days=coerce_non_negative_int(data.get("interval_days", data.get("interval", DEFAULT_INTERVAL_DAYS))),
            last_run=coerce_non_negative_int(data.get("last_run", 0)),
            next_run=coerce_non_negative_int(data.get("next_run", 0)),
            logging_enabled=coerce_bool(data.get("logging_enabled", False)),
        ).normalized()

    @property
    def interval_seconds(self) -> int:
        return self.interval_days * DAY_IN_SECONDS

    def normalized(self) -> "ScheduleState":
        interval = int(self.interval_days)
        if interval < 1:
            interval = DEFAULT_INTERVAL_DAYS
        return replace(
            self,
            interval_days=interval,
            last_run=max(int(self.last_run), 0),
            next_run=max(int(self.next_run), 0),
            logging_enabled=bool(self.logging_enabled),
        )

    def rescheduled(self) -> "ScheduleState":
        state = self.normalized()
        return replace(state, next_run=state.last_run + state.interval_seconds)

    def completed_at(self, now: int) -> "ScheduleState":
        return replace(self.normalized(), last_run=int(now)).rescheduled()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CleanupOutcome(str, Enum):
    SKIPPED_NOT_DUE = "skipped_not_due"
    SUCCESS = "success"
    FAILURE = "failure"
    BUSY = "busy"


@dataclass
class CleanupResult:
    outcome: CleanupOutcome
    state: ScheduleState
    expired_removed: int = 0
    domain_removed: int = 0
    error: Optional[CleanupError] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == CleanupOutcome.SUCCESS

    @property
    def total_removed(self) -> int:
        return self.expired_removed + self.domain_removed

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "expired_removed": self.expired_removed,
            "domain_removed": self.domain_removed,
            "error": self.error.to_dict() if self.error is not None else None,
            "state": self.state.to_dict(),
        }
