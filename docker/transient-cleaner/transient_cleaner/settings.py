from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .engine import CleanupEngine
from .state import DEFAULT_INTERVAL_DAYS, MAX_INTERVAL_DAYS, ScheduleState, coerce_bool, coerce_non_negative_int


LOGGER = logging.getLogger("transient_cleaner")

SAVED_MESSAGE = "Settings saved successfully."
SAVE_FAILED_MESSAGE = "Failed to save settings. Please try again."
SAVE_ERROR_MESSAGE = "An error occurred while saving settings."


@dataclass
class SettingsSaveResult:
    saved: bool
    message: str
    state: ScheduleState


def coerce_interval(raw: Any) -> int:
    interval = coerce_non_negative_int(raw)
    if interval < 1:
        return DEFAULT_INTERVAL_DAYS
    return min(interval, MAX_INTERVAL_DAYS)


def sanitize_options(raw: Any, existing: Optional[ScheduleState] = None, *, checkbox: bool = True) -> ScheduleState:
    """Build a schedule record from a submitted settings form.

    ``interval`` (or ``interval_days``) is clamped instead of rejected. A present
    ``logging_enabled`` key means the checkbox was ticked, whatever its value;
    with ``checkbox=False`` (JSON bodies) the value itself is read as a bool.
    Run timestamps always come from ``existing`` and never from the form.
    """
    form = dict(raw) if isinstance(raw, dict) else {}
    raw_interval = form.get("interval", form.get("interval_days"))
    existing = existing or ScheduleState()
    if checkbox:
        logging_enabled = "logging_enabled" in form
    else:
        logging_enabled = coerce_bool(form.get("logging_enabled", False))
    return ScheduleState(
        interval_days=coerce_interval(raw_interval),
        last_run=existing.last_run,
        next_run=existing.next_run,
        logging_enabled=logging_enabled,
    )


def save_settings(engine: CleanupEngine, raw: Any, *, checkbox: bool = True) -> SettingsSaveResult:
    try:
        saved = engine.update_state(lambda current: sanitize_options(raw, current, checkbox=checkbox))
    except Exception:
        LOGGER.warning("[CLEANER]: Unexpected error while saving settings", exc_info=True)
        return SettingsSaveResult(saved=False, message=SAVE_ERROR_MESSAGE, state=engine.state)

    if not saved:
        return SettingsSaveResult(saved=False, message=SAVE_FAILED_MESSAGE, state=engine.state)
    return SettingsSaveResult(saved=True, message=SAVED_MESSAGE, state=engine.state)
