from __future__ import annotations

import logging
import threading

import pytest

from transient_cleaner import engine as engine_module
from transient_cleaner.errors import DependencyUnavailable, QueryFailure, StatePersistFailure, StoreUnavailable
from transient_cleaner.state import DAY_IN_SECONDS, OPTION_NAME, CleanupOutcome

from cleaner_fakes import T, FakeDataStore, FakeSettingsStore


def _engine(settings=None, data=None, **kwargs):
    settings = settings if settings is not None else FakeSettingsStore({"interval_days": 3, "last_run": 0, "next_run": 0})
    data = data if data is not None else FakeDataStore()
    return engine_module.CleanupEngine(settings_store=settings, data_store=data, **kwargs), settings, data


def test_first_run_cleans_and_schedules_next_run() -> None:
    engine, settings, data = _engine()

    result = engine.run_cleanup(T)

    assert result.outcome == CleanupOutcome.SUCCESS
    assert result.expired_removed == 6
    assert result.domain_removed == 5
    assert settings.values[OPTION_NAME]["last_run"] == T
    assert settings.values[OPTION_NAME]["next_run"] == T + 3 * DAY_IN_SECONDS
    assert engine.state.next_run == engine.state.last_run + engine.state.interval_days * DAY_IN_SECONDS
    assert data.calls == [
        "ping",
        "expired:_transient_timeout_",
        "expired:_site_transient_timeout_",
        "matching:_wc_transient_",
    ]


def test_second_run_inside_interval_is_a_no_op() -> None:
    engine, settings, data = _engine()
    engine.run_cleanup(T)
    calls_after_first = list(data.calls)

    result = engine.run_cleanup(T + 60)

    assert result.outcome == CleanupOutcome.SKIPPED_NOT_DUE
    assert result.total_removed == 0
    assert data.calls == calls_after_first
    assert settings.writes == 1


def test_is_due_flips_exactly_at_interval_boundary() -> None:
    engine, _, _ = _engine()
    engine.run_cleanup(T)

    assert engine.is_due(T) is False
    assert engine.is_due(T + 3 * DAY_IN_SECONDS - 1) is False
    assert engine.is_due(T + 3 * DAY_IN_SECONDS) is True


def test_force_bypasses_throttle() -> None:
    engine, _, _ = _engine()
    engine.run_cleanup(T)

    result = engine.run_cleanup(T + 60, force=True)

    assert result.outcome == CleanupOutcome.SUCCESS
    assert engine.state.last_run == T + 60


def test_store_unreachable_fails_before_any_deletion() -> None:
    engine, settings, data = _engine(data=FakeDataStore(reachable=False))

    with pytest.raises(StoreUnavailable):
        engine.run_cleanup(T)

    assert data.calls == ["ping"]
    assert settings.writes == 0
    assert settings.values[OPTION_NAME] == {"interval_days": 3, "last_run": 0, "next_run": 0}


def test_inactive_dependency_fails_without_touching_store() -> None:
    engine, settings, data = _engine(dependency_probe=lambda: False)

    with pytest.raises(DependencyUnavailable):
        engine.run_cleanup(T)

    assert data.calls == []
    assert settings.writes == 0


def test_raising_dependency_probe_counts_as_inactive() -> None:
    def _probe() -> bool:
        raise RuntimeError("boom")

    engine, _, _ = _engine(dependency_probe=_probe)

    assert engine.dependency_active() is False


def test_domain_pass_failure_keeps_first_pass_counts_and_state() -> None:
    engine, settings, _ = _engine(data=FakeDataStore(fail_domain=True))

    with pytest.raises(QueryFailure) as excinfo:
        engine.run_cleanup(T)

    assert excinfo.value.expired_removed == 6
    assert excinfo.value.domain_removed == 0
    assert settings.writes == 0
    assert engine.is_due(T + 1) is True


def test_persist_failure_is_reported_after_deletions() -> None:
    engine, _, data = _engine(settings=FakeSettingsStore({"interval_days": 3}, fail_set=True))

    with pytest.raises(StatePersistFailure) as excinfo:
        engine.run_cleanup(T)

    assert excinfo.value.expired_removed == 6
    assert excinfo.value.domain_removed == 5
    assert "matching:_wc_transient_" in data.calls
    assert engine.state.last_run == 0


def test_missing_record_is_added_when_update_finds_nothing() -> None:
    engine, settings, _ = _engine(settings=FakeSettingsStore())

    result = engine.run_cleanup(T)

    assert result.outcome == CleanupOutcome.SUCCESS
    assert settings.values[OPTION_NAME]["last_run"] == T
    assert settings.values[OPTION_NAME]["interval_days"] == 3


def test_activity_is_logged_when_enabled(caplog) -> None:
    engine, _, _ = _engine(settings=FakeSettingsStore({"interval_days": 2, "logging_enabled": True}))
    caplog.set_level(logging.INFO, logger="transient_cleaner.activity")

    engine.run_cleanup(T)

    records = [record for record in caplog.records if record.name == "transient_cleaner.activity"]
    assert len(records) == 1
    assert "Cleaned 6 expired transients and 5 domain transients" in records[0].getMessage()
    assert records[0].next_run == T + 2 * DAY_IN_SECONDS
    assert records[0].domain_removed == 5


def test_activity_is_not_logged_when_disabled(caplog) -> None:
    engine, _, _ = _engine()
    caplog.set_level(logging.INFO, logger="transient_cleaner.activity")

    engine.run_cleanup(T)

    assert not [record for record in caplog.records if record.name == "transient_cleaner.activity"]


def test_activity_logging_errors_do_not_fail_cleanup(monkeypatch) -> None:
    engine, _, _ = _engine(settings=FakeSettingsStore({"logging_enabled": True}))

    def _broken_info(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(engine_module.ACTIVITY_LOGGER, "info", _broken_info)

    result = engine.run_cleanup(T)
    assert result.outcome == CleanupOutcome.SUCCESS


def test_cache_flush_runs_after_domain_pass() -> None:
    flushed: list[int] = []
    engine, _, _ = _engine(cache_flush=lambda: flushed.append(1))

    engine.run_cleanup(T)

    assert flushed == [1]


def test_concurrent_run_gets_busy_and_only_one_pass_happens() -> None:
    entered = threading.Event()
    release = threading.Event()

    class _SlowDataStore(FakeDataStore):
        def ping(self) -> bool:
            entered.set()
            release.wait(timeout=5)
            return super().ping()

    engine, settings, data = _engine(data=_SlowDataStore())
    results = []
    worker = threading.Thread(target=lambda: results.append(engine.run_cleanup(T)))
    worker.start()
    assert entered.wait(timeout=5)

    second = engine.run_cleanup(T)
    release.set()
    worker.join(timeout=5)

    assert second.outcome == CleanupOutcome.BUSY
    assert results[0].outcome == CleanupOutcome.SUCCESS
    assert settings.writes == 1
    assert data.calls.count("matching:_wc_transient_") == 1


def test_reschedule_recomputes_next_run_from_last_run() -> None:
    engine, settings, _ = _engine(settings=FakeSettingsStore({"interval_days": 5, "last_run": 1000, "next_run": 0}))

    assert engine.reschedule() is True
    assert settings.values[OPTION_NAME]["next_run"] == 1000 + 5 * DAY_IN_SECONDS


def test_activate_state_creates_record_with_defaults() -> None:
    engine, settings, _ = _engine(settings=FakeSettingsStore())

    state = engine.activate_state()

    assert state.interval_days == 3
    assert settings.values[OPTION_NAME]["next_run"] == 3 * DAY_IN_SECONDS
    assert settings.values[OPTION_NAME]["logging_enabled"] is False


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _engine(batch_size=0)
