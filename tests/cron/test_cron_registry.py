"""Tests for cron registration, runtime overrides and scheduler wiring."""

from unittest.mock import MagicMock

import pytest
from apscheduler.triggers.cron import CronTrigger

from src.cron.decorators import cron
from src.cron.registry import (
    CRON_REGISTRY,
    CronJobDef,
    filter_jobs_by_tags,
    load_runtime_overrides,
    should_run_this_pod,
)
from src.cron.scheduler import make_trigger, setup_scheduler


async def _noop() -> None:
    return None


@pytest.fixture
def isolated_registry():
    saved = dict(CRON_REGISTRY)
    CRON_REGISTRY.clear()
    yield CRON_REGISTRY
    CRON_REGISTRY.clear()
    CRON_REGISTRY.update(saved)


class TestCronDecorator:
    def test_registers_job(self, isolated_registry):
        cron(id="test_job", crontab="* * * * *", tags=["a"])(_noop)
        job = isolated_registry["test_job"]
        assert job.func is _noop
        assert job.name == "test_job"
        assert job.tags == ["a"]
        assert job.enabled

    def test_duplicate_id(self, isolated_registry):
        cron(id="dup_job", crontab="* * * * *")(_noop)
        with pytest.raises(ValueError, match="Duplicate cron id"):
            cron(id="dup_job", crontab="* * * * *")(_noop)

    def test_enabled_env(self, isolated_registry, monkeypatch):
        monkeypatch.delenv("TEST_CRON_ENABLED", raising=False)
        cron(id="gated_off", crontab="* * * * *", enabled_env="TEST_CRON_ENABLED")(_noop)
        monkeypatch.setenv("TEST_CRON_ENABLED", "1")
        cron(id="gated_on", crontab="* * * * *", enabled_env="TEST_CRON_ENABLED")(_noop)

        assert not isolated_registry["gated_off"].enabled
        assert isolated_registry["gated_on"].enabled


class TestRuntimeSettings:
    def test_should_run_defaults_on(self, monkeypatch):
        monkeypatch.delenv("IS_SCHEDULER", raising=False)
        assert should_run_this_pod()
        monkeypatch.setenv("IS_SCHEDULER", "0")
        assert not should_run_this_pod()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("CRON_OVERRIDES_JSON", '{"replay_pending_events": "*/2 * * * *"}')
        assert load_runtime_overrides() == {"replay_pending_events": "*/2 * * * *"}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", ""])
    def test_invalid_overrides_ignored(self, monkeypatch, raw):
        monkeypatch.setenv("CRON_OVERRIDES_JSON", raw)
        assert load_runtime_overrides() == {}

    def test_filter_by_tags(self, monkeypatch):
        jobs = {
            "a": CronJobDef(id="a", func=_noop, tags=["events"]),
            "b": CronJobDef(id="b", func=_noop, tags=["maintenance"]),
        }
        monkeypatch.delenv("CRON_TAGS", raising=False)
        assert filter_jobs_by_tags(jobs) == jobs

        monkeypatch.setenv("CRON_TAGS", "events, other")
        assert list(filter_jobs_by_tags(jobs)) == ["a"]


class TestMakeTrigger:
    def test_five_fields(self):
        assert isinstance(make_trigger("*/5 * * * *"), CronTrigger)

    def test_six_fields(self):
        trigger = make_trigger("30 */5 * * * *")
        assert isinstance(trigger, CronTrigger)
        second = next(f for f in trigger.fields if f.name == "second")
        assert str(second) == "30"

    def test_invalid(self):
        with pytest.raises(ValueError):
            make_trigger("* * *")


class TestSetupScheduler:
    def test_registers_enabled_jobs(self, isolated_registry, monkeypatch):
        monkeypatch.delenv("IS_SCHEDULER", raising=False)
        monkeypatch.delenv("CRON_TAGS", raising=False)
        monkeypatch.setenv("CRON_OVERRIDES_JSON", '{"with_override": "0 * * * *"}')
        cron(id="with_override", crontab="*/5 * * * *")(_noop)
        cron(id="no_crontab")(_noop)
        monkeypatch.delenv("TEST_CRON_DISABLED", raising=False)
        cron(id="disabled", crontab="* * * * *", enabled_env="TEST_CRON_DISABLED")(_noop)

        scheduler = MagicMock()
        assert setup_scheduler(scheduler) == 1

        scheduler.add_listener.assert_called_once()
        kwargs = scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == "with_override"
        assert kwargs["replace_existing"] is True
        assert kwargs["max_instances"] == 1
        minute = next(f for f in kwargs["trigger"].fields if f.name == "minute")
        assert str(minute) == "0"

    def test_pod_disabled(self, isolated_registry, monkeypatch):
        monkeypatch.setenv("IS_SCHEDULER", "0")
        cron(id="some_job", crontab="* * * * *")(_noop)
        scheduler = MagicMock()

        assert setup_scheduler(scheduler) == 0
        scheduler.add_job.assert_not_called()


def test_discover_imports_job_modules():
    from src.cron.loader import discover_and_register_jobs

    modules = discover_and_register_jobs()
    assert "src.cron.jobs.replay_pending_events" in modules
    assert "src.cron.jobs.oauth_temp_cleanup" in modules
    assert "replay_pending_events" in CRON_REGISTRY
