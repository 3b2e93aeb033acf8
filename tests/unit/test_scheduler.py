"""
Tests for the cron scheduler and the default job table.

APScheduler is only started in lifecycle tests; trigger firing is
exercised directly through BackfillScheduler.fire().
"""

import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from market_backfill.config import Config
from market_backfill.scheduler import (
    BackfillScheduler, SchedulerState, build_scheduler, parse_cron_expression, DEFAULT_JOB_TABLE
)
from market_backfill.utils.exceptions import SchedulerConfigError


def named_task(name, side_effect=None):
    task = MagicMock(side_effect=side_effect)
    task.name = name
    return task


@pytest.fixture
def scheduler():
    instance = BackfillScheduler()
    yield instance
    instance.shutdown(wait=False)


class TestParseCronExpression:

    def test_six_fields(self):
        trigger = parse_cron_expression("0 0 17 * * *")
        start = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
        assert trigger.get_next_fire_time(None, start) == datetime(2026, 10, 18, 17, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("expression", ["0 17 * * *", "0 0 17 * * * 2026", ""])
    def test_wrong_field_count(self, expression):
        with pytest.raises(SchedulerConfigError):
            parse_cron_expression(expression)

    @pytest.mark.parametrize("expression", ["0 0 25 * * *", "0 61 1 * * *", "x 0 0 * * *"])
    def test_invalid_field(self, expression):
        with pytest.raises(SchedulerConfigError):
            parse_cron_expression(expression)


class TestRegistration:

    def test_register_and_list(self, scheduler):
        task = named_task("quarterly")
        trigger = scheduler.register("0 0 17 * * *", task)

        assert trigger.task_names() == ["quarterly"]
        assert scheduler.triggers == [trigger]
        assert scheduler.state is SchedulerState.REGISTERED

    def test_duplicate_expression_rejected(self, scheduler):
        scheduler.register("0 0 17 * * *", named_task("a"))
        with pytest.raises(SchedulerConfigError):
            scheduler.register("0  0 17 * * *", named_task("b"))

    def test_no_tasks_rejected(self, scheduler):
        with pytest.raises(SchedulerConfigError):
            scheduler.register("0 0 17 * * *")

    def test_non_callable_rejected(self, scheduler):
        with pytest.raises(SchedulerConfigError):
            scheduler.register("0 0 17 * * *", "not a task")

    def test_invalid_expression_rejected(self, scheduler):
        with pytest.raises(SchedulerConfigError):
            scheduler.register("every day", named_task("a"))
        assert scheduler.triggers == []

    def test_register_after_start_rejected(self, scheduler):
        scheduler.register("0 0 17 * * *", named_task("a"))
        scheduler.start()

        with pytest.raises(SchedulerConfigError):
            scheduler.register("0 0 19 * * *", named_task("b"))


class TestLifecycle:

    def test_state_transitions(self, scheduler):
        scheduler.register("0 0 17 * * *", named_task("a"))
        assert scheduler.state is SchedulerState.REGISTERED

        scheduler.start()
        assert scheduler.state is SchedulerState.RUNNING

        scheduler.shutdown(wait=False)
        assert scheduler.state is SchedulerState.STOPPED

    def test_cannot_restart(self, scheduler):
        scheduler.start()
        scheduler.shutdown(wait=False)

        with pytest.raises(SchedulerConfigError):
            scheduler.start()

    def test_next_fire_times_in_utc(self, scheduler):
        scheduler.register("0 0 17 * * *", named_task("a"))
        scheduler.register("0 0 19 * * *", named_task("b"))
        now = datetime(2026, 10, 18, 18, 0, tzinfo=timezone.utc)

        fire_times = scheduler.next_fire_times(now)

        assert fire_times["0 0 17 * * *"] == datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)
        assert fire_times["0 0 19 * * *"] == datetime(2026, 10, 18, 19, 0, tzinfo=timezone.utc)

    @pytest.mark.slow
    def test_blocked_trigger_does_not_delay_other_triggers(self, scheduler):
        blocked = threading.Event()
        release = threading.Event()
        other_ran = threading.Event()

        def block():
            blocked.set()
            release.wait(timeout=10)

        scheduler.register("* * * * * *", named_task("blocking", side_effect=block))
        scheduler.register("*/1 * * * * *", named_task("other", side_effect=other_ran.set))
        scheduler.start()
        try:
            assert blocked.wait(timeout=3)
            other_ran.clear()
            # Fires again while the first trigger is still inside its task
            assert other_ran.wait(timeout=3)
        finally:
            release.set()


class TestFire:

    def test_tasks_run_in_order(self, scheduler):
        calls = []
        first = named_task("first", side_effect=lambda: calls.append("first"))
        second = named_task("second", side_effect=lambda: calls.append("second"))
        trigger = scheduler.register("0 0 17 * * *", first, second)

        results = scheduler.fire(trigger)

        assert calls == ["first", "second"]
        assert results == {"first": True, "second": True}

    def test_failing_task_does_not_stop_others(self, scheduler):
        failing = named_task("failing", side_effect=RuntimeError("boom"))
        healthy = named_task("healthy")
        trigger = scheduler.register("0 0 17 * * *", failing, healthy)

        results = scheduler.fire(trigger)

        assert results == {"failing": False, "healthy": True}
        healthy.assert_called_once()

    def test_plain_functions_are_tasks(self, scheduler):
        def refresh_holidays():
            return None

        trigger = scheduler.register("0 30 1 * * *", refresh_holidays)
        assert scheduler.fire(trigger) == {"refresh_holidays": True}


class TestJobTable:

    def test_default_job_table(self):
        tasks = {
            name: named_task(name)
            for _, names in DEFAULT_JOB_TABLE for name in names
        }

        scheduler = build_scheduler(tasks, Config.default())

        expressions = {trigger.expression: trigger.task_names() for trigger in scheduler.triggers}
        assert expressions == {
            "0 0 17 * * *": ["financial_statement_quarter"],
            "0 0 19 * * *": ["net_asset_value_zero_value", "financial_statement_annual"],
        }

    def test_unknown_task_rejected(self):
        with pytest.raises(SchedulerConfigError):
            build_scheduler({}, Config.default())
