"""Tests for the MonitorComponent wiring."""

from datetime import timedelta
from unittest.mock import MagicMock, Mock

import pytest

from jobmonitor.config.models import AppConfig, MonitorConfig
from jobmonitor.monitor import MonitorComponent
from tests.helpers.jobs import FakeTimeHelper


def create_component(scheduler=None, **monitor_settings):
    config = AppConfig(job_monitor=MonitorConfig(namespace="test-namespace", **monitor_settings))
    component = MonitorComponent(
        config,
        MagicMock(),
        MagicMock(),
        Mock(),
        scheduler=scheduler or Mock(),
        time_helper=FakeTimeHelper(),
        session_provider=MagicMock(),
    )
    return component


@pytest.fixture
def scheduler():
    scheduler = Mock()
    scheduler.get_scheduled_actions.return_value = []
    return scheduler


class TestMonitorComponent:
    """Test starting, stopping and one-shot runs of the components."""

    def test_start_schedules_enabled_checks(self, scheduler):
        """Test that every enabled check is scheduled with its interval."""
        component = create_component(
            scheduler,
            enable_watching=False,
            reaper_interval="5m",
            lost_jobs_interval="2m",
            long_running_jobs_interval="1m",
            stuck_jobs_interval="10m",
        )

        component.start()

        scheduled = {c.kwargs["name"]: c.args[0] for c in scheduler.schedule.call_args_list}
        assert scheduled == {
            "reaper": timedelta(minutes=5),
            "lost-jobs": timedelta(minutes=2),
            "long-running-jobs": timedelta(minutes=1),
            "stuck-jobs": timedelta(minutes=10),
        }
        assert component.is_watching() is False

    def test_disabled_checks_are_not_scheduled(self, scheduler):
        component = create_component(
            scheduler,
            enable_watching=False,
            enable_reaper=False,
            enable_stuck_jobs=False,
        )

        component.start()

        names = [c.kwargs["name"] for c in scheduler.schedule.call_args_list]
        assert names == ["lost-jobs", "long-running-jobs"]

    def test_checks_are_bound_to_components(self, scheduler):
        component = create_component(scheduler, enable_watching=False)

        component.start()

        actions = {c.kwargs["name"]: c.args[1] for c in scheduler.schedule.call_args_list}
        assert actions["reaper"] == component.reaper.run
        assert actions["lost-jobs"] == component.lost_jobs_finder.run
        assert actions["long-running-jobs"] == component.long_running_jobs_finder.run
        assert actions["stuck-jobs"] == component.stuck_jobs_finder.run

    def test_watcher_thread(self, scheduler):
        """Test that the watcher runs on its own thread until stopped."""
        component = create_component(scheduler)
        component.job_monitor = Mock()
        started = []
        component.job_monitor.watch.side_effect = lambda: started.append(True)

        component.start()
        component._watch_thread.join(timeout=5)

        assert started == [True]
        assert component._watch_thread.name == "job-watcher"
        assert component._watch_thread.daemon is True

    def test_stop(self, scheduler):
        component = create_component(scheduler, enable_watching=False)
        component.watch_helper = Mock()

        component.stop()

        scheduler.close.assert_called_once()
        assert component.stop_event.is_set()
        component.watch_helper.stop.assert_called_once()

    def test_stop_ends_watcher_thread(self, scheduler):
        """Test that stopping the component ends a watcher whose streams close without events."""
        component = create_component(scheduler)
        component.watch_helper._watch_factory = lambda: Mock(stream=Mock(return_value=iter([])))
        component.start()
        assert component.is_watching() is True

        component.stop()
        component._watch_thread.join(timeout=5)

        assert component.is_watching() is False

    def test_run_once(self):
        """Test that each enabled check runs once and failures are reported."""
        component = create_component(enable_lost_jobs=False)
        component.reaper = Mock()
        component.lost_jobs_finder = Mock()
        component.long_running_jobs_finder = Mock()
        component.stuck_jobs_finder = Mock()
        component.long_running_jobs_finder.run.side_effect = RuntimeError("cluster unreachable")

        assert component.run_once() is False

        component.reaper.run.assert_called_once()
        component.lost_jobs_finder.run.assert_not_called()
        component.long_running_jobs_finder.run.assert_called_once()
        component.stuck_jobs_finder.run.assert_called_once()

    def test_run_once_success(self):
        component = create_component()
        component.reaper = Mock()
        component.lost_jobs_finder = Mock()
        component.long_running_jobs_finder = Mock()
        component.stuck_jobs_finder = Mock()

        assert component.run_once() is True

    def test_handler_uses_configuration(self):
        component = create_component(recently_processed_interval="2m")

        assert component.job_handler.namespace == "test-namespace"
        assert component.job_handler.recently_processed_interval == timedelta(minutes=2)
        assert component.watch_helper.namespace == "test-namespace"
