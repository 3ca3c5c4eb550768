"""Tests for the Reaper."""

from datetime import timedelta
from unittest.mock import Mock

from jobmonitor.config.models import MonitorConfig
from jobmonitor.monitor.reaper import Reaper
from tests.helpers.jobs import NOW, FakeTimeHelper, make_job


def create_config(**overrides):
    return MonitorConfig(namespace="test-namespace", **overrides)


class TestReaper:
    """Test the deletion of completed jobs."""

    def test_completed_jobs_are_handled(self):
        """Test that all jobs completed before the threshold are processed."""
        jobs = [
            make_job("analyzer-1", completion_time=NOW - timedelta(hours=1), conditions=["Complete"]),
            make_job("advisor-2", conditions=["Failed"]),
        ]
        handler = Mock()
        handler.find_jobs_completed_before.return_value = jobs
        reaper = Reaper(handler, create_config(reaper_max_age="10m"), FakeTimeHelper())

        reaper.run()

        handler.find_jobs_completed_before.assert_called_once_with(NOW - timedelta(minutes=10))
        assert [c.args[0] for c in handler.delete_and_notify_if_failed.call_args_list] == jobs

    def test_no_completed_jobs(self):
        handler = Mock()
        handler.find_jobs_completed_before.return_value = []
        reaper = Reaper(handler, create_config(), FakeTimeHelper())

        reaper.run()

        handler.delete_and_notify_if_failed.assert_not_called()

    def test_threshold_follows_clock(self):
        """Test that every run computes its threshold from the current time."""
        handler = Mock()
        handler.find_jobs_completed_before.return_value = []
        clock = FakeTimeHelper()
        reaper = Reaper(handler, create_config(reaper_max_age=600), clock)

        reaper.run()
        clock.advance(timedelta(minutes=10))
        reaper.run()

        thresholds = [c.args[0] for c in handler.find_jobs_completed_before.call_args_list]
        assert thresholds == [NOW - timedelta(minutes=10), NOW]
