"""Unit tests for the WatchHelper.

The watch streams are scripted: each opened stream yields a predefined list
of events (or raises), so cursor handling can be checked without a cluster.
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock, Mock

import pytest
from kubernetes.client import V1Job, V1ObjectMeta

from jobmonitor.cluster.watch import WatchEvent, WatchHelper
from jobmonitor.config.models import MonitorConfig
from tests.helpers.jobs import make_job, make_job_list

NAMESPACE = "test-namespace"


class StreamError(Exception):
    pass


class ScriptedWatchFactory:
    """Creates Watch mocks whose streams replay the given scripts in order.

    A script is a list of events; an exception instance in the list is raised
    when reached.
    """

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.stream_kwargs = []
        self.watches = []

    def __call__(self):
        watch = Mock()
        watch.stream.side_effect = self._stream
        self.watches.append(watch)
        return watch

    def _stream(self, func, **kwargs):
        self.stream_kwargs.append(kwargs)
        script = self.scripts.pop(0) if self.scripts else []
        return self._replay(script)

    @staticmethod
    def _replay(script):
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item


def bookmark(resource_version):
    return {"type": "BOOKMARK", "object": V1Job(metadata=V1ObjectMeta(resource_version=resource_version))}


def modified(job):
    return {"type": "MODIFIED", "object": job}


@pytest.fixture
def batch_api():
    api = MagicMock()
    api.list_namespaced_job.return_value = make_job_list([], resource_version="100")
    return api


def create_helper(batch_api, factory, resource_version=None):
    return WatchHelper(
        batch_api,
        NAMESPACE,
        resource_version=resource_version,
        watch_factory=factory,
        sleep=Mock(),
    )


class TestWatchHelper:
    """Test cursor handling of the WatchHelper."""

    def test_first_open_lists_current_resource_version(self, batch_api):
        """Test that the first stream starts at the version of a fresh listing."""
        job = make_job("analyzer-1")
        factory = ScriptedWatchFactory([modified(job)])
        helper = create_helper(batch_api, factory)

        event = helper.next_event()

        assert event == WatchEvent(type="MODIFIED", job=job)
        batch_api.list_namespaced_job.assert_called_once_with(namespace=NAMESPACE, limit=1)
        assert factory.stream_kwargs[0]["resource_version"] == "100"
        assert factory.stream_kwargs[0]["allow_watch_bookmarks"] is True
        assert factory.stream_kwargs[0]["namespace"] == NAMESPACE

    def test_initial_resource_version_skips_listing(self, batch_api):
        """Test that a version passed to the helper is used for the first stream."""
        factory = ScriptedWatchFactory([modified(make_job())])
        helper = create_helper(batch_api, factory, resource_version="42")

        helper.next_event()

        batch_api.list_namespaced_job.assert_not_called()
        assert factory.stream_kwargs[0]["resource_version"] == "42"

    def test_bookmark_advances_cursor(self, batch_api):
        """Test that the next stream resumes at the last bookmark."""
        job = make_job("analyzer-1")
        factory = ScriptedWatchFactory(
            [bookmark("150"), bookmark("160")],
            [modified(job)],
        )
        helper = create_helper(batch_api, factory)

        event = helper.next_event()

        assert event.job is job
        assert [kwargs["resource_version"] for kwargs in factory.stream_kwargs] == ["100", "160"]
        # Only the initial listing
        assert batch_api.list_namespaced_job.call_count == 1
        assert helper.resource_version == "160"

    def test_stream_without_progress_refreshes_version(self, batch_api):
        """Test that a stream ending without bookmarks leads to a fresh listing."""
        batch_api.list_namespaced_job.side_effect = [
            make_job_list([], resource_version="100"),
            make_job_list([], resource_version="200"),
        ]
        factory = ScriptedWatchFactory([], [modified(make_job())])
        helper = create_helper(batch_api, factory)

        helper.next_event()

        assert batch_api.list_namespaced_job.call_count == 2
        assert [kwargs["resource_version"] for kwargs in factory.stream_kwargs] == ["100", "200"]

    def test_only_modified_events_are_returned(self, batch_api):
        """Test that ADDED, DELETED and ERROR events are skipped."""
        job = make_job("analyzer-1")
        factory = ScriptedWatchFactory(
            [
                {"type": "ADDED", "object": make_job("new")},
                {"type": "DELETED", "object": make_job("old")},
                {"type": "ERROR", "object": {"code": 500}},
                modified(job),
            ]
        )
        helper = create_helper(batch_api, factory)

        assert helper.next_event().job is job

    def test_stream_errors_are_swallowed(self, batch_api):
        """Test that an exception while reading reopens the stream."""
        job = make_job("analyzer-1")
        factory = ScriptedWatchFactory(
            [bookmark("150"), StreamError("connection reset")],
            [modified(job)],
        )
        helper = create_helper(batch_api, factory)

        event = helper.next_event()

        assert event.job is job
        assert factory.stream_kwargs[1]["resource_version"] == "150"
        factory.watches[0].stop.assert_called_once()

    def test_open_errors_are_retried(self, batch_api):
        """Test that a failing listing is retried after a pause."""
        batch_api.list_namespaced_job.side_effect = [
            StreamError("API unavailable"),
            make_job_list([], resource_version="300"),
        ]
        factory = ScriptedWatchFactory([modified(make_job())])
        helper = create_helper(batch_api, factory)

        helper.next_event()

        helper._sleep.assert_called_once_with(helper.retry_delay)
        assert factory.stream_kwargs[0]["resource_version"] == "300"

    def test_read_error_on_first_event_pauses_before_reopening(self, batch_api):
        """Test that a stream failing before its first event is reopened only after a pause."""
        job = make_job("analyzer-1")
        factory = ScriptedWatchFactory([RuntimeError("403 Forbidden")], [modified(job)])
        helper = create_helper(batch_api, factory)
        streams_opened_at_pause = []
        helper._sleep.side_effect = lambda delay: streams_opened_at_pause.append(len(factory.stream_kwargs))

        event = helper.next_event()

        assert event.job is job
        helper._sleep.assert_called_once_with(helper.retry_delay)
        assert streams_opened_at_pause == [1]
        assert len(factory.stream_kwargs) == 2

    def test_every_failing_stream_pauses(self, batch_api):
        """Test that a permanently rejected watch does not reconnect in a tight loop."""
        factory = ScriptedWatchFactory(
            [StreamError("403 Forbidden")],
            [StreamError("403 Forbidden")],
            [StreamError("403 Forbidden")],
            [modified(make_job())],
        )
        helper = create_helper(batch_api, factory)

        helper.next_event()

        assert helper._sleep.call_count == 3
        assert batch_api.list_namespaced_job.call_count == 4

    def test_empty_stream_pauses_before_reopening(self, batch_api):
        factory = ScriptedWatchFactory([], [modified(make_job())])
        helper = create_helper(batch_api, factory)

        helper.next_event()

        helper._sleep.assert_called_once_with(helper.retry_delay)

    def test_stream_with_events_is_reopened_without_pause(self, batch_api):
        factory = ScriptedWatchFactory([bookmark("150")], [modified(make_job())])
        helper = create_helper(batch_api, factory)

        helper.next_event()

        helper._sleep.assert_not_called()

    def test_consecutive_events_from_one_stream(self, batch_api):
        """Test that a stream stays open between calls."""
        first, second = make_job("first"), make_job("second")
        factory = ScriptedWatchFactory([modified(first), modified(second)])
        helper = create_helper(batch_api, factory)

        assert helper.next_event().job is first
        assert helper.next_event().job is second
        assert len(factory.stream_kwargs) == 1

    def test_create_uses_namespace_of_config(self, batch_api):
        """Test the factory method."""
        config = MonitorConfig(namespace="ort-server", reaper_interval=timedelta(minutes=5))

        helper = WatchHelper.create(batch_api, config, resource_version="7")

        assert helper.namespace == "ort-server"
        assert helper.resource_version == "7"
        assert helper.watch_resource_version is None


class TestWatchHelperStop:
    """Test that stop() ends the blocking next_event() call."""

    def test_next_event_after_stop_returns_none(self, batch_api):
        factory = ScriptedWatchFactory([modified(make_job())])
        helper = create_helper(batch_api, factory)

        helper.stop()

        assert helper.next_event() is None
        batch_api.list_namespaced_job.assert_not_called()
        assert factory.stream_kwargs == []

    def test_stop_ends_open_stream(self, batch_api):
        first, second = make_job("first"), make_job("second")
        factory = ScriptedWatchFactory([modified(first), modified(second)])
        helper = create_helper(batch_api, factory)
        assert helper.next_event().job is first

        helper.stop()

        factory.watches[0].stop.assert_called_once()
        assert helper.next_event() is None

    def test_stop_from_other_thread_while_streams_end_empty(self, batch_api):
        """Test that a watcher thread spinning on empty streams terminates after stop()."""
        helper = WatchHelper(
            batch_api,
            NAMESPACE,
            watch_factory=ScriptedWatchFactory(),
            retry_delay=0.01,
        )
        results = []
        thread = threading.Thread(target=lambda: results.append(helper.next_event()))
        thread.start()

        helper.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert results == [None]

    def test_stop_interrupts_pause(self, batch_api):
        """Test that the default pause returns as soon as the helper is stopped."""
        batch_api.list_namespaced_job.side_effect = StreamError("API unavailable")
        helper = WatchHelper(batch_api, NAMESPACE, watch_factory=ScriptedWatchFactory(), retry_delay=60)
        results = []
        thread = threading.Thread(target=lambda: results.append(helper.next_event()))
        thread.start()

        helper.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert results == [None]
