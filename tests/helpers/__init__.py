"""Test helper utilities for job monitor tests."""

from .jobs import FakeTimeHelper, make_job, make_job_list, make_pod_list

__all__ = ["FakeTimeHelper", "make_job", "make_job_list", "make_pod_list"]
