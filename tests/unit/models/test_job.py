"""Unit tests for job models."""

import pytest

from models import JobHandle, JobKind, JobStatus
from models.job import poll_interval, stage_rank


class TestJobHandle:

    def test_advance_is_monotonic(self):
        handle = JobHandle(id="j", kind=JobKind.REPORT)
        handle.advance(40, "Researching")
        handle.advance(10, "Restarted?")
        assert handle.progress.percent == 40
        assert handle.progress.message == "Restarted?"

    def test_advance_clamps(self):
        handle = JobHandle(id="j", kind=JobKind.REPORT)
        handle.advance(250, "Too far")
        assert handle.progress.percent == 100

    def test_unknown_stage_uses_default(self):
        handle = JobHandle(id="j", kind=JobKind.DARKWEB)
        handle.apply_stage("warp_drive")
        assert handle.progress.percent == 25
        assert handle.stage == ""

    def test_stage_message_counts_default_to_zero(self):
        handle = JobHandle(id="j", kind=JobKind.DARKWEB)
        handle.apply_stage("scraping")
        assert handle.progress.message == "Scraping 0 relevant sites..."

    def test_stage_never_moves_back(self):
        handle = JobHandle(id="j", kind=JobKind.DARKWEB)
        handle.apply_stage("generating_summary")
        handle.apply_stage("initializing")
        assert handle.stage == "generating_summary"
        assert handle.progress.percent == 85

    def test_terminal_statuses(self):
        assert JobStatus.TIMED_OUT.is_terminal
        assert not JobStatus.PROCESSING.is_terminal


class TestSchedules:

    @pytest.mark.parametrize("elapsed,expected", [(0, 2.0), (14.9, 2.0), (15, 3.0), (44, 3.0), (45, 5.0), (900, 5.0)])
    def test_report_schedule(self, elapsed, expected):
        assert poll_interval(JobKind.REPORT, elapsed) == expected

    def test_report_schedule_non_decreasing(self):
        intervals = [poll_interval(JobKind.REPORT, t) for t in range(0, 120, 5)]
        assert intervals == sorted(intervals)

    def test_stage_rank(self):
        assert stage_rank(JobKind.DARKWEB, "initializing") < stage_rank(JobKind.DARKWEB, "searching")
        assert stage_rank(JobKind.DARKWEB, "bogus") == -1
