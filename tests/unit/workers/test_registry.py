"""
Tests for PollRegistry - background polls keyed by job id.
"""

import threading
import time

from models import JobEventType, JobHandle, JobKind
from workers import JobPoller, PollRegistry


def make_poller(caller, job_id, statuses, sleep=None):
    handle = JobHandle(id=job_id, kind=JobKind.REPORT)
    return JobPoller(
        handle,
        fetch_status=statuses,
        fetch_result=lambda timeout: "# Done",
        caller=caller,
        sleep=sleep or (lambda seconds: None),
    )


def forever(timeout):
    return {"status": "processing"}


class TestPollRegistry:

    def test_runs_to_completion_and_calls_done(self, caller):
        registry = PollRegistry()
        done = threading.Event()
        results = []

        def on_done(terminal):
            results.append(terminal)
            done.set()

        poller = make_poller(caller, "job-1", lambda timeout: {"status": "completed"})
        assert registry.start(poller, lambda event: None, on_done)
        assert done.wait(5)

        assert results[0].type == JobEventType.COMPLETED
        assert registry.join("job-1", 5)
        assert registry.active_jobs() == []

    def test_refuses_second_poll_for_same_job(self, caller):
        registry = PollRegistry()
        slow = lambda seconds: time.sleep(0.01)
        first = make_poller(caller, "job-1", forever, sleep=slow)
        second = make_poller(caller, "job-1", forever, sleep=slow)
        try:
            assert registry.start(first, lambda event: None)
            assert not registry.start(second, lambda event: None)
        finally:
            registry.cancel_all()
            registry.join("job-1", 5)

    def test_cancel_one_leaves_others(self, caller):
        registry = PollRegistry()
        slow = lambda seconds: time.sleep(0.01)
        cancelled = threading.Event()
        terminal = []

        def on_done(event):
            terminal.append(event)
            cancelled.set()

        registry.start(make_poller(caller, "job-a", forever, sleep=slow), lambda event: None, on_done)
        registry.start(make_poller(caller, "job-b", forever, sleep=slow), lambda event: None)
        try:
            assert registry.cancel("job-a")
            assert cancelled.wait(5)
            assert terminal == [None]
            assert registry.is_polling("job-b")
        finally:
            registry.cancel_all()
            registry.join("job-b", 5)

    def test_cancel_unknown_job(self):
        assert not PollRegistry().cancel("missing")

    def test_cancel_all_counts(self, caller):
        registry = PollRegistry()
        slow = lambda seconds: time.sleep(0.01)
        for job_id in ("job-a", "job-b"):
            registry.start(make_poller(caller, job_id, forever, sleep=slow), lambda event: None)

        assert registry.cancel_all() == 2
        assert registry.join("job-a", 5)
        assert registry.join("job-b", 5)
        assert registry.active_jobs() == []

    def test_event_callback_error_does_not_kill_poll(self, caller):
        registry = PollRegistry()
        done = threading.Event()
        statuses = iter([{"status": "processing"}, {"status": "completed"}])

        def broken(event):
            raise RuntimeError("ui went away")

        registry.start(make_poller(caller, "job-1", lambda timeout: next(statuses)), broken,
                       lambda terminal: done.set())
        assert done.wait(5)

    def test_concurrent_starts_for_same_job_run_one_poll(self, caller):
        registry = PollRegistry()
        slow = lambda seconds: time.sleep(0.01)
        barrier = threading.Barrier(8)
        started = []

        def start():
            poller = make_poller(caller, "job-1", forever, sleep=slow)
            barrier.wait()
            started.append(registry.start(poller, lambda event: None))

        threads = [threading.Thread(target=start) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5)
        try:
            assert started.count(True) == 1
            assert registry.active_jobs() == ["job-1"]
        finally:
            registry.cancel_all()
            registry.join("job-1", 5)

    def test_job_id_reusable_after_poll_ends(self, caller):
        registry = PollRegistry()
        done = threading.Event()
        first = make_poller(caller, "job-1", lambda timeout: {"status": "completed"})
        registry.start(first, lambda event: None, lambda terminal: done.set())
        assert done.wait(5)

        second = make_poller(caller, "job-1", lambda timeout: {"status": "completed"})
        assert registry.start(second, lambda event: None)
        assert registry.join("job-1", 5)
