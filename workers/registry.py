"""
PollRegistry - the running polls a session owns, keyed by job id.

Each poll runs on its own daemon thread. Cancelling sets the poller's
stop event, which interrupts its inter-poll sleep.
"""

import threading
from typing import Callable, Optional

from models import JobEvent
from .poller import JobPoller

EventCallback = Callable[[JobEvent], None]
DoneCallback = Callable[[Optional[JobEvent]], None]


class PollRegistry:
    """
    Handles:
    - One thread per job, never two for the same job id
    - Independent cancellation per job
    - cancel_all() when the owning session closes
    """

    def __init__(self, name: str = "PollRegistry"):
        self.name = name
        self._lock = threading.Lock()
        self._pollers: dict[str, JobPoller] = {}
        self._threads: dict[str, threading.Thread] = {}

    def start(self, poller: JobPoller, on_event: EventCallback,
              on_done: Optional[DoneCallback] = None) -> bool:
        """Start polling in the background. False if this job is already polled."""
        job_id = poller.handle.id
        with self._lock:
            # Entries leave the maps only when the poll thread finishes
            if job_id in self._pollers:
                print(f"[{self.name}] Job {job_id} already polling")
                return False

            self._pollers[job_id] = poller
            thread = threading.Thread(
                target=self._run, args=(poller, on_event, on_done), daemon=True, name=f"poll-{job_id}"
            )
            self._threads[job_id] = thread
            thread.start()
        print(f"[{self.name}] Started polling {poller.handle.kind.value} job {job_id}")
        return True

    def _run(self, poller: JobPoller, on_event: EventCallback, on_done: Optional[DoneCallback]) -> None:
        terminal = None
        try:
            terminal = poller.run(on_event)
        except Exception as e:
            print(f"[{self.name}] Poll loop for {poller.handle.id} crashed: {e}")
        finally:
            with self._lock:
                self._pollers.pop(poller.handle.id, None)
                self._threads.pop(poller.handle.id, None)
            if on_done:
                try:
                    on_done(terminal)
                except Exception as e:
                    print(f"[{self.name}] Done callback error: {e}")

    def cancel(self, job_id: str) -> bool:
        with self._lock:
            poller = self._pollers.get(job_id)
        if poller is None:
            return False
        poller.cancel.set()
        print(f"[{self.name}] Cancelled job {job_id}")
        return True

    def cancel_all(self) -> int:
        with self._lock:
            pollers = list(self._pollers.values())
        for poller in pollers:
            poller.cancel.set()
        if pollers:
            print(f"[{self.name}] Cancelled {len(pollers)} running poll(s)")
        return len(pollers)

    def join(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Wait for a poll thread to finish. True if it is no longer running."""
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def is_polling(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._pollers

    def active_jobs(self) -> list[str]:
        with self._lock:
            return list(self._pollers)
