"""
JobPoller - drives one remote job to a terminal state.

poll() is a generator of JobEvents: progress and retry events while the
job runs, then exactly one terminal event (completed, failed or timeout).
Polls for one job never overlap: each status fetch finishes before the
next sleep starts.
"""

import threading
import time
from typing import Callable, Iterator, Optional

from models import JobEvent, JobEventType, JobHandle, JobKind, JobStatus
from models.job import poll_interval
from remote import CancelledError, ErrorCategory, JobFailedError, RemoteCaller, RemoteError
from remote.content import READY_FIELDS, first_string_field, sanitize_markdown

# status values seen from the service, folded to our enum
STATUS_ALIASES = {
    "queued": JobStatus.QUEUED,
    "pending": JobStatus.QUEUED,
    "processing": JobStatus.PROCESSING,
    "running": JobStatus.PROCESSING,
    "in_progress": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "complete": JobStatus.COMPLETED,
    "done": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
}

FETCHING_RESULTS_PERCENT = 92

StatusFetch = Callable[[float], dict]
ResultFetch = Callable[[float], str]
ReadyContentFetch = Callable[[str, float], str]


def parse_status(value) -> JobStatus:
    return STATUS_ALIASES.get(str(value or "").lower(), JobStatus.PROCESSING)


class JobPoller:
    """
    State machine for one submitted job.

    Handles:
    - Adaptive poll intervals per job kind
    - Consecutive transient-error budget (reset on any successful poll)
    - Elapsed-time budget
    - Lost-job recovery: a 404 on status triggers one direct result fetch
    - Report "response ready" shortcut, checked before status
    - Result extraction and sanitization on completion
    """

    def __init__(
        self,
        handle: JobHandle,
        fetch_status: StatusFetch,
        fetch_result: ResultFetch,
        caller: RemoteCaller,
        fetch_ready_content: Optional[ReadyContentFetch] = None,
        max_consecutive_errors: int = 5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.handle = handle
        self.fetch_status = fetch_status
        self.fetch_result = fetch_result
        self.fetch_ready_content = fetch_ready_content
        self.caller = caller
        self.max_consecutive_errors = max_consecutive_errors
        self.consecutive_errors = 0
        self.cancel = cancel or threading.Event()
        self._clock = clock
        self._sleep = sleep
        self.name = f"JobPoller:{handle.id}"

    # === Event helpers ===

    def _event(self, event_type: JobEventType, message: str = "", **kwargs) -> JobEvent:
        return JobEvent(
            type=event_type,
            job_id=self.handle.id,
            status=self.handle.status,
            progress=self.handle.progress.model_copy(),
            intermediate_results=list(self.handle.intermediate_results),
            message=message,
            **kwargs,
        )

    def _fail(self, error: RemoteError) -> JobEvent:
        self.handle.status = JobStatus.FAILED
        print(f"[JobPoller] Job {self.handle.id} failed ({error.category.value}): {error}")
        return self._event(JobEventType.FAILED, error.user_message(), error_category=error.category.value)

    def _complete(self, content: str, filename: Optional[str] = None) -> JobEvent:
        self.handle.status = JobStatus.COMPLETED
        self.handle.advance(100, "Complete")
        return self._event(
            JobEventType.COMPLETED,
            "Complete",
            content=sanitize_markdown(content),
            filename=filename,
        )

    def _pause(self, interval: float) -> bool:
        """Sleep until the next poll. False when cancelled."""
        if self._sleep is not None:
            self._sleep(interval)
            return not self.cancel.is_set()
        return not self.cancel.wait(interval)

    # === Payload handling ===

    def _apply_progress(self, payload: dict) -> None:
        results = payload.get("intermediate_results")
        if isinstance(results, list):
            self.handle.intermediate_results = [str(r) for r in results]

        progress = payload.get("progress")
        # Report jobs show the server's own progress; the stage table is only a fallback
        use_stage = self.handle.kind == JobKind.DARKWEB or (payload.get("stage") and not isinstance(progress, dict))
        if use_stage:
            counts = {
                "search_results_count": payload.get("search_results_count") or 0,
                "filtered_results_count": payload.get("filtered_results_count") or 0,
            }
            self.handle.apply_stage(payload.get("stage"), counts)
            return

        if isinstance(progress, dict):
            try:
                percent = int(progress.get("percent") or 0)
            except (TypeError, ValueError):
                percent = 0
            self.handle.advance(percent, progress.get("message") or "Processing...")

    def _ready_content(self, payload: dict) -> JobEvent:
        correlation_id = self.handle.correlation_id or payload.get("conversation_id")
        if not correlation_id:
            return self._fail(RemoteError(
                "Response ready but no conversation_id available", ErrorCategory.VALIDATION
            ))
        self.handle.correlation_id = correlation_id

        content = first_string_field(payload, READY_FIELDS)
        if not content and self.fetch_ready_content is not None:
            try:
                content = self.caller.call(
                    lambda t: self.fetch_ready_content(correlation_id, t), cancel=self.cancel
                )
            except RemoteError as e:
                return self._fail(e)
        if not content:
            return self._fail(RemoteError(
                f"Response is ready but no content found. Conversation ID: {correlation_id}",
                ErrorCategory.NOT_FOUND,
            ))
        return self._complete(content, f"response_{self.handle.id}.md")

    def _fetch_result(self, filename: Optional[str] = None) -> JobEvent:
        self.handle.advance(FETCHING_RESULTS_PERCENT, "Fetching results...")
        try:
            content = self.caller.call(self.fetch_result, cancel=self.cancel)
        except RemoteError as e:
            return self._fail(e)
        if not content or not content.strip():
            return self._fail(RemoteError("Result was empty", ErrorCategory.NOT_FOUND))
        return self._complete(content, filename)

    def _recover_lost_job(self) -> JobEvent:
        print(f"[JobPoller] Job {self.handle.id} not found on server (404). Fetching result directly...")
        try:
            content = self.caller.attempt_once(self.fetch_result)
        except RemoteError as e:
            print(f"[JobPoller] Direct fetch after 404 failed: {e}")
            return self._fail(RemoteError(
                "The server lost track of this job. It may have completed but the result is not accessible. "
                "Please start a new request.",
                ErrorCategory.NOT_FOUND,
            ))
        if not content or not content.strip():
            return self._fail(RemoteError("The server lost track of this job.", ErrorCategory.NOT_FOUND))
        return self._complete(content)

    # === Main loop ===

    def poll(self) -> Iterator[JobEvent]:
        started = self._clock()
        self.handle.status = JobStatus.PROCESSING if self.handle.status == JobStatus.QUEUED else self.handle.status

        while True:
            elapsed = self._clock() - started
            if elapsed >= self.handle.elapsed_budget:
                self.handle.status = JobStatus.TIMED_OUT
                minutes = round(self.handle.elapsed_budget / 60)
                print(f"[JobPoller] Job {self.handle.id} timed out after {elapsed:.0f}s")
                yield self._event(
                    JobEventType.TIMED_OUT,
                    f"The job is taking longer than expected ({minutes} minutes). "
                    "It may still be processing on the server; try checking again later.",
                    error_category=ErrorCategory.TIMEOUT.value,
                )
                return

            if not self._pause(poll_interval(self.handle.kind, elapsed)):
                print(f"[JobPoller] Job {self.handle.id} cancelled")
                return

            try:
                payload = self.caller.attempt_once(self.fetch_status)
            except CancelledError:
                return
            except RemoteError as e:
                if e.category == ErrorCategory.NOT_FOUND:
                    yield self._recover_lost_job()
                    return
                if not e.is_transient:
                    yield self._fail(e)
                    return

                self.consecutive_errors += 1
                print(f"[JobPoller] Status poll error ({self.consecutive_errors}/{self.max_consecutive_errors}): {e}")
                if self.consecutive_errors >= self.max_consecutive_errors:
                    yield self._fail(RemoteError(
                        "Network connection lost after multiple retries. "
                        "Please check your internet connection and try again.",
                        ErrorCategory.TRANSIENT_NETWORK,
                    ))
                    return
                yield self._event(
                    JobEventType.RETRY,
                    f"Network interrupted, retrying... ({elapsed:.0f}s elapsed, "
                    f"attempt {self.consecutive_errors}/{self.max_consecutive_errors})",
                    error_category=e.category.value,
                )
                continue

            self.consecutive_errors = 0

            if self.handle.kind == JobKind.REPORT and payload.get("response_ready"):
                yield self._ready_content(payload)
                return

            status = parse_status(payload.get("status"))
            if status == JobStatus.COMPLETED:
                yield self._fetch_result(payload.get("filename"))
                return
            if status == JobStatus.FAILED:
                yield self._fail(JobFailedError(str(payload.get("error") or "Unknown error")))
                return

            self.handle.status = status
            self._apply_progress(payload)
            yield self._event(JobEventType.PROGRESS, self.handle.progress.message)

    def run(self, on_event: Callable[[JobEvent], None]) -> Optional[JobEvent]:
        """Drain poll() into a callback. Returns the terminal event, None if cancelled."""
        last = None
        for event in self.poll():
            last = event
            try:
                on_event(event)
            except Exception as e:
                print(f"[JobPoller] Event callback error: {e}")
        return last if last is not None and last.is_terminal else None
