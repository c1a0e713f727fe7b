"""
Jobs - remote long-running work tracked by polling.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .base import now_utc


class JobKind(str, Enum):
    REPORT = "report"
    DARKWEB = "darkweb"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT)


class JobProgress(BaseModel):
    message: str = "Processing..."
    percent: int = Field(default=0, ge=0, le=100)


class StageInfo(BaseModel):
    percent: int
    message: str  # May contain {search_results_count} / {filtered_results_count}


DEFAULT_STAGE = StageInfo(percent=25, message="Processing...")

# Ordered: position in the dict is the forward order of stages
STAGE_TABLES: dict[JobKind, dict[str, StageInfo]] = {
    JobKind.DARKWEB: {
        "initializing": StageInfo(percent=22, message="Initializing investigation..."),
        "refining_query": StageInfo(percent=28, message="Refining search query with AI..."),
        "searching": StageInfo(percent=40, message="Searching dark web engines..."),
        "filtering": StageInfo(percent=55, message="Filtering {search_results_count} results..."),
        "scraping": StageInfo(percent=70, message="Scraping {filtered_results_count} relevant sites..."),
        "generating_summary": StageInfo(percent=85, message="Generating intelligence summary..."),
    },
    JobKind.REPORT: {
        "initializing": StageInfo(percent=10, message="Initializing report..."),
        "researching": StageInfo(percent=30, message="Researching sources..."),
        "analyzing": StageInfo(percent=55, message="Analyzing findings..."),
        "writing": StageInfo(percent=75, message="Writing report..."),
        "finalizing": StageInfo(percent=90, message="Finalizing report..."),
    },
}

# (elapsed threshold seconds, interval seconds); last entry applies beyond all thresholds
POLL_SCHEDULES: dict[JobKind, list[tuple[float, float]]] = {
    JobKind.REPORT: [(15.0, 2.0), (45.0, 3.0), (float("inf"), 5.0)],
    JobKind.DARKWEB: [(20.0, 3.0), (60.0, 5.0), (float("inf"), 8.0)],
}


def poll_interval(kind: JobKind, elapsed: float) -> float:
    for threshold, interval in POLL_SCHEDULES[kind]:
        if elapsed < threshold:
            return interval
    return POLL_SCHEDULES[kind][-1][1]


def stage_rank(kind: JobKind, stage: str) -> int:
    """Position of a known stage; -1 for unknown stages."""
    stages = list(STAGE_TABLES[kind])
    return stages.index(stage) if stage in stages else -1


class JobHandle(BaseModel):
    """
    In-memory state of one submitted job.

    Mutated only by its JobPoller. percent never goes down and stage only
    moves forward while the job is processing.
    """
    id: str
    kind: JobKind
    status: JobStatus = JobStatus.QUEUED
    stage: str = ""
    progress: JobProgress = Field(default_factory=JobProgress)
    intermediate_results: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=now_utc)
    elapsed_budget: float = 300.0
    correlation_id: Optional[str] = None

    def advance(self, percent: int, message: str) -> None:
        """Apply new progress, holding percent monotonic."""
        percent = max(0, min(100, int(percent)))
        self.progress = JobProgress(message=message, percent=max(self.progress.percent, percent))

    def apply_stage(self, stage: Optional[str], counts: Optional[dict] = None) -> None:
        """Move to a stage from the kind's table; backward and unknown stages never regress."""
        stage = stage or ""
        info = STAGE_TABLES[self.kind].get(stage)
        if info is None:
            if stage:
                print(f"[JobHandle] Unrecognized stage '{stage}' for {self.kind.value} job {self.id}")
            self.advance(DEFAULT_STAGE.percent, DEFAULT_STAGE.message)
            return

        if stage_rank(self.kind, stage) < stage_rank(self.kind, self.stage):
            return
        self.stage = stage
        counts = {"search_results_count": 0, "filtered_results_count": 0, **(counts or {})}
        self.advance(info.percent, info.message.format(**counts))


class JobEventType(str, Enum):
    PROGRESS = "progress"
    RETRY = "retry"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timeout"


class JobEvent(BaseModel):
    """One item of the progress stream a JobPoller yields."""
    type: JobEventType
    job_id: str
    status: JobStatus
    progress: JobProgress
    intermediate_results: list[str] = Field(default_factory=list)
    message: str = ""
    content: Optional[str] = None
    error_category: Optional[str] = None
    filename: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (JobEventType.COMPLETED, JobEventType.FAILED, JobEventType.TIMED_OUT)
