"""
In-memory render jobs.

A RenderJob is created when a request arrives, gathers log lines while it runs
and is completed exactly once. JobStore holds a bounded number of jobs: when
it is full, expired and then oldest finished jobs make room; running jobs are
never evicted.
"""
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import JobStateError, JobStoreFullError


class JobStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"


@dataclass
class RenderJob:
    run_id: str
    prompt: str
    engine: str
    code: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    video_path: Optional[str] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def done(self) -> bool:
        return self.status == JobStatus.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.run_id,
            "prompt": self.prompt,
            "engine": self.engine,
            "status": self.status.value,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
            "video_path": self.video_path,
            "video_url": self.video_url,
            "error": self.error,
            "error_kind": self.error_kind,
            "log_count": len(self.logs),
        }


class JobStore:
    def __init__(self, capacity: int = 256, ttl_seconds: float = 3600.0, clock: Callable[[], float] = time.time):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._jobs: "OrderedDict[str, RenderJob]" = OrderedDict()

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._jobs

    def create(self, prompt: str, engine: str, run_id: Optional[str] = None) -> RenderJob:
        run_id = run_id or uuid.uuid4().hex
        if run_id in self._jobs:
            raise JobStateError(f"Job {run_id} already exists")
        if len(self._jobs) >= self.capacity:
            self._make_room()
        job = RenderJob(run_id=run_id, prompt=prompt, engine=engine, created_at=self._clock())
        self._jobs[run_id] = job
        return job

    def get(self, run_id: str) -> Optional[RenderJob]:
        return self._jobs.get(run_id)

    def list(self) -> List[RenderJob]:
        return list(self._jobs.values())

    def append_log(self, run_id: str, message: str) -> None:
        job = self._require(run_id)
        if job.done:
            raise JobStateError(f"Job {run_id} is already done")
        job.logs.append(message)

    def complete(
        self,
        run_id: str,
        video_path: Optional[str] = None,
        error: Optional[str] = None,
        error_kind: Optional[str] = None,
        video_url: Optional[str] = None,
    ) -> RenderJob:
        job = self._require(run_id)
        if job.done:
            raise JobStateError(f"Job {run_id} is already done")
        job.video_path = video_path
        job.video_url = video_url
        job.error = error
        job.error_kind = error_kind
        job.finished_at = self._clock()
        job.status = JobStatus.DONE
        return job

    def expire(self) -> int:
        """Drop finished jobs older than the TTL; returns how many were removed."""
        now = self._clock()
        stale = [
            run_id for run_id, job in self._jobs.items()
            if job.done and job.finished_at is not None and now - job.finished_at >= self.ttl_seconds
        ]
        for run_id in stale:
            del self._jobs[run_id]
        return len(stale)

    def _make_room(self) -> None:
        if self.expire():
            return
        for run_id, job in self._jobs.items():
            if job.done:
                del self._jobs[run_id]
                return
        raise JobStoreFullError(f"All {self.capacity} job slots are busy; try again later")

    def _require(self, run_id: str) -> RenderJob:
        job = self._jobs.get(run_id)
        if job is None:
            raise KeyError(run_id)
        return job
