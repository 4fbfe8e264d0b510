"""
Schedules render jobs on the running event loop and streams their logs.

Code generation happens while the request waits (so a bad prompt or key is
reported straight back); rendering runs as its own asyncio task. Each job's
log lines are delivered to log readers as server-sent events.
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from .config import check_engine
from .errors import RenderError, ScenecastError
from .jobs import JobStore, RenderJob
from .pipeline import VideoGenerator

logger = logging.getLogger(__name__)

MEDIA_URL_PREFIX = "/media"


def format_sse(data: str, event: Optional[str] = None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    for line in (data.splitlines() or [""]):
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


def _error_kind(exc: BaseException) -> str:
    if isinstance(exc, RenderError):
        return exc.kind.value
    return type(exc).__name__


class JobManager:
    def __init__(self, generator: VideoGenerator, store: Optional[JobStore] = None, poll_interval: float = 1.0):
        self.generator = generator
        settings = generator.settings
        self.store = store or JobStore(capacity=settings.job_capacity, ttl_seconds=settings.job_ttl_seconds)
        self.poll_interval = poll_interval
        self.tasks: Dict[str, asyncio.Task] = {}

    def _log(self, run_id: str, message: str) -> None:
        logger.debug("[%s] %s", run_id, message)
        self.store.append_log(run_id, message)

    def media_url(self, video_path: str) -> Optional[str]:
        try:
            rel = Path(video_path).resolve().relative_to(self.generator.settings.media_dir.resolve())
        except ValueError:
            return None
        return f"{MEDIA_URL_PREFIX}/{rel.as_posix()}"

    async def submit_render(self, prompt: str, engine: str, api_key: str, duration: Optional[float] = None) -> str:
        """Create a job, generate its code, and schedule the render. Returns the run id."""
        check_engine(engine)
        job = self.store.create(prompt, engine)
        run_id = job.run_id

        try:
            self._log(run_id, "Code generation started")
            job.code = await self.generator.generate_code(prompt, engine, api_key)
            self._log(run_id, "Code generation completed")
        except ScenecastError as e:
            self._log(run_id, f"Error: {e}")
            self.store.complete(run_id, error=str(e), error_kind=_error_kind(e))
            raise

        task = asyncio.create_task(self._run_job(job, duration))
        self.tasks[run_id] = task
        task.add_done_callback(lambda _t: self.tasks.pop(run_id, None))
        return run_id

    async def _run_job(self, job: RenderJob, duration: Optional[float]) -> None:
        run_id = job.run_id
        self._log(run_id, f"Rendering started using {job.engine}")
        try:
            video_path = await self.generator.render(
                job.code, job.engine, run_id, lambda msg: self._log(run_id, msg), duration
            )
        except Exception as e:
            logger.warning("Render job %s failed: %s", run_id, e)
            self._log(run_id, f"Error: {e}")
            self.store.complete(run_id, error=str(e), error_kind=_error_kind(e))
            return

        self._log(run_id, "Rendering complete")
        self.store.complete(run_id, video_path=str(video_path), video_url=self.media_url(str(video_path)))

    def get_status(self, run_id: str) -> Optional[Dict]:
        job = self.store.get(run_id)
        return job.to_dict() if job else None

    def list_jobs(self) -> List[Dict]:
        return [job.to_dict() for job in self.store.list()]

    async def stream_logs(self, run_id: str) -> AsyncIterator[str]:
        """Yield every log line once, in order, then a final `done` event."""
        job = self.store.get(run_id)
        if job is None:
            raise KeyError(run_id)

        sent = 0
        while True:
            finished = job.done
            while sent < len(job.logs):
                yield format_sse(job.logs[sent])
                sent += 1
            if finished:
                payload = {"videoPath": job.video_path, "videoUrl": job.video_url, "error": job.error}
                yield format_sse(json.dumps(payload), event="done")
                return
            await asyncio.sleep(self.poll_interval)
