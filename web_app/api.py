# web_app/api.py
"""
FastAPI endpoints for prompt -> code -> video rendering.

- GET  /health?engine=p5|manim: quick availability check for one engine
- GET  /api/health?engine=p5|manim|both: full readiness report
- POST /api/generate: generates code, schedules the render, returns {runId}
- GET  /api/logs?runId=: server-sent events with the job's log lines and a final `done` event
- GET  /status/{run_id}: job metadata
- GET  /jobs: list jobs
- /media/...: produced videos
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, field_validator

from scenecast.config import Settings
from scenecast.errors import InvalidEngineError, JobStoreFullError, ScenecastError, ToolNotFoundError
from scenecast.health import HealthChecker
from scenecast.job_manager import MEDIA_URL_PREFIX, JobManager
from scenecast.p5_renderer import frame_count
from scenecast.pipeline import VideoGenerator


class GenerateRequest(BaseModel):
    prompt: str
    engine: str
    apiKey: str = ""
    duration: Optional[float] = None

    @field_validator("duration")
    @classmethod
    def duration_covers_a_frame(cls, value: Optional[float]) -> Optional[float]:
        if value is not None:
            frame_count(value)
        return value


def create_app(
    settings: Optional[Settings] = None,
    generator: Optional[VideoGenerator] = None,
    job_manager: Optional[JobManager] = None,
    health_checker: Optional[HealthChecker] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    generator = generator or VideoGenerator(settings)
    job_manager = job_manager or JobManager(generator, poll_interval=settings.log_poll_interval)
    health_checker = health_checker or HealthChecker(settings, generator.tools)

    app = FastAPI(title="scenecast: prompt -> p5.js / Manim video API")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.settings = settings
    app.state.job_manager = job_manager
    app.state.health_checker = health_checker

    @app.get("/health")
    async def health(engine: Optional[str] = None):
        try:
            health_checker.is_engine_available(engine)
        except InvalidEngineError:
            return JSONResponse(status_code=400, content={"available": False, "reason": "Invalid engine"})
        except ToolNotFoundError as e:
            return {"available": False, "reason": str(e)}
        return {"available": True}

    @app.get("/api/health")
    async def api_health(engine: str = "both"):
        try:
            report = health_checker.check(engine)
        except InvalidEngineError as e:
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "available": False,
                    "reason": str(e),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
        return {"success": True, "available": HealthChecker.overall_available(report, engine), **report}

    @app.post("/api/generate")
    async def generate(req: GenerateRequest):
        try:
            run_id = await job_manager.submit_render(req.prompt, req.engine, req.apiKey, req.duration)
        except JobStoreFullError as e:
            return JSONResponse(status_code=503, content={"error": str(e)})
        except ScenecastError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})
        return {"runId": run_id}

    @app.get("/api/logs")
    async def logs(runId: str):
        if job_manager.store.get(runId) is None:
            return JSONResponse(status_code=404, content={"error": "Run not found"})
        return StreamingResponse(
            job_manager.stream_logs(runId),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.get("/status/{run_id}")
    async def job_status(run_id: str):
        meta = job_manager.get_status(run_id)
        if not meta:
            return JSONResponse(status_code=404, content={"error": "Job not found"})
        return meta

    @app.get("/jobs")
    async def list_jobs():
        return job_manager.list_jobs()

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "endpoints": [
                "/health (GET)",
                "/api/health (GET)",
                "/api/generate (POST)",
                "/api/logs (GET, SSE)",
                "/status/{run_id} (GET)",
                "/jobs (GET)",
            ],
        }

    app.mount(MEDIA_URL_PREFIX, StaticFiles(directory=str(settings.media_dir), check_dir=False), name="media")
    return app


app = create_app()
