"""
High-level orchestrator: code generation followed by rendering.

Used directly by the CLI (which wants the finished video in one call) and by
the JobManager (which splits the two steps around the HTTP response).
"""
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .codegen import CodeGenerator
from .config import Settings, check_engine
from .detectors import ToolLocator
from .manim_renderer import ManimRenderer
from .p5_renderer import P5Renderer

logger = logging.getLogger(__name__)

LogFn = Callable[[str], None]


def _noop(_message: str) -> None:
    pass


class VideoGenerator:
    def __init__(
        self,
        settings: Settings,
        tools: Optional[ToolLocator] = None,
        codegen: Optional[CodeGenerator] = None,
        p5_renderer: Optional[P5Renderer] = None,
        manim_renderer: Optional[ManimRenderer] = None,
    ):
        self.settings = settings
        self.tools = tools or ToolLocator(env=settings.env)
        self.codegen = codegen or CodeGenerator(model=settings.gemini_model)
        self.p5_renderer = p5_renderer or P5Renderer(settings, self.tools)
        self.manim_renderer = manim_renderer or ManimRenderer(settings, self.tools)

    async def generate_code(self, prompt: str, engine: str, api_key: str) -> str:
        return await self.codegen.generate(prompt, engine, api_key)

    async def render(
        self,
        code: str,
        engine: str,
        run_id: str,
        log: Optional[LogFn] = None,
        duration: Optional[float] = None,
    ) -> Path:
        check_engine(engine)
        if engine == "p5":
            if duration is None:
                duration = self.settings.default_duration
            return await self.p5_renderer.render(code, run_id, log, duration)
        return await self.manim_renderer.render(code, run_id, log)

    async def generate(
        self,
        prompt: str,
        engine: str,
        api_key: str,
        duration: Optional[float] = None,
        log: Optional[LogFn] = None,
        run_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run the whole pipeline and return {videoPath, downloadPath, filename}."""
        log = log or _noop
        run_id = run_id or uuid.uuid4().hex
        check_engine(engine)
        try:
            log("Code generation started...")
            code = await self.generate_code(prompt, engine, api_key)
            log("Code generation finished - preparing for video rendering")

            log(f"Video rendering started using {engine}")
            video_path = await self.render(code, engine, run_id, log, duration)
        except Exception as e:
            log(f"Error: {e}")
            raise

        video_path = Path(video_path).resolve()
        log("Video generation completed successfully")
        return {
            "runId": run_id,
            "videoPath": str(video_path),
            "downloadPath": video_path.as_uri(),
            "filename": video_path.name,
        }
