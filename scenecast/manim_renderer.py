"""
Renders a generated Manim scene by driving the Manim CLI.

Flow:
- write <scripts>/<run_id>.py
- spawn `manim -qk --disable_caching <script> GeneratedScene --media_dir <media>/<run_id>`
- stream stdout/stderr into the job log, tagging stderr lines as progress/error/output
- exit 0: locate GeneratedScene.mp4 in the nested output tree and copy it to
  <media>/<run_id>.mp4
- exit != 0: classify stderr against FAILURE_RULES and raise a RenderError

The working directory <media>/<run_id> is removed on every exit path except
when the canonical video already exists.
"""
import asyncio
import codecs
import logging
import re
import shutil
from enum import Enum
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, Tuple

from .config import Settings
from .detectors import ToolLocator
from .errors import ManimFailureKind, RenderError, RenderErrorKind, ToolNotFoundError
from .locator import ArtifactLocator, LocateStatus

logger = logging.getLogger(__name__)

LogFn = Callable[[str], None]

SCENE_NAME = "GeneratedScene"
OUTPUT_FILENAME = f"{SCENE_NAME}.mp4"
MANIM_FLAGS = ("-qk", "--disable_caching")
COMMON_LOCATIONS = (
    OUTPUT_FILENAME,
    f"2160p60/{OUTPUT_FILENAME}",
    f"1080p60/{OUTPUT_FILENAME}",
    f"720p30/{OUTPUT_FILENAME}",
    f"480p15/{OUTPUT_FILENAME}",
)

INCOMPLETE_MESSAGE = (
    "Manim rendering incomplete: Final video assembly failed. This may be due to complex "
    "animations or system resource constraints. Try simplifying the prompt."
)


class LineKind(str, Enum):
    PROGRESS = "progress"
    ERROR = "error"
    OUTPUT = "output"


def classify_stderr_line(line: str) -> LineKind:
    text = line.strip()
    is_progress = "Animation" in text and ("%|" in text or "it/s" in text)
    if is_progress:
        return LineKind.PROGRESS
    lowered = text.lower()
    if "error" in lowered or "traceback" in lowered or "exception" in lowered:
        return LineKind.ERROR
    return LineKind.OUTPUT


_LINE_PREFIX = {
    LineKind.PROGRESS: "[Manim Progress]",
    LineKind.ERROR: "[Manim Error]",
    LineKind.OUTPUT: "[Manim]",
}


class FailureRule(NamedTuple):
    kind: ManimFailureKind
    needles: Tuple[str, ...]
    message: str


# First match wins; a rule matches when every needle is present in stderr.
FAILURE_RULES: Tuple[FailureRule, ...] = (
    FailureRule(ManimFailureKind.DEPRECATED_API, ("TypeError", "use_quadratic_bezier"),
                "Code uses deprecated Manim API. Please try regenerating with a simpler prompt."),
    FailureRule(ManimFailureKind.BAD_PARAMETERS, ("TypeError", "unexpected keyword argument"),
                "Generated code uses incorrect method parameters. Try regenerating with a different approach."),
    FailureRule(ManimFailureKind.TYPE_ERROR, ("TypeError",),
                "TypeError in generated code. The AI may have used incorrect method parameters."),
    FailureRule(ManimFailureKind.ATTRIBUTE_ERROR, ("AttributeError",),
                "AttributeError in generated code. The AI may have used non-existent methods."),
    FailureRule(ManimFailureKind.MISSING_PACKAGE, ("ImportError",),
                "Missing required Python packages for Manim rendering."),
    FailureRule(ManimFailureKind.MISSING_PACKAGE, ("ModuleNotFoundError",),
                "Missing required Python packages for Manim rendering."),
    FailureRule(ManimFailureKind.SYNTAX_ERROR, ("SyntaxError",),
                "Syntax error in generated Python code."),
    FailureRule(ManimFailureKind.NAME_ERROR, ("NameError",),
                "Variable or function name error in generated code."),
    FailureRule(ManimFailureKind.OUT_OF_MEMORY, ("MemoryError",),
                "Insufficient memory for rendering. Try reducing animation complexity or duration."),
    FailureRule(ManimFailureKind.OUT_OF_MEMORY, ("OutOfMemoryError",),
                "Insufficient memory for rendering. Try reducing animation complexity or duration."),
    FailureRule(ManimFailureKind.ENCODING, ("FFmpeg",),
                "Video encoding failed. There may be an issue with the animation timeline or FFmpeg."),
)
UNKNOWN_FAILURE_MESSAGE = "Manim rendering failed"


def classify_failure(stderr: str) -> Tuple[ManimFailureKind, str]:
    for rule in FAILURE_RULES:
        if all(needle in stderr for needle in rule.needles):
            return rule.kind, rule.message
    return ManimFailureKind.UNKNOWN, UNKNOWN_FAILURE_MESSAGE


class _LineBuffer:
    """Turns decoded byte chunks into complete lines (split on \\n or \\r)."""

    _SPLIT = re.compile(r"[\r\n]+")

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        self._pending += self._decoder.decode(chunk)
        parts = self._SPLIT.split(self._pending)
        self._pending = parts.pop()
        return [p for p in parts if p.strip()]

    def flush(self) -> List[str]:
        rest = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return [rest] if rest.strip() else []


def _noop(_message: str) -> None:
    pass


def _remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)


class ManimRenderer:
    def __init__(self, settings: Settings, tools: ToolLocator, spawn=asyncio.create_subprocess_exec):
        self.settings = settings
        self.tools = tools
        self._spawn = spawn
        self.locator = ArtifactLocator(OUTPUT_FILENAME, candidates=COMMON_LOCATIONS)

    def output_path(self, run_id: str) -> Path:
        return self.settings.media_dir / f"{run_id}.mp4"

    async def render(self, code: str, run_id: str, log: Optional[LogFn] = None) -> Path:
        log = log or _noop
        self.settings.ensure_directories()
        out_dir = self.settings.media_dir / run_id
        out_dir.mkdir(parents=True, exist_ok=True)

        script_path = self.settings.scripts_dir / f"{run_id}.py"
        script_path.write_text(code, encoding="utf-8")
        log("Manim script written")

        try:
            manim = self.tools.manim()
        except ToolNotFoundError as e:
            _remove_tree(out_dir)
            raise RenderError(RenderErrorKind.CLI_NOT_FOUND, str(e)) from e
        log("Manim executable found")

        args = [manim.path, *MANIM_FLAGS, str(script_path), SCENE_NAME, "--media_dir", str(out_dir)]
        log("Starting Manim rendering...")
        logger.debug("Spawning %s", " ".join(args))
        try:
            proc = await self._spawn(*args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE)
        except OSError as e:
            log(f"Process error: {e}")
            _remove_tree(out_dir)
            raise RenderError(RenderErrorKind.SPAWN_FAILED, f"Failed to start Manim: {e}") from e

        stderr_chunks: List[str] = []
        await asyncio.gather(
            self._pump(proc.stdout, lambda line: log(f"[Manim] {line.strip()}")),
            self._pump(proc.stderr, lambda line: self._on_stderr(line, log), stderr_chunks),
        )
        returncode = await proc.wait()

        if returncode == 0:
            log("Manim rendering completed successfully")
            return self._collect_output(out_dir, run_id, log)

        stderr_text = "\n".join(stderr_chunks)
        kind, message = classify_failure(stderr_text)
        log(f"Rendering failed with exit code {returncode}: {message}")
        log("Full error output:")
        log(stderr_text)
        _remove_tree(out_dir)
        raise RenderError(RenderErrorKind.CLI_FAILED, message, failure=kind)

    async def _pump(self, stream, on_line: Callable[[str], None], capture: Optional[List[str]] = None) -> None:
        if stream is None:
            return
        buffer = _LineBuffer()
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            for line in buffer.feed(chunk):
                if capture is not None:
                    capture.append(line)
                on_line(line)
        for line in buffer.flush():
            if capture is not None:
                capture.append(line)
            on_line(line)

    @staticmethod
    def _on_stderr(line: str, log: LogFn) -> None:
        kind = classify_stderr_line(line)
        log(f"{_LINE_PREFIX[kind]} {line.strip()}")

    def _save_output(self, source: Path, final_path: Path, out_dir: Path, log: LogFn, move: bool = False) -> Path:
        try:
            if move:
                shutil.move(str(source), str(final_path))
            else:
                shutil.copyfile(source, final_path)
        except OSError as e:
            log(f"Error processing Manim output: {e}")
            _remove_tree(out_dir)
            raise RenderError(RenderErrorKind.OUTPUT_FAILED, f"Error processing Manim output: {e}") from e
        _remove_tree(out_dir)
        log(f"Video successfully saved to {final_path}")
        return final_path

    def _collect_output(self, out_dir: Path, run_id: str, log: LogFn) -> Path:
        final_path = self.output_path(run_id)
        if final_path.exists():
            log(f"Video already exists at: {final_path}")
            return final_path

        log(f"Searching for {OUTPUT_FILENAME} in: {out_dir}")
        result = self.locator.locate(out_dir)

        if result.status == LocateStatus.FOUND:
            log(f"Found final video at: {result.path}")
            return self._save_output(result.path, final_path, out_dir, log)

        if result.status == LocateStatus.INCOMPLETE:
            log(f"Found {len(result.partials)} partial files, but no final {OUTPUT_FILENAME}")
            log("This indicates Manim failed during the final assembly phase")
            # Some Manim versions drop the scene file directly into the media root.
            stray = self.settings.media_dir / OUTPUT_FILENAME
            if stray.is_file():
                log(f"Found video in root directory: {stray}")
                return self._save_output(stray, final_path, out_dir, log, move=True)
            _remove_tree(out_dir)
            raise RenderError(RenderErrorKind.INCOMPLETE, INCOMPLETE_MESSAGE)

        log("No video files found in output directory")
        try:
            contents = ", ".join(sorted(p.name for p in out_dir.iterdir()))
            log(f"Directory contents: {contents}")
        except OSError:
            log("Could not read directory contents")
        _remove_tree(out_dir)
        raise RenderError(
            RenderErrorKind.NO_OUTPUT,
            f"Could not find {OUTPUT_FILENAME} in {out_dir}. Manim may have failed silently.",
        )
