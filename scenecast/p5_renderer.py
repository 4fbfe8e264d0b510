"""
Renders a generated p5.js sketch to MP4.

The sketch is inlined into an HTML page and loaded in headless Chrome. Once
setup() has run (frameCount is defined) the renderer captures
duration * FRAME_RATE screenshots, calling draw() by hand between them, and
encodes the PNG sequence with moviepy (libx264, yuv420p, FRAME_RATE fps).
"""
import asyncio
import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

from moviepy import ImageSequenceClip
from playwright.async_api import Error as PlaywrightError, async_playwright

from .config import DEFAULT_DURATION, FRAME_RATE, Settings
from .detectors import ToolLocator
from .errors import EncodingError, RenderError, RenderErrorKind, ToolNotFoundError

logger = logging.getLogger(__name__)

LogFn = Callable[[str], None]

VIDEO_CODEC = "libx264"
PIXEL_FORMAT = "yuv420p"
OUTPUT_FILENAME = "animation.mp4"

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <script src="{library_url}"></script>
  </head>
  <body>
    <script>
{code}
    </script>
  </body>
</html>
"""


def build_html(code: str, library_url: str) -> str:
    # A literal </script> inside the sketch would end the inline block early.
    safe_code = code.replace("</script", "<\\/script")
    return HTML_TEMPLATE.format(library_url=library_url, code=safe_code)


def frame_count(duration: float, fps: int = FRAME_RATE) -> int:
    frames = int(duration * fps) if duration > 0 else 0
    if frames < 1:
        raise ValueError(f"duration must cover at least one frame at {fps} fps, got {duration}")
    return frames


@asynccontextmanager
async def launch_chromium(executable_path: str) -> AsyncIterator[Any]:
    """Yield a fresh page in a headless Chrome; the browser is closed on exit."""
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(executable_path=executable_path, headless=True)
        try:
            yield await browser.new_page()
        finally:
            await browser.close()


def encode_frames(frames_dir: Path, output_path: Path, fps: int = FRAME_RATE) -> Path:
    frames = sorted(str(p) for p in Path(frames_dir).glob("*.png"))
    if not frames:
        raise EncodingError("ffmpeg error: no frames to encode")
    try:
        clip = ImageSequenceClip(frames, fps=fps)
        try:
            clip.write_videofile(
                str(output_path),
                fps=fps,
                codec=VIDEO_CODEC,
                audio=False,
                pixel_format=PIXEL_FORMAT,
                logger=None,
            )
        finally:
            clip.close()
    except (OSError, ValueError) as e:
        raise EncodingError(f"ffmpeg error: {e}") from e
    return output_path


def _noop(_message: str) -> None:
    pass


class P5Renderer:
    def __init__(
        self,
        settings: Settings,
        tools: ToolLocator,
        browser_launcher=launch_chromium,
        encoder: Callable[[Path, Path, int], Path] = encode_frames,
    ):
        self.settings = settings
        self.tools = tools
        self._launch = browser_launcher
        self._encode = encoder

    async def render(
        self,
        code: str,
        run_id: str,
        log: Optional[LogFn] = None,
        duration: float = DEFAULT_DURATION,
    ) -> Path:
        log = log or _noop
        total_frames = frame_count(duration)

        self.settings.ensure_directories()
        out_dir = self.settings.media_dir / run_id
        out_dir.mkdir(parents=True, exist_ok=True)

        scripts_dir = self.settings.scripts_dir
        (scripts_dir / f"{run_id}.js").write_text(code, encoding="utf-8")
        html_path = (scripts_dir / f"{run_id}.html").resolve()
        html_path.write_text(build_html(code, self.settings.p5_library_url), encoding="utf-8")

        try:
            chrome = self.tools.chrome()
        except ToolNotFoundError as e:
            log(f"Chrome detection failed: {e}")
            raise
        log(f"Found Chrome at {chrome.path}")

        frames_dir = out_dir / "frames"
        frames_dir.mkdir(parents=True, exist_ok=True)
        output_path = out_dir / OUTPUT_FILENAME
        try:
            await self._capture(chrome.path, html_path, frames_dir, total_frames, log)

            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._encode, frames_dir, output_path, FRAME_RATE)
            log("Video encoding complete")
        finally:
            shutil.rmtree(frames_dir, ignore_errors=True)

        return output_path

    async def _capture(self, chrome_path: str, html_path: Path, frames_dir: Path, total_frames: int, log: LogFn) -> None:
        try:
            async with self._launch(chrome_path) as page:
                await page.goto(html_path.as_uri(), wait_until="networkidle")
                await page.wait_for_function('typeof frameCount === "number"')
                for i in range(total_frames):
                    await page.screenshot(path=str(frames_dir / f"{i:04d}.png"))
                    await page.evaluate("draw()")
                    log(f"Captured frame {i + 1}/{total_frames}")
        except PlaywrightError as e:
            raise RenderError(RenderErrorKind.BROWSER_FAILED, f"Browser rendering failed: {e}") from e
