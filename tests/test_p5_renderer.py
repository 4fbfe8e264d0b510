import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from PIL import Image
from playwright.async_api import Error as PlaywrightError

from scenecast.config import Settings
from scenecast.detectors import DetectedTool
from scenecast.errors import EncodingError, RenderError, RenderErrorKind, ToolNotFoundError
from scenecast.p5_renderer import P5Renderer, build_html, encode_frames, frame_count

SKETCH = "function setup() {\n  createCanvas(400, 400);\n}\nfunction draw() {\n  background(20);\n}"
RUN_ID = "p5run"


class StubTools:
    def __init__(self, missing=False):
        self.missing = missing

    def chrome(self):
        if self.missing:
            raise ToolNotFoundError("chrome", "Chrome executable not found on Linux.")
        return DetectedTool(path="/usr/bin/chromium", method="which")


class FakePage:
    def __init__(self, events, fail_goto=False):
        self.events = events
        self.fail_goto = fail_goto

    async def goto(self, url, wait_until=None):
        if self.fail_goto:
            raise PlaywrightError("net::ERR_FILE_NOT_FOUND")
        self.events.append(("goto", url))

    async def wait_for_function(self, expression):
        self.events.append(("wait", expression))

    async def screenshot(self, path):
        with open(path, "wb") as f:
            f.write(b"png")
        self.events.append(("screenshot", path))

    async def evaluate(self, expression):
        self.events.append(("evaluate", expression))


class FakeBrowser:
    def __init__(self, fail_goto=False):
        self.events = []
        self.fail_goto = fail_goto
        self.launched_with = None
        self.closed = False

    @asynccontextmanager
    async def __call__(self, executable_path):
        self.launched_with = executable_path
        try:
            yield FakePage(self.events, self.fail_goto)
        finally:
            self.closed = True


class FakeEncoder:
    def __init__(self, fail=False):
        self.fail = fail
        self.frames_seen = None

    def __call__(self, frames_dir, output_path, fps):
        self.frames_seen = sorted(p.name for p in frames_dir.iterdir())
        self.fps = fps
        if self.fail:
            raise EncodingError("ffmpeg error")
        output_path.write_bytes(b"mp4")
        return output_path


@pytest.fixture
def settings(tmp_path):
    return Settings(media_dir=tmp_path / "media", scripts_dir=tmp_path / "scripts", env={})


def test_captures_thirty_frames_per_second_before_encoding(settings):
    browser, encoder = FakeBrowser(), FakeEncoder()
    renderer = P5Renderer(settings, StubTools(), browser_launcher=browser, encoder=encoder)
    logs = []

    path = asyncio.run(renderer.render(SKETCH, RUN_ID, logs.append, duration=2))

    assert path == settings.media_dir / RUN_ID / "animation.mp4"
    assert path.read_bytes() == b"mp4"
    assert len(encoder.frames_seen) == 60
    assert encoder.frames_seen[0] == "0000.png"
    assert encoder.frames_seen[-1] == "0059.png"
    assert encoder.fps == 30
    assert browser.launched_with == "/usr/bin/chromium"
    assert browser.closed
    assert not (settings.media_dir / RUN_ID / "frames").exists()
    assert logs[0] == "Found Chrome at /usr/bin/chromium"
    assert logs[-2] == "Captured frame 60/60"
    assert logs[-1] == "Video encoding complete"


def test_draw_is_called_after_each_screenshot(settings):
    browser = FakeBrowser()
    renderer = P5Renderer(settings, StubTools(), browser_launcher=browser, encoder=FakeEncoder())
    asyncio.run(renderer.render(SKETCH, RUN_ID, duration=1))

    kinds = [e[0] for e in browser.events]
    assert kinds[:2] == ["goto", "wait"]
    assert kinds[2:] == ["screenshot", "evaluate"] * 30
    assert browser.events[1][1] == 'typeof frameCount === "number"'


def test_writes_sketch_and_html_wrapper(settings):
    renderer = P5Renderer(settings, StubTools(), browser_launcher=FakeBrowser(), encoder=FakeEncoder())
    asyncio.run(renderer.render(SKETCH, RUN_ID, duration=1))

    assert (settings.scripts_dir / f"{RUN_ID}.js").read_text() == SKETCH
    html = (settings.scripts_dir / f"{RUN_ID}.html").read_text()
    assert settings.p5_library_url in html
    assert SKETCH in html


def test_encoder_failure_still_removes_frames(settings):
    renderer = P5Renderer(settings, StubTools(), browser_launcher=FakeBrowser(), encoder=FakeEncoder(fail=True))
    with pytest.raises(EncodingError) as exc:
        asyncio.run(renderer.render(SKETCH, RUN_ID, duration=1))
    assert exc.value.kind == RenderErrorKind.ENCODING_FAILED
    assert not (settings.media_dir / RUN_ID / "frames").exists()


def test_browser_failure_is_a_render_error(settings):
    browser, encoder = FakeBrowser(fail_goto=True), FakeEncoder()
    renderer = P5Renderer(settings, StubTools(), browser_launcher=browser, encoder=encoder)
    with pytest.raises(RenderError) as exc:
        asyncio.run(renderer.render(SKETCH, RUN_ID, duration=1))
    assert exc.value.kind == RenderErrorKind.BROWSER_FAILED
    assert browser.closed
    assert encoder.frames_seen is None


def test_missing_chrome_propagates_before_launch(settings):
    browser = FakeBrowser()
    renderer = P5Renderer(settings, StubTools(missing=True), browser_launcher=browser, encoder=FakeEncoder())
    logs = []
    with pytest.raises(ToolNotFoundError):
        asyncio.run(renderer.render(SKETCH, RUN_ID, logs.append, duration=1))
    assert browser.launched_with is None
    assert logs[-1].startswith("Chrome detection failed")


def test_frame_count():
    assert frame_count(4) == 120
    assert frame_count(0.5) == 15
    assert frame_count(1 / 30 + 1e-9) == 1
    with pytest.raises(ValueError):
        frame_count(0)
    with pytest.raises(ValueError):
        frame_count(0.01)


def test_build_html_escapes_closing_script_tags():
    html = build_html('function setup() { let s = "</script>"; }', "https://cdn/p5.js")
    assert html.count("</script>") == 2


def test_sub_frame_duration_rejected_before_launch(settings):
    browser = FakeBrowser()
    renderer = P5Renderer(settings, StubTools(), browser_launcher=browser, encoder=FakeEncoder())
    with pytest.raises(ValueError):
        asyncio.run(renderer.render("function setup() {}", "run1", duration=0.01))
    assert browser.launched_with is None
    assert not (settings.scripts_dir / "run1.js").exists()


def write_frames(frames_dir, count, size=(64, 48)):
    frames_dir.mkdir(parents=True, exist_ok=True)
    for i in range(count):
        Image.new("RGB", size, (i * 40 % 256, 80, 160)).save(frames_dir / f"{i:04d}.png")


def test_encode_frames_writes_an_mp4(tmp_path):
    frames_dir = tmp_path / "frames"
    write_frames(frames_dir, 6)
    output = tmp_path / "animation.mp4"

    assert encode_frames(frames_dir, output) == output
    assert output.stat().st_size > 0


def test_encode_frames_passes_codec_and_pixel_format(tmp_path, monkeypatch):
    seen = {}

    class RecordingClip:
        def __init__(self, frames, fps):
            seen["frames"] = [Path(f).name for f in frames]
            seen["clip_fps"] = fps

        def write_videofile(self, filename, **kwargs):
            seen["filename"] = filename
            seen.update(kwargs)

        def close(self):
            seen["closed"] = True

    monkeypatch.setattr("scenecast.p5_renderer.ImageSequenceClip", RecordingClip)
    frames_dir = tmp_path / "frames"
    for name in ("0002.png", "0000.png", "0001.png"):
        touch_frame = frames_dir / name
        touch_frame.parent.mkdir(parents=True, exist_ok=True)
        touch_frame.write_bytes(b"png")

    encode_frames(frames_dir, tmp_path / "out.mp4")

    assert seen["frames"] == ["0000.png", "0001.png", "0002.png"]
    assert seen["clip_fps"] == seen["fps"] == 30
    assert seen["codec"] == "libx264"
    assert seen["pixel_format"] == "yuv420p"
    assert seen["audio"] is False
    assert seen["closed"] is True


def test_encode_frames_without_frames(tmp_path):
    (tmp_path / "frames").mkdir()
    with pytest.raises(EncodingError, match="no frames"):
        encode_frames(tmp_path / "frames", tmp_path / "out.mp4")


@pytest.mark.parametrize("error", [OSError("ffmpeg exited with 1"), ValueError("bad frame size")])
def test_encode_frames_wraps_encoder_errors(tmp_path, monkeypatch, error):
    def broken_clip(frames, fps):
        raise error

    monkeypatch.setattr("scenecast.p5_renderer.ImageSequenceClip", broken_clip)
    write_frames(tmp_path / "frames", 2)

    with pytest.raises(EncodingError) as exc:
        encode_frames(tmp_path / "frames", tmp_path / "out.mp4")
    assert exc.value.kind == RenderErrorKind.ENCODING_FAILED
    assert str(error) in str(exc.value)
