import asyncio
import json

import pytest

from scenecast.config import Settings
from scenecast.errors import BannedConstructError, RenderError, RenderErrorKind
from scenecast.job_manager import JobManager, format_sse


class FakeGenerator:
    def __init__(self, settings, code="function setup() {}", codegen_error=None, render_error=None):
        self.settings = settings
        self.code = code
        self.codegen_error = codegen_error
        self.render_error = render_error
        self.rendered = []

    async def generate_code(self, prompt, engine, api_key):
        if self.codegen_error:
            raise self.codegen_error
        return self.code

    async def render(self, code, engine, run_id, log, duration):
        self.rendered.append((code, engine, run_id, duration))
        log("Captured frame 1/1")
        await asyncio.sleep(0)
        if self.render_error:
            raise self.render_error
        return self.settings.media_dir / run_id / "animation.mp4"


@pytest.fixture
def settings(tmp_path):
    return Settings(media_dir=tmp_path / "media", scripts_dir=tmp_path / "scripts", env={})


async def collect(manager, run_id):
    return [frame async for frame in manager.stream_logs(run_id)]


def run_job(manager, **kwargs):
    async def go():
        run_id = await manager.submit_render("a ball", "p5", "key", **kwargs)
        frames = await collect(manager, run_id)
        return run_id, frames

    return asyncio.run(go())


def test_successful_job_streams_logs_in_order(settings):
    gen = FakeGenerator(settings)
    manager = JobManager(gen, poll_interval=0.001)

    run_id, frames = run_job(manager, duration=1)

    assert frames[:-1] == [
        "data: Code generation started\n\n",
        "data: Code generation completed\n\n",
        "data: Rendering started using p5\n\n",
        "data: Captured frame 1/1\n\n",
        "data: Rendering complete\n\n",
    ]
    assert frames[-1].startswith("event: done\ndata: ")
    payload = json.loads(frames[-1].split("data: ", 1)[1])
    assert payload["videoPath"].endswith("animation.mp4")
    assert payload["videoUrl"] == f"/media/{run_id}/animation.mp4"
    assert payload["error"] is None
    assert gen.rendered[0][3] == 1


def test_render_failure_completes_job_with_typed_error(settings):
    gen = FakeGenerator(settings, render_error=RenderError(RenderErrorKind.NO_OUTPUT, "nothing rendered"))
    manager = JobManager(gen, poll_interval=0.001)

    run_id, frames = run_job(manager)

    status = manager.get_status(run_id)
    assert status["status"] == "done"
    assert status["error_kind"] == "no_output"
    assert "data: Error: nothing rendered\n\n" in frames
    assert json.loads(frames[-1].split("data: ", 1)[1])["error"] == "nothing rendered"


def test_codegen_failure_is_raised_and_job_finished(settings):
    gen = FakeGenerator(settings, codegen_error=BannedConstructError(r"Axes\s*\("))
    manager = JobManager(gen, poll_interval=0.001)

    with pytest.raises(BannedConstructError):
        asyncio.run(manager.submit_render("graph", "manim", "key"))

    jobs = manager.list_jobs()
    assert len(jobs) == 1
    assert jobs[0]["status"] == "done"
    assert gen.rendered == []


def test_late_reader_still_gets_every_line_once(settings):
    gen = FakeGenerator(settings)
    manager = JobManager(gen, poll_interval=0.001)

    async def go():
        run_id = await manager.submit_render("a ball", "p5", "key")
        while manager.tasks:
            await asyncio.sleep(0.001)
        return await collect(manager, run_id)

    frames = asyncio.run(go())
    data_lines = [f for f in frames if not f.startswith("event:")]
    assert len(data_lines) == len(set(data_lines)) == 5


def test_format_sse_splits_multiline_messages():
    assert format_sse("a\nb") == "data: a\ndata: b\n\n"
    assert format_sse("{}", event="done") == "event: done\ndata: {}\n\n"
