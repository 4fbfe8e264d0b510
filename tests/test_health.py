import pytest

from scenecast.config import Settings
from scenecast.detectors import DetectedTool
from scenecast.errors import InvalidEngineError, ToolNotFoundError
from scenecast.health import HealthChecker, calculate_readiness


class StubTools:
    def __init__(self, missing=()):
        self.missing = set(missing)

    def _detect(self, name):
        if name in self.missing:
            raise ToolNotFoundError(name, f"{name} not found", hint=f"install {name}")
        return DetectedTool(path=f"/usr/bin/{name}", method="path")

    def chrome(self):
        return self._detect("chrome")

    def manim(self):
        return self._detect("manim")

    def python(self):
        return self._detect("python")

    def tex(self):
        return self._detect("tex")

    def ffmpeg(self):
        return self._detect("ffmpeg")


def found_spec(name):
    return object()


@pytest.fixture
def settings(tmp_path):
    return Settings(media_dir=tmp_path / "media", scripts_dir=tmp_path / "scripts", env={})


def test_readiness_counts():
    reqs = {
        "a": {"critical": True, "available": True},
        "b": {"critical": True, "available": False},
        "c": {"critical": False, "available": True},
    }
    readiness = calculate_readiness(reqs)
    assert readiness == {
        "ready": False,
        "criticalMet": 1,
        "criticalTotal": 2,
        "overallScore": 67,
        "totalRequirements": 3,
        "metRequirements": 2,
    }


def test_optional_requirements_do_not_block_readiness(settings):
    checker = HealthChecker(settings, StubTools(missing={"tex"}), find_spec=found_spec)
    report = checker.check("manim")

    assert report["manimReadiness"]["ready"] is True
    assert report["manimReadiness"]["overallScore"] == 67
    assert report["manim"]["latex"]["message"] == "LaTeX not found (optional for basic animations)"
    assert "p5" not in report
    assert report["disk"]["available"] is True


def test_missing_chrome_makes_p5_unready(settings):
    checker = HealthChecker(settings, StubTools(missing={"chrome"}), find_spec=found_spec)
    report = checker.check("both")

    assert report["p5Readiness"]["ready"] is False
    assert report["p5"]["chrome"]["solution"].startswith("Install Google Chrome")
    assert HealthChecker.overall_available(report, "p5") is False
    assert HealthChecker.overall_available(report, "both") is True


def test_missing_python_modules_reported(settings):
    checker = HealthChecker(settings, StubTools(), find_spec=lambda name: None)
    req = checker.check_python_modules()
    assert req["available"] is False
    assert "playwright" in req["message"]
    assert req["critical"] is False


def test_check_rejects_unknown_engine(settings):
    checker = HealthChecker(settings, StubTools(), find_spec=found_spec)
    with pytest.raises(InvalidEngineError):
        checker.check("blender")


def test_quick_availability(settings):
    checker = HealthChecker(settings, StubTools(missing={"manim"}), find_spec=found_spec)
    assert checker.is_engine_available("p5") is True
    with pytest.raises(ToolNotFoundError):
        checker.is_engine_available("manim")
    with pytest.raises(InvalidEngineError):
        checker.is_engine_available(None)
