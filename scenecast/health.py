"""
Readiness report for each rendering engine.

Every requirement becomes {name, critical, available, message, path?, solution?};
readiness is ready only when all critical requirements are met, plus an overall
percentage of requirements met.
"""
import importlib.util
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from .config import Settings, check_engine
from .detectors import DetectedTool, ToolLocator
from .errors import InvalidEngineError, ToolNotFoundError

logger = logging.getLogger(__name__)

Requirement = Dict[str, Any]

RENDER_MODULES = ("playwright", "moviepy")


def _from_detector(
    name: str,
    critical: bool,
    detect: Callable[[], DetectedTool],
    found_message: str,
    missing_message: str = None,
    solution: str = None,
) -> Requirement:
    try:
        tool = detect()
    except ToolNotFoundError as e:
        return {
            "name": name,
            "critical": critical,
            "available": False,
            "message": missing_message or str(e),
            "solution": solution or e.hint,
        }
    return {"name": name, "critical": critical, "available": True, "message": found_message, "path": tool.path}


def calculate_readiness(requirements: Dict[str, Requirement]) -> Dict[str, Any]:
    critical = [req for req in requirements.values() if req["critical"]]
    critical_met = [req for req in critical if req["available"]]
    total = len(requirements)
    met = len([req for req in requirements.values() if req["available"]])
    return {
        "ready": len(critical_met) == len(critical),
        "criticalMet": len(critical_met),
        "criticalTotal": len(critical),
        "overallScore": round(met / total * 100) if total else 0,
        "totalRequirements": total,
        "metRequirements": met,
    }


class HealthChecker:
    def __init__(self, settings: Settings, tools: ToolLocator, find_spec: Callable = importlib.util.find_spec):
        self.settings = settings
        self.tools = tools
        self._find_spec = find_spec

    def check_python_modules(self) -> Requirement:
        missing = [name for name in RENDER_MODULES if self._find_spec(name) is None]
        if missing:
            return {
                "name": "Python Dependencies",
                "critical": False,
                "available": False,
                "message": f"Rendering modules missing: {', '.join(missing)}",
                "solution": "Run `pip install -e .` and `playwright install chromium`",
            }
        return {
            "name": "Python Dependencies",
            "critical": False,
            "available": True,
            "message": "Python rendering dependencies available",
        }

    def check_ffmpeg(self) -> Requirement:
        return _from_detector(
            "FFmpeg Encoder", False, self.tools.ffmpeg,
            "FFmpeg found and ready for video encoding",
            solution="For optimal performance, install FFmpeg explicitly",
        )

    def check_disk_space(self) -> Requirement:
        media_dir = self.settings.media_dir
        try:
            media_dir.mkdir(parents=True, exist_ok=True)
            media_dir.stat()
        except OSError as e:
            return {
                "name": "Media Directory",
                "critical": False,
                "available": False,
                "message": f"Media directory error: {e}",
                "solution": f"Ensure write permissions for {media_dir}",
            }
        return {
            "name": "Media Directory",
            "critical": False,
            "available": True,
            "message": "Media directory accessible",
            "path": str(media_dir),
        }

    def check_p5_requirements(self) -> Dict[str, Requirement]:
        return {
            "chrome": _from_detector(
                "Chrome Browser", True, self.tools.chrome, "Chrome browser found",
                solution="Install Google Chrome from https://www.google.com/chrome/ or set CHROME_PATH environment variable",
            ),
            "pythonModules": self.check_python_modules(),
            "ffmpeg": self.check_ffmpeg(),
        }

    def check_manim_requirements(self) -> Dict[str, Requirement]:
        return {
            "manim": _from_detector(
                "Manim Community Edition", True, self.tools.manim, "Manim Community Edition found",
                solution="Install Manim Community Edition: `pip install manim` or set MANIM_PATH environment variable",
            ),
            "python": _from_detector("Python Interpreter", True, self.tools.python, "Python interpreter found"),
            "latex": _from_detector(
                "LaTeX Distribution", False, self.tools.tex,
                "LaTeX distribution found (enables advanced math rendering)",
                missing_message="LaTeX not found (optional for basic animations)",
            ),
        }

    def check(self, engine: str = "both") -> Dict[str, Any]:
        if engine != "both":
            check_engine(engine)
        results: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "engine": engine,
        }
        if engine in ("p5", "both"):
            results["p5"] = self.check_p5_requirements()
            results["p5Readiness"] = calculate_readiness(results["p5"])
        if engine in ("manim", "both"):
            results["manim"] = self.check_manim_requirements()
            results["manimReadiness"] = calculate_readiness(results["manim"])
        results["disk"] = self.check_disk_space()
        return results

    def is_engine_available(self, engine: str) -> bool:
        """Quick check used by GET /health: only the engine's own executable."""
        if engine == "p5":
            self.tools.chrome()
        elif engine == "manim":
            self.tools.manim()
        else:
            raise InvalidEngineError(engine)
        return True

    @staticmethod
    def overall_available(report: Dict[str, Any], engine: str) -> bool:
        if engine in ("p5", "manim"):
            return bool(report.get(f"{engine}Readiness", {}).get("ready", False))
        return HealthChecker.overall_available(report, "p5") or HealthChecker.overall_available(report, "manim")
