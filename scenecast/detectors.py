"""
Locates the external executables the renderers shell out to.

Resolution order for each tool:
 - explicit environment override (must be an executable file)
 - PATH lookup over a short list of candidate names
 - (Chrome only) platform install locations, including one per-user wildcard
 - (Chrome only, Windows) the App Paths registry key

Results are cached on the ToolLocator instance; call refresh() to re-detect.
"""
import glob
import logging
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from .errors import ToolNotFoundError

logger = logging.getLogger(__name__)

_HOME = str(Path.home())

CHROME_PATHS: Dict[str, List[str]] = {
    "win32": [
        "C:/Program Files/Google/Chrome/Application/chrome.exe",
        "C:/Program Files (x86)/Google/Chrome/Application/chrome.exe",
        os.path.join(_HOME, "AppData/Local/Google/Chrome/Application/chrome.exe"),
        "C:/Users/*/AppData/Local/Google/Chrome/Application/chrome.exe",
    ],
    "darwin": [
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        os.path.join(_HOME, "Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
        "/usr/bin/google-chrome-stable",
        "/usr/bin/google-chrome",
    ],
    "linux": [
        "/usr/bin/google-chrome-stable",
        "/usr/bin/google-chrome",
        "/usr/bin/chromium-browser",
        "/usr/bin/chromium",
        "/snap/bin/chromium",
        os.path.join(_HOME, ".local/bin/google-chrome"),
    ],
}

CHROME_CANDIDATES = ("google-chrome", "chrome", "chromium", "google-chrome-stable")
MANIM_CANDIDATES = ("manim", "manimce")
PYTHON_CANDIDATES = ("python3", "python")
TEX_CANDIDATES = ("latex", "pdflatex")

_PLATFORM_NAMES = {"win32": "Windows", "darwin": "macOS", "linux": "Linux"}
_CHROME_REGISTRY_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\App Paths\chrome.exe"


@dataclass(frozen=True)
class DetectedTool:
    path: str
    method: str


def is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def _platform_key(platform: str) -> str:
    if platform.startswith("linux"):
        return "linux"
    return platform


def _read_chrome_registry() -> Optional[str]:
    import winreg  # Windows only

    with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, _CHROME_REGISTRY_KEY) as key:
        value, _ = winreg.QueryValueEx(key, "")
    return value or None


def _bundled_ffmpeg() -> Optional[str]:
    import imageio_ffmpeg

    return imageio_ffmpeg.get_ffmpeg_exe()


class ToolLocator:
    """Detects and caches tool paths for the lifetime of this object."""

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        platform: Optional[str] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        registry_reader: Callable[[], Optional[str]] = _read_chrome_registry,
        bundled_ffmpeg: Callable[[], Optional[str]] = _bundled_ffmpeg,
    ):
        self.env = dict(os.environ) if env is None else env
        self.platform = _platform_key(platform or sys.platform)
        self._which = which
        self._registry_reader = registry_reader
        self._bundled_ffmpeg = bundled_ffmpeg
        self._cache: Dict[str, DetectedTool] = {}

    def refresh(self, name: Optional[str] = None) -> None:
        """Forget cached results (one tool, or all of them)."""
        if name is None:
            self._cache.clear()
        else:
            self._cache.pop(name, None)

    def _remember(self, name: str, path: str, method: str) -> DetectedTool:
        tool = DetectedTool(path=path, method=method)
        self._cache[name] = tool
        logger.info("Detected %s at %s (via %s)", name, path, method)
        return tool

    def _from_env(self, var: str) -> Optional[str]:
        path = self.env.get(var)
        if not path:
            return None
        if is_executable(path):
            return path
        logger.warning("%s is set but is not an executable file: %s", var, path)
        return None

    def _lookup(self, names) -> Optional[str]:
        for name in names:
            found = self._which(name)
            if found:
                return found
        return None

    # -----------------------------
    # Chrome
    # -----------------------------

    def chrome(self) -> DetectedTool:
        if "chrome" in self._cache:
            return self._cache["chrome"]

        env_path = self._from_env("CHROME_PATH")
        if env_path:
            return self._remember("chrome", env_path, "env")

        for name in CHROME_CANDIDATES:
            found = self._which(name)
            if found and is_executable(found):
                return self._remember("chrome", found, "which")

        platform_paths = CHROME_PATHS.get(self.platform, [])
        for candidate in platform_paths:
            if "*" in candidate:
                for expanded in sorted(glob.glob(candidate)):
                    if is_executable(expanded):
                        return self._remember("chrome", expanded, "wildcard")
            elif is_executable(candidate):
                return self._remember("chrome", candidate, "platform-path")

        if self.platform == "win32":
            try:
                reg_path = self._registry_reader()
            except OSError as e:
                logger.debug("Chrome registry query failed: %s", e)
                reg_path = None
            if reg_path and is_executable(reg_path):
                return self._remember("chrome", reg_path, "registry")

        platform_name = _PLATFORM_NAMES.get(self.platform, self.platform)
        hint = "Install Google Chrome from https://www.google.com/chrome/ or set CHROME_PATH environment variable."
        raise ToolNotFoundError(
            "chrome",
            f"Chrome executable not found on {platform_name}. {hint} "
            f"Searched paths: {', '.join(platform_paths)}",
            searched=platform_paths,
            hint=hint,
        )

    # -----------------------------
    # Manim / Python / TeX / FFmpeg
    # -----------------------------

    def manim(self) -> DetectedTool:
        if "manim" in self._cache:
            return self._cache["manim"]

        env_path = self._from_env("MANIM_PATH")
        if env_path:
            return self._remember("manim", env_path, "env")

        found = self._lookup(MANIM_CANDIDATES)
        if found:
            return self._remember("manim", found, "which")

        # Without an interpreter there is nothing to pip-install into.
        if self._lookup(PYTHON_CANDIDATES) is None:
            raise ToolNotFoundError(
                "python",
                "Python executable not found. Please install Python 3.10+ and Manim Community Edition.",
                searched=list(PYTHON_CANDIDATES),
                hint="Install Python 3.10+ from https://python.org/downloads/",
            )

        hint = "Install Manim Community Edition: `pip install manim` or set MANIM_PATH environment variable"
        raise ToolNotFoundError(
            "manim",
            "Manim executable not found. Please install Manim Community Edition (e.g. `pip install manim`).",
            searched=["MANIM_PATH"] + list(MANIM_CANDIDATES),
            hint=hint,
        )

    def python(self) -> DetectedTool:
        if "python" in self._cache:
            return self._cache["python"]
        found = self._lookup(PYTHON_CANDIDATES)
        if found:
            return self._remember("python", found, "which")
        raise ToolNotFoundError(
            "python",
            "Python not found",
            searched=list(PYTHON_CANDIDATES),
            hint="Install Python 3.10+ from https://python.org/downloads/",
        )

    def tex(self) -> DetectedTool:
        if "tex" in self._cache:
            return self._cache["tex"]
        found = self._lookup(TEX_CANDIDATES)
        if found:
            return self._remember("tex", found, "which")
        raise ToolNotFoundError(
            "tex",
            "LaTeX engine not found. Please install a TeX distribution (e.g., MiKTeX or TeX Live) "
            "to support MathTex rendering in Manim.",
            searched=list(TEX_CANDIDATES),
            hint="Install TeX Live (https://tug.org/texlive/) or MiKTeX (https://miktex.org/)",
        )

    def ffmpeg(self) -> DetectedTool:
        if "ffmpeg" in self._cache:
            return self._cache["ffmpeg"]

        env_path = self._from_env("FFMPEG_PATH")
        if env_path:
            return self._remember("ffmpeg", env_path, "env")

        found = self._which("ffmpeg")
        if found:
            return self._remember("ffmpeg", found, "which")

        try:
            bundled = self._bundled_ffmpeg()
        except (ImportError, RuntimeError) as e:
            logger.debug("Bundled ffmpeg unavailable: %s", e)
            bundled = None
        if bundled:
            return self._remember("ffmpeg", bundled, "bundled")

        raise ToolNotFoundError(
            "ffmpeg",
            "FFmpeg not found",
            searched=["FFMPEG_PATH", "ffmpeg", "imageio-ffmpeg"],
            hint="For optimal performance, install FFmpeg explicitly",
        )
