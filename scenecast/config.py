"""
Runtime settings for scenecast.

Loads a .env file (repo root or any parent) and reads everything else from the
environment. A single Settings object is built at startup and handed to the
collaborators that need it; nothing reads os.environ after that except the
tool detectors, which receive the environment mapping explicitly.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv, find_dotenv

from .errors import InvalidEngineError

ENGINES = ("p5", "manim")

# p5 capture runs at a fixed frame rate; the encoder uses the same value.
FRAME_RATE = 30
DEFAULT_DURATION = 4
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_P5_URL = "https://cdn.jsdelivr.net/npm/p5@1.6.0/lib/p5.min.js"


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


@dataclass
class Settings:
    media_dir: Path = Path("media") / "videos"
    scripts_dir: Path = Path("scripts")
    gemini_model: str = DEFAULT_MODEL
    p5_library_url: str = DEFAULT_P5_URL
    default_duration: int = DEFAULT_DURATION
    job_capacity: int = 256
    job_ttl_seconds: float = 3600.0
    log_poll_interval: float = 1.0
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 4000
    api_key: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=lambda: dict(os.environ), repr=False)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "Settings":
        """Build settings from the process environment (after .env) or an explicit mapping."""
        if env is None:
            if dotenv:
                env_path = find_dotenv(usecwd=True)
                if env_path:
                    load_dotenv(env_path)
            env = dict(os.environ)

        return cls(
            media_dir=Path(env.get("SCENECAST_MEDIA_DIR") or Path("media") / "videos"),
            scripts_dir=Path(env.get("SCENECAST_SCRIPTS_DIR") or "scripts"),
            gemini_model=env.get("GEMINI_MODEL") or DEFAULT_MODEL,
            p5_library_url=env.get("SCENECAST_P5_URL") or DEFAULT_P5_URL,
            default_duration=_env_int(env, "SCENECAST_DEFAULT_DURATION", DEFAULT_DURATION),
            job_capacity=_env_int(env, "SCENECAST_JOB_CAPACITY", 256),
            job_ttl_seconds=_env_float(env, "SCENECAST_JOB_TTL", 3600.0),
            log_poll_interval=_env_float(env, "SCENECAST_LOG_POLL_INTERVAL", 1.0),
            log_level=(env.get("SCENECAST_LOG_LEVEL") or "INFO").upper(),
            host=env.get("HOST") or "127.0.0.1",
            port=_env_int(env, "PORT", 4000),
            api_key=env.get("GEMINI_API_KEY") or None,
            env=env,
        )

    def ensure_directories(self) -> None:
        self.media_dir.mkdir(parents=True, exist_ok=True)
        self.scripts_dir.mkdir(parents=True, exist_ok=True)


def check_engine(engine) -> str:
    if engine not in ENGINES:
        raise InvalidEngineError(engine)
    return engine
