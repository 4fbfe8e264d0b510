"""
CLI entrypoint: the embedded counterpart of the HTTP API.

  python -m scenecast.main health [--engine p5|manim|both]
  python -m scenecast.main generate "a bouncing ball" --engine p5 [--api-key KEY] [--duration 4]

Log lines are printed as they are produced; the final result is printed as JSON.
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

from .config import ENGINES, Settings
from .errors import ScenecastError
from .health import HealthChecker
from .pipeline import VideoGenerator


def print_log(message: str) -> None:
    stamp = datetime.now(timezone.utc).strftime("%H:%M:%S")
    print(f"[{stamp}] {message}", flush=True)


def check_health(settings: Settings, engine: str) -> dict:
    generator = VideoGenerator(settings)
    checker = HealthChecker(settings, generator.tools)
    try:
        report = checker.check(engine)
    except ScenecastError as e:
        return {
            "success": False,
            "available": False,
            "reason": str(e),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    return {"success": True, "available": HealthChecker.overall_available(report, engine), **report}


def generate_video(settings: Settings, prompt: str, engine: str, api_key: str, duration=None) -> dict:
    generator = VideoGenerator(settings)
    return asyncio.run(generator.generate(prompt, engine, api_key, duration=duration, log=print_log))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scenecast", description="Render AI-generated p5.js / Manim code to video")
    sub = parser.add_subparsers(dest="command", required=True)

    health = sub.add_parser("health", help="Report whether the rendering engines can run")
    health.add_argument("--engine", default="both", choices=list(ENGINES) + ["both"])

    gen = sub.add_parser("generate", help="Generate code for a prompt and render it")
    gen.add_argument("prompt", nargs="+", help="Description of the animation")
    gen.add_argument("--engine", required=True, choices=list(ENGINES))
    gen.add_argument("--api-key", default=None, help="Gemini API key (defaults to GEMINI_API_KEY)")
    gen.add_argument("--duration", type=float, default=None, help="p5 video length in seconds")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "health":
        report = check_health(settings, args.engine)
        print(json.dumps(report, indent=2))
        return 0 if report["available"] else 1

    api_key = args.api_key or settings.api_key
    if not api_key:
        print("No API key: pass --api-key or set GEMINI_API_KEY in .env", file=sys.stderr)
        return 2

    try:
        result = generate_video(settings, " ".join(args.prompt), args.engine, api_key, args.duration)
    except ScenecastError:
        # The pipeline already printed "Error: ..." through the log callback.
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
