# run.py
"""
Repo-level runner:
- python run.py api             -> starts the FastAPI server (uvicorn)
- python run.py <cli arguments> -> forwards to scenecast.main (health / generate)
"""
import logging
import sys

import uvicorn

from scenecast.config import Settings
from scenecast.main import main as cli_main


def run_api() -> int:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print(f"Starting scenecast API at http://{settings.host}:{settings.port} ...")
    uvicorn.run("web_app.api:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


def main():
    if len(sys.argv) < 2:
        print('Usage:\n  python run.py api\n  python run.py generate "a bouncing ball" --engine p5\n  python run.py health')
        return 1
    if sys.argv[1].lower() == "api":
        return run_api()
    return cli_main(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
