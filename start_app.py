# start_app.py
"""Load settings and launch the API server."""

from __future__ import annotations

import argparse
import os
import sys

import uvicorn
from dotenv import load_dotenv

import config


def main(argv: list[str] | None = None) -> None:
    """Load ``.env``, validate settings, then start the API."""

    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),  # nosec B104: bind for local development
    )
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")))
    parser.add_argument(
        "--reload", action="store_true", help="Restart on code changes"
    )
    args = parser.parse_args(argv)

    load_dotenv()  # load environment variables from a .env file

    config.get_settings()  # ensure settings are initialized with any override

    try:
        uvicorn.run(
            "menusync.app.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level="info",
        )
    except ModuleNotFoundError as exc:
        missing = exc.name or str(exc)
        print(
            f"Missing dependency: {missing}. Install it with 'pip install -e .'",
            file=sys.stderr,
        )
        raise SystemExit(1)


if __name__ == "__main__":
    main()
