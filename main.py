"""DM Table dev launcher. Serves the table socket with uvicorn."""

import argparse
import logging
import os

import uvicorn

from dm_table.config import load_settings


def main():
    settings = load_settings()
    parser = argparse.ArgumentParser(description="DM Table server")
    parser.add_argument("--host", default=settings.host,
                        help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port,
                        help=f"Port (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--offline", action="store_true",
                        help="Use the local narrator for every room (sets DM_MODE=offline)")
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warning", "error"])
    args = parser.parse_args()

    if args.offline:
        os.environ["DM_MODE"] = "offline"

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(f"Starting DM Table on http://localhost:{args.port} ...")
    uvicorn.run(
        "dm_table.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
