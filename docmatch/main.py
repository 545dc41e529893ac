"""Application entry point for the document matching API server."""

import argparse
import os
from pathlib import Path

import uvicorn

from docmatch.api.app import CONFIG_ENV, app
from docmatch.utils.config import load_config
from docmatch.utils.logger import setup_logging


def main(argv: list[str] | None = None) -> None:
    """Start the FastAPI application server.

    The bind address comes from the ``api`` config section unless given on
    the command line.
    """
    parser = argparse.ArgumentParser(description="Document matching API server")
    parser.add_argument("-c", "--config", type=Path, default=None, help="Configuration file")
    parser.add_argument("--host", default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Bind port")
    args = parser.parse_args(argv)

    if args.config is not None:
        os.environ[CONFIG_ENV] = str(args.config)
    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)

    uvicorn.run(
        app,
        host=args.host or config.api.host,
        port=args.port or config.api.port,
    )


if __name__ == "__main__":
    main()
