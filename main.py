"""Command-line entry point for launching the RAGChat UI or HTTP API."""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ragchat.config import config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_APP = PROJECT_ROOT / "app.py"
API_FACTORY = "ragchat.api:create_app"
DEFAULT_UI_PORT = 8501
DEFAULT_API_PORT = 8000


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Launch the RAGChat Streamlit web application or HTTP API.",
    )
    parser.add_argument(
        "--api",
        action="store_true",
        help="Serve the FastAPI application with uvicorn instead of the UI.",
    )
    parser.add_argument(
        "--app",
        type=Path,
        default=DEFAULT_APP,
        help="Path to the Streamlit script (default: app.py).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=(
            f"Port for the server (default: {DEFAULT_UI_PORT} for the UI, "
            f"{DEFAULT_API_PORT} for the API)."
        ),
    )
    parser.add_argument(
        "--address",
        default="localhost",
        help="Bind address for the server (default: localhost).",
    )
    parser.add_argument(
        "--show",
        dest="headless",
        action="store_false",
        help="Open Streamlit in a browser window instead of headless mode.",
    )
    parser.set_defaults(headless=True)
    return parser.parse_args(argv)


def build_streamlit_command(
    script_path: Path,
    *,
    port: int,
    headless: bool,
    address: str,
) -> list[str]:
    """Construct the streamlit CLI invocation."""  # noqa: DOC201
    return [
        sys.executable,
        "-m",
        "streamlit",
        "run",
        str(script_path),
        "--server.port",
        str(port),
        "--server.address",
        address,
        "--server.headless",
        "true" if headless else "false",
    ]


def build_uvicorn_command(*, port: int, address: str) -> list[str]:
    """Construct the uvicorn invocation for the API app factory."""  # noqa: DOC201
    return [
        sys.executable,
        "-m",
        "uvicorn",
        "--factory",
        API_FACTORY,
        "--host",
        address,
        "--port",
        str(port),
    ]


def run_server(command: Sequence[str], logger: Logger) -> int:
    """Execute the server command and return its exit code."""  # noqa: DOC201
    try:
        result = subprocess.run(
            command,
            check=False,
            cwd=PROJECT_ROOT,
        )
    except KeyboardInterrupt:
        logger.info("RAGChat stopped by user")
        return 0
    except OSError:
        logger.exception("Unable to launch %s", command[2])
        return 1
    return result.returncode


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and launch the UI or the API."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    if args.api:
        port = args.port or DEFAULT_API_PORT
        logger.info("Starting RAGChat API at http://%s:%s", args.address, port)
        command = build_uvicorn_command(port=port, address=args.address)
    else:
        script_path = (
            args.app if args.app.is_absolute() else (PROJECT_ROOT / args.app)
        ).resolve()
        if not script_path.exists():
            logger.error("Streamlit script not found: %s", script_path)
            return 1

        port = args.port or DEFAULT_UI_PORT
        logger.info(
            "Starting RAGChat Streamlit app at http://%s:%s (headless=%s)",
            args.address,
            port,
            args.headless,
        )
        command = build_streamlit_command(
            script_path,
            port=port,
            headless=args.headless,
            address=args.address,
        )

    return_code = run_server(command, logger)
    if return_code != 0:
        logger.error("%s exited with status %s", command[2], return_code)
    return return_code


if __name__ == "__main__":
    sys.exit(main())
