"""
Soul Shepherd API server entry point.

Run with:
    python -m shepherd.api.main

Or with uvicorn directly:
    uvicorn shepherd.api.main:get_app --factory --port 8000
"""

import argparse
import logging
import os
from pathlib import Path

import uvicorn

from ..config import load_config
from .server import create_app


def main():
    """Main entry point for the Soul Shepherd API server."""
    parser = argparse.ArgumentParser(description="Soul Shepherd API Server")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--state-dir",
        default=os.environ.get("SHEPHERD_STATE_DIR", "shepherd_data"),
        help="Directory for saved state and config",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: from config, or SHEPHERD_LOG_LEVEL)",
    )

    args = parser.parse_args()

    state_dir = Path(args.state_dir)
    config = load_config(state_dir)
    log_level = (args.log_level or os.environ.get("SHEPHERD_LOG_LEVEL") or config["log_level"]).upper()

    # The factory below reads these
    os.environ["SHEPHERD_STATE_DIR"] = str(state_dir)
    os.environ["SHEPHERD_LOG_LEVEL"] = log_level

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)
    logger.info("Starting Soul Shepherd API on %s:%d (state: %s)", args.host, args.port, state_dir)

    uvicorn.run(
        "shepherd.api.main:get_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=log_level.lower(),
    )


def get_app():
    """Factory function for creating the FastAPI app."""
    state_dir = os.environ.get("SHEPHERD_STATE_DIR", "shepherd_data")
    config = load_config(state_dir)
    if "SHEPHERD_LOG_LEVEL" in os.environ:
        config["log_level"] = os.environ["SHEPHERD_LOG_LEVEL"]
    return create_app(state_dir=state_dir, config=config)


if __name__ == "__main__":
    main()
