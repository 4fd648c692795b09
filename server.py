#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Uvicorn server entry point for the Trailhead Ingest admin API.

Handles environment loading (.env), final logging configuration based on environment,
and starts the Uvicorn server process.
"""

import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from config import config
from logging_config import setup_logging_from_env


def load_environment(env_file: str = ".env") -> None:
    """Load a .env file (if present) and reload the configuration from the environment."""
    env_path = Path(env_file)
    if env_path.is_file():
        load_dotenv(dotenv_path=env_path, override=True)
        print(f"Loaded environment variables from: {env_path.resolve()}")
    else:
        print(".env file not found, using system environment variables.")
    config.load_from_env()


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw)
    except ValueError:
        logging.warning(f"Invalid {name} environment variable '{raw}', using default {default}.")
        return default


def main():
    load_environment()
    setup_logging_from_env()

    if not config.API_KEY:
        logging.warning("=" * 80)
        logging.warning(f" WARNING: {config.API_KEY_ENV_VAR} is not defined.")
        logging.warning(" Imports, retries and statistics refreshes will answer 503.")
        logging.warning("=" * 80)

    run_host = os.environ.get("HOST", "127.0.0.1")
    run_port = _int_env("PORT", 8000)
    debug_mode = os.environ.get("DEBUG", "false").lower() in ("true", "1", "yes")
    uvicorn_log_level = os.environ.get("UVICORN_LOG_LEVEL", "debug" if debug_mode else "info").lower()

    # Jobs and the JSON store live in process memory: one worker only
    if _int_env("WEB_CONCURRENCY", 1) > 1:
        logging.warning("WEB_CONCURRENCY > 1 is not supported, running a single worker.")

    logging.info(f"Starting Uvicorn server on http://{run_host}:{run_port}")
    logging.info(f"Debug mode: {debug_mode}, Uvicorn Log Level: {uvicorn_log_level}")

    uvicorn.run(
        "main:app",
        host=run_host,
        port=run_port,
        reload=debug_mode,
        workers=1,
        log_level=uvicorn_log_level,
    )


if __name__ == "__main__":
    main()
