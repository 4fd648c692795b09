#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
ingest_cli.py
Command line runner for channel imports, transcript retries and statistics
refreshes against the local JSON video store. Runs the same services as the
admin API, without the HTTP layer.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from config import config
from enums import RetryMode
from exceptions import AppBaseError, QuotaExceededError, is_systemic_error
from logging_config import StructuredLogger, setup_logging_from_env
from services.pacing import PacingPolicy
from services.pipeline import Pipeline, build_pipeline
from services.storage import JsonFileVideoStore

logger = StructuredLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_QUOTA = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trailhead-ingest",
        description="Import YouTube channel videos and transcripts into the Trailhead video store.",
    )
    parser.add_argument("--store", default=None, help=f"Path of the JSON video store (default: {config.STORE_PATH})")
    parser.add_argument("--env-file", default=".env", help="Environment file to load before running")
    parser.add_argument("--no-pacing", action="store_true",
                        help="Disable transcript pacing delays (for small manual runs only)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import the newest videos of a channel")
    p_import.add_argument("channel", help="Channel ID, @handle or channel URL")
    p_import.add_argument("-n", "--count", type=int, default=config.DEFAULT_IMPORT_COUNT,
                          help=f"Number of new videos to import (max {config.MAX_IMPORT_COUNT})")

    p_retry = sub.add_parser("retry", help="Retry transcript extraction for stored videos")
    p_retry.add_argument("video_ids", nargs="+", help="YouTube video IDs")
    p_retry.add_argument("--mode", choices=[m.value for m in RetryMode], default=RetryMode.FAILED_ONLY.value)

    p_stats = sub.add_parser("refresh-stats", help="Refresh statistics of stale videos")
    p_stats.add_argument("--max-videos", type=int, default=config.STATS_MAX_VIDEOS)
    return parser


def _summary_table(title: str, values: Dict[str, object]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta", border_style="dim")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key, value in values.items():
        if isinstance(value, (list, dict)):
            continue
        table.add_row(key.replace("_", " "), str(value))
    return table


def _print_errors(console: Console, errors: List[str]) -> None:
    if not errors:
        return
    console.print(f"\n[bold yellow]{len(errors)} error(s):[/]")
    for message in errors[:20]:
        console.print(f"  - {message}")
    if len(errors) > 20:
        console.print(f"  ... {len(errors) - 20} more (see log)")


def build_services(args: argparse.Namespace, provider=None) -> Pipeline:
    """Services for one CLI run, built from the config as reloaded by main()."""
    store = JsonFileVideoStore(args.store or config.STORE_PATH)
    policy = PacingPolicy.immediate() if args.no_pacing else PacingPolicy.from_config(config)
    return build_pipeline(config, store, provider=provider, policy=policy)


async def run_command(args: argparse.Namespace, console: Console) -> int:
    pipeline = build_services(args)

    if args.command == "refresh-stats":
        summary = await pipeline.stats_refresher.refresh_due(args.max_videos)
        data = summary.to_dict()
        console.print(_summary_table("Statistics refresh", data))
        _print_errors(console, summary.errors)
        return EXIT_OK

    orchestrator = pipeline.orchestrator

    if args.command == "import":
        summary = await orchestrator.import_channel(args.channel, args.count)
        title = f"Import of {args.channel}"
    else:
        summary = await orchestrator.retry_transcripts(args.video_ids, RetryMode(args.mode))
        title = "Transcript retry"

    console.print(_summary_table(title, summary.to_dict()))
    _print_errors(console, summary.errors)
    if summary.circuit_breaker_tripped:
        console.print("[yellow]Transcript rate limiting tripped the circuit breaker during this run.[/]")
    return EXIT_QUOTA if getattr(pipeline.provider, "quota_reached", False) else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console(stderr=True)

    env_path = Path(args.env_file)
    if env_path.is_file():
        load_dotenv(dotenv_path=env_path, override=True)
    config.load_from_env()
    setup_logging_from_env(log_file=None)

    try:
        exit_code = asyncio.run(run_command(args, console))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        console.print("\n[yellow]Interrupted.[/]")
        exit_code = 130
    except QuotaExceededError as e:
        console.print(f"\n[bold yellow]YouTube API quota exceeded:[/] {e.message}")
        exit_code = EXIT_QUOTA
    except AppBaseError as e:
        level = "FATAL" if is_systemic_error(e) else "ERROR"
        logger.error(f"{args.command} failed: {e.message}", error_code=e.error_code)
        console.print(f"\n[bold red]{level}:[/] {e.message}")
        exit_code = EXIT_ERROR

    logger.info(f"CLI finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
