"""Command-line argument parsing for the GitHub metrics exporter."""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _log_level(value: str) -> str:
    """Parse and validate a logging level name.

    Raises:
        argparse.ArgumentTypeError: If value is not a known level name.
    """
    normalized = value.strip().upper()
    if normalized not in _LOG_LEVELS:
        raise argparse.ArgumentTypeError(f"must be one of {', '.join(_LOG_LEVELS)}")
    return normalized


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--env-file",
        default=None,
        help="Load EXPORTER_* settings from this dotenv file (default: ./.env when present).",
    )
    parser.add_argument(
        "--log-level",
        type=_log_level,
        default=None,
        help="Logging level; overrides EXPORTER_LOG_LEVEL.",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the exporter service."""
    parser = argparse.ArgumentParser(
        prog="github-exporter",
        description=(
            "Export GitHub issue and pull request activity for a set of repositories "
            "as Prometheus metrics. Settings are read from EXPORTER_* environment variables."
        ),
    )
    _add_common_arguments(parser)
    return parser.parse_args(argv)


def parse_labelsync_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the label synchronization utility."""
    parser = argparse.ArgumentParser(
        prog="github-exporter-labelsync",
        description=(
            "Create the labels of interest (EXPORTER_LABELS) on every repository in "
            "EXPORTER_REPOS, copying them from EXPORTER_REPO_TEMPLATE."
        ),
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report missing labels; do not create them.",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
