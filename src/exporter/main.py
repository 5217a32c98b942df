"""Entry points for the exporter service and the label sync utility."""

from __future__ import annotations

import logging
import os
import signal
import sys
from typing import FrozenSet, Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from .cli import configure_logging, parse_args, parse_labelsync_args
from .config import Config, TeamCoordinate, load_config
from .errors import AuthenticationError, ConfigurationError, TransportError
from .github_client import GitHubClient
from .labelsync import sync_labels
from .metrics import MetricSink
from .pagination import Paginator
from .scheduler import Scheduler
from .server import MetricsServer
from .watcher import build_watchers

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_TRANSPORT = 4


def _bootstrap(env_file: Optional[str], log_level: Optional[str]) -> Config:
    load_dotenv(env_file or find_dotenv(usecwd=True))
    configure_logging(log_level or os.getenv("EXPORTER_LOG_LEVEL", "INFO").strip().upper())
    return load_config()


def authenticate(client: GitHubClient) -> str:
    """Probe the token; any failure is reported as an authentication error."""
    try:
        login = client.get_authenticated_user()
    except AuthenticationError:
        raise
    except TransportError as exc:
        raise AuthenticationError(f"Failed to authenticate with GitHub: {exc}") from exc
    logger.info("Authenticated with GitHub", extra={"login": login})
    return login


def load_members(client: GitHubClient, team: Optional[TeamCoordinate]) -> FrozenSet[str]:
    """Fetch the team roster once; without a team everyone is community."""
    if team is None:
        return frozenset()
    members = frozenset(client.list_team_members(team.org, team.slug))
    logger.info("Loaded team roster", extra={"team": str(team), "members": len(members)})
    return members


def run_exporter(argv: Optional[Sequence[str]] = None) -> int:
    """Run the exporter until it is interrupted.

    Returns:
        Process exit code.
    """
    scheduler: Optional[Scheduler] = None
    server: Optional[MetricsServer] = None

    try:
        args = parse_args(argv)
        config = _bootstrap(args.env_file, args.log_level)

        client = GitHubClient(token=config.token, api_url=config.api_url)
        authenticate(client)
        members = load_members(client, config.team)

        sink = MetricSink()
        watchers = build_watchers(Paginator(client), sink, config.repositories, config.labels, members)
        scheduler = Scheduler(watchers, period_seconds=config.period_minutes * 60)
        signal.signal(signal.SIGTERM, lambda signum, frame: scheduler.stop())

        # Publish a full dataset before the first scrape can happen.
        scheduler.refresh_all()

        server = MetricsServer(sink, config.host, config.port, bearer_token=config.metrics_token)
        server.start()
        logger.info(
            "Watching repositories",
            extra={"repositories": len(watchers), "interval_seconds": scheduler.interval_seconds},
        )
        scheduler.run()
        return EXIT_OK
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        logger.error("Authentication failed: %s", exc)
        return EXIT_AUTHENTICATION
    except TransportError as exc:
        logger.error("GitHub request failed during startup: %s", exc)
        return EXIT_TRANSPORT
    except Exception:
        logger.exception("Unexpected error")
        return EXIT_UNEXPECTED
    finally:
        if scheduler is not None:
            scheduler.stop()
        if server is not None:
            server.stop()


def run_labelsync(argv: Optional[Sequence[str]] = None) -> int:
    """Create missing labels of interest on every configured repository."""
    try:
        args = parse_labelsync_args(argv)
        config = _bootstrap(args.env_file, args.log_level)
        if config.repo_template is None:
            raise ConfigurationError(
                "Missing required setting 'EXPORTER_REPO_TEMPLATE'. Set it before running the label sync."
            )

        client = GitHubClient(token=config.token, api_url=config.api_url)
        authenticate(client)
        logger.info("Starting label sync", extra={"mode": "DRY" if args.dry_run else "LIVE"})
        sync_labels(client, config.repo_template, config.repositories, config.labels, dry_run=args.dry_run)
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        logger.error("Authentication failed: %s", exc)
        return EXIT_AUTHENTICATION
    except TransportError as exc:
        logger.error("GitHub request failed: %s", exc)
        return EXIT_TRANSPORT
    except Exception:
        logger.exception("Unexpected error")
        return EXIT_UNEXPECTED


def main() -> None:
    sys.exit(run_exporter())


def labelsync_main() -> None:
    sys.exit(run_labelsync())


if __name__ == "__main__":
    main()
