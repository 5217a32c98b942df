"""Configuration parsing and validation for the GitHub metrics exporter."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from .errors import ConfigurationError
from .models import RepositoryCoordinate

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
MAX_PORT = 65535
DEFAULT_PERIOD_MINUTES = 60


@dataclass(frozen=True)
class TeamCoordinate:
    """An ``org/team-slug`` pair naming the roster of team members."""

    org: str
    slug: str

    def __str__(self) -> str:
        return f"{self.org}/{self.slug}"


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the exporter."""

    token: str
    repositories: Tuple[RepositoryCoordinate, ...]
    labels: Tuple[str, ...]
    team: Optional[TeamCoordinate] = None
    period_minutes: int = DEFAULT_PERIOD_MINUTES
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    metrics_token: Optional[str] = None
    repo_template: Optional[RepositoryCoordinate] = None
    api_url: str = DEFAULT_API_URL


def _split_list(raw: str) -> Tuple[str, ...]:
    # Duplicates are dropped; first occurrence wins.
    return tuple(dict.fromkeys(item.strip() for item in raw.split(",") if item.strip()))


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigurationError(f"Missing required setting '{name}'. Set it before starting the exporter.")
    return value


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for '{name}': expected an integer, got '{raw}'.") from exc
    if parsed <= 0:
        raise ConfigurationError(f"Invalid value for '{name}': expected an integer greater than 0.")
    return parsed


def _port(env: Mapping[str, str]) -> int:
    port = _positive_int(env, "EXPORTER_PORT", DEFAULT_PORT)
    if port > MAX_PORT:
        raise ConfigurationError(f"Invalid value for 'EXPORTER_PORT': expected a port between 1 and {MAX_PORT}.")
    return port


def _parse_team(raw: str) -> TeamCoordinate:
    parts = [part.strip() for part in raw.split("/")]
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(f"Invalid value for 'EXPORTER_TEAM': expected 'org/team', got '{raw}'.")
    return TeamCoordinate(org=parts[0], slug=parts[1])


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build and validate application configuration from environment variables.

    Args:
        environ: Mapping to read settings from; defaults to ``os.environ``.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If a required setting is missing or a value is invalid.
    """
    env = os.environ if environ is None else environ

    token = _required(env, "EXPORTER_TOKEN")

    repositories = tuple(
        RepositoryCoordinate.parse(item) for item in _split_list(_required(env, "EXPORTER_REPOS"))
    )
    if not repositories:
        raise ConfigurationError("'EXPORTER_REPOS' does not name any repository.")

    labels = _split_list(_required(env, "EXPORTER_LABELS"))
    if not labels:
        raise ConfigurationError("'EXPORTER_LABELS' does not name any label.")

    raw_team = env.get("EXPORTER_TEAM", "").strip()
    raw_template = env.get("EXPORTER_REPO_TEMPLATE", "").strip()

    return Config(
        token=token,
        repositories=repositories,
        labels=labels,
        team=_parse_team(raw_team) if raw_team else None,
        period_minutes=_positive_int(env, "EXPORTER_PERIOD", DEFAULT_PERIOD_MINUTES),
        host=env.get("EXPORTER_HOST", "").strip() or DEFAULT_HOST,
        port=_port(env),
        metrics_token=env.get("EXPORTER_METRICS_TOKEN", "").strip() or None,
        repo_template=RepositoryCoordinate.parse(raw_template) if raw_template else None,
        api_url=(env.get("EXPORTER_API_URL", "").strip() or DEFAULT_API_URL).rstrip("/"),
    )
