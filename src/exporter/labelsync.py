"""Copy the labels of interest from a template repository to watched repositories."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .github_client import GitHubClient
from .models import RepositoryCoordinate

logger = logging.getLogger(__name__)

CREATE_DELAY_SECONDS = 0.25


@dataclass(slots=True)
class LabelDefinition:
    """A label as defined on the template repository."""

    name: str
    color: str
    description: str = ""


def template_labels(
    client: GitHubClient,
    template: RepositoryCoordinate,
    interested: Sequence[str],
) -> List[LabelDefinition]:
    """Return the template repository's labels that are in ``interested``."""
    wanted = set(interested)
    return [
        LabelDefinition(
            name=str(item["name"]),
            color=str(item.get("color") or "ededed"),
            description=str(item.get("description") or ""),
        )
        for item in client.list_labels(template.owner, template.name)
        if item.get("name") in wanted
    ]


def sync_labels(
    client: GitHubClient,
    template: RepositoryCoordinate,
    repositories: Sequence[RepositoryCoordinate],
    interested: Sequence[str],
    dry_run: bool = False,
) -> Dict[str, List[str]]:
    """Create labels that exist on ``template`` but are missing elsewhere.

    Returns:
        Mapping of ``owner/name`` to the label names that were missing
        (and, unless ``dry_run``, created). Up-to-date repositories map to an
        empty list.
    """
    labels = template_labels(client, template, interested)
    logger.info(
        "Loaded template labels",
        extra={"template": template.full_name, "labels": [label.name for label in labels], "dry_run": dry_run},
    )

    missing_by_repository: Dict[str, List[str]] = {}
    for repository in repositories:
        existing = {item.get("name") for item in client.list_labels(repository.owner, repository.name)}
        needed = [label for label in labels if label.name not in existing]
        missing_by_repository[repository.full_name] = [label.name for label in needed]

        if not needed:
            logger.info("Repository labels are up to date", extra={"repository": repository.full_name})
            continue

        logger.info(
            "Repository is missing labels",
            extra={"repository": repository.full_name, "labels": [label.name for label in needed]},
        )
        if dry_run:
            continue

        for label in needed:
            client.create_label(
                repository.owner,
                repository.name,
                name=label.name,
                color=label.color,
                description=label.description or None,
            )
            time.sleep(CREATE_DELAY_SECONDS)

    return missing_by_repository
