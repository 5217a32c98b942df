"""Author affiliation classification (team vs. community)."""

from __future__ import annotations

import enum
from typing import AbstractSet, Optional, Tuple


class Affiliation(str, enum.Enum):
    TEAM = "team"
    COMMUNITY = "community"

    @property
    def is_community_label(self) -> str:
        """Value of the ``isCommunity`` metric label."""
        return "true" if self is Affiliation.COMMUNITY else "false"


def classify(author: Optional[str], members: AbstractSet[str]) -> Affiliation:
    """Classify an author against the team membership set.

    Authors that are missing (for example deleted accounts) are treated as
    community members; this is a policy, not an error.
    """
    if author is not None and author in members:
        return Affiliation.TEAM
    return Affiliation.COMMUNITY


def published_affiliations(members: AbstractSet[str]) -> Tuple[Affiliation, ...]:
    """Affiliations that get an explicit series for a membership set.

    Without any configured team members everyone is community, so the team
    variant is not emitted at all.
    """
    if not members:
        return (Affiliation.COMMUNITY,)
    return (Affiliation.TEAM, Affiliation.COMMUNITY)
