"""Derived fields computed from issue and pull request timestamps.

This module computes:
- Item age in whole days at refresh time.
- Whole days from pull request creation to its first submitted review.
- The single review state of an open pull request.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from .models import PullRequest, ReviewState

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def whole_days_between(start: datetime, end: datetime) -> Optional[int]:
    """Return ``floor((end - start) / 1 day)``.

    Returns ``None`` for negative spans (clock skew between the remote and
    this host) so callers can skip the observation.
    """
    seconds = (end - start).total_seconds()
    if seconds < 0:
        logger.debug(
            "Skipping negative duration",
            extra={"start": start.isoformat(), "end": end.isoformat()},
        )
        return None
    return math.floor(seconds / SECONDS_PER_DAY)


def age_in_days(created_at: datetime, now: datetime) -> Optional[int]:
    return whole_days_between(created_at, now)


def days_to_first_review(pr: PullRequest) -> Optional[int]:
    if pr.firstReviewAt is None:
        return None
    return whole_days_between(pr.createdAt, pr.firstReviewAt)


def review_state(pr: PullRequest) -> ReviewState:
    """Classify an open pull request into exactly one review state.

    Priority order:
    - ``Approved`` when the aggregate review decision is approval.
    - ``NotReviewed`` when no review has been submitted yet.
    - ``WaitingForReview`` when a review is currently requested.
    - ``WaitingForChanges`` otherwise.
    """
    if pr.approved:
        return ReviewState.APPROVED
    if pr.firstReviewAt is None:
        return ReviewState.NOT_REVIEWED
    if pr.reviewRequested:
        return ReviewState.WAITING_FOR_REVIEW
    return ReviewState.WAITING_FOR_CHANGES
