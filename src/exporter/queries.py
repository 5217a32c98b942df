"""GraphQL documents sent by the query executor.

Each query selects a single connection below ``repository`` and always asks
for ``pageInfo { hasNextPage endCursor }`` so the paginator can drive it.
"""

from __future__ import annotations

from typing import Dict

from .models import QueryName

PAGE_SIZE = 100

FETCH_ISSUES = """
query fetchIssues($owner: String!, $name: String!, $after: String, $state: IssueState!, $since: DateTime) {
  repository(owner: $owner, name: $name) {
    issues(first: %(page_size)d, after: $after, filterBy: {states: [$state], since: $since}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        author {
          login
        }
        createdAt
        updatedAt
        labels(first: 100) {
          nodes {
            name
          }
        }
      }
    }
  }
}
""" % {"page_size": PAGE_SIZE}

FETCH_PULL_REQUESTS = """
query fetchPullRequests($owner: String!, $name: String!, $after: String, $state: PullRequestState!) {
  repository(owner: $owner, name: $name) {
    pullRequests(first: %(page_size)d, after: $after, states: [$state]) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        author {
          login
        }
        createdAt
        updatedAt
        state
        isDraft
        reviewDecision
        reviews(first: 1, states: [APPROVED, CHANGES_REQUESTED, COMMENTED, DISMISSED]) {
          nodes {
            submittedAt
          }
        }
        reviewRequests(first: 1) {
          totalCount
        }
      }
    }
  }
}
""" % {"page_size": PAGE_SIZE}

# Delivered newest-update-first so callers can stop once items leave their window.
FETCH_PULL_REQUESTS_SIMPLE = """
query fetchPullRequestsSimple($owner: String!, $name: String!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(
      first: %(page_size)d
      after: $after
      states: [MERGED, CLOSED]
      orderBy: {field: UPDATED_AT, direction: DESC}
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        author {
          login
        }
        createdAt
        updatedAt
        state
      }
    }
  }
}
""" % {"page_size": PAGE_SIZE}

QUERIES: Dict[QueryName, str] = {
    QueryName.ISSUES: FETCH_ISSUES,
    QueryName.PULL_REQUESTS: FETCH_PULL_REQUESTS,
    QueryName.PULL_REQUESTS_SIMPLE: FETCH_PULL_REQUESTS_SIMPLE,
}

CONNECTIONS: Dict[QueryName, str] = {
    QueryName.ISSUES: "issues",
    QueryName.PULL_REQUESTS: "pullRequests",
    QueryName.PULL_REQUESTS_SIMPLE: "pullRequests",
}
