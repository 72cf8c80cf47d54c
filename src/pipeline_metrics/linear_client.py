"""Linear GraphQL API client for content pipeline data retrieval."""

from __future__ import annotations

import time
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .errors import ApiError, SourceRateLimitError
from .models import IssueNode, Person, Project, WorkflowState

_TEAMS_QUERY = """
query Teams {
  teams {
    nodes { id name }
  }
}
"""

_WORKFLOW_STATES_QUERY = """
query WorkflowStates {
  workflowStates(first: 250) {
    nodes { id name type }
  }
}
"""

_WORKFLOW_STATE_QUERY = """
query WorkflowState($id: String!) {
  workflowState(id: $id) { id name type }
}
"""

_ISSUES_QUERY = """
query TeamIssues($teamId: ID!, $first: Int!, $orderBy: PaginationOrderBy) {
  issues(filter: {team: {id: {eq: $teamId}}}, first: $first, orderBy: $orderBy) {
    nodes {
      id
      title
      dueDate
      createdAt
      state { id }
      assignee { id }
      project { id }
    }
  }
}
"""

_USER_QUERY = """
query User($id: String!) {
  user(id: $id) { id name }
}
"""

_PROJECT_QUERY = """
query Project($id: String!) {
  project(id: $id) { id name }
}
"""


class LinearClient:
    """Small, typed client for the Linear GraphQL API.

    Related records (state, assignee, project) come back as bare id
    references; resolving them is the caller's job.
    """

    _API_URL = "https://api.linear.app/graphql"
    _ISSUE_PAGE_SIZE = 100
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30
    _RATE_LIMIT_CODE = "RATELIMITED"

    def __init__(self, api_key: str, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated Linear API client.

        Args:
            api_key: Personal or workspace Linear API key.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._timeout_seconds = timeout_seconds

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def _parse_datetime(self, value: Optional[str]) -> Optional[datetime]:
        """Parse Linear ISO8601 timestamps into timezone-aware datetimes."""
        if not value:
            return None

        normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
        parsed = datetime.fromisoformat(normalized)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _parse_date(self, value: Optional[str]) -> Optional[date]:
        """Parse a Linear ``TimelessDate`` (``YYYY-MM-DD``)."""
        if not value:
            return None
        return date.fromisoformat(value[:10])

    def _is_rate_limited(self, response: requests.Response, payload: Optional[Dict[str, Any]]) -> bool:
        if response.status_code == 429:
            return True
        if not payload:
            return False
        for error in payload.get("errors") or []:
            extensions = error.get("extensions") or {}
            if extensions.get("code") == self._RATE_LIMIT_CODE:
                return True
        return False

    def _post_json(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL request with retry logic for 5xx responses.

        Raises:
            SourceRateLimitError: If Linear reports the request as rate limited.
            ApiError: If the request repeatedly fails, returns HTTP >= 400,
                returns GraphQL errors, or does not return valid JSON.
        """
        body = {"query": query, "variables": dict(variables or {})}
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.post(self._API_URL, json=body, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError("Linear request failed after retries") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            if 500 <= status_code <= 599 and attempt < self._MAX_RETRIES:
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            try:
                payload = response.json()
            except ValueError:
                payload = None

            if not isinstance(payload, dict):
                payload = None

            if self._is_rate_limited(response, payload):
                raise SourceRateLimitError(f"Linear API rate limit exceeded (HTTP {status_code})")

            if status_code >= 400:
                raise ApiError(f"Linear API request failed: returned {status_code} - {response.text}")

            if payload is None:
                raise ApiError("Linear API returned invalid JSON")

            errors = payload.get("errors")
            if errors:
                messages = "; ".join(str(error.get("message", error)) for error in errors)
                raise ApiError(f"Linear API returned errors: {messages}")

            data = payload.get("data")
            if not isinstance(data, dict):
                raise ApiError("Linear API returned unexpected payload shape")

            return data

        raise ApiError("Linear request failed after retries") from last_error

    def list_teams(self) -> List[str]:
        """List team ids visible to the API key."""
        data = self._post_json(_TEAMS_QUERY)
        return [str(node["id"]) for node in (data.get("teams") or {}).get("nodes", []) if node.get("id")]

    def list_workflow_states(self) -> List[WorkflowState]:
        """List workflow states visible to the API key."""
        data = self._post_json(_WORKFLOW_STATES_QUERY)
        states: List[WorkflowState] = []

        for node in (data.get("workflowStates") or {}).get("nodes", []):
            state_id = node.get("id")
            name = node.get("name")
            if state_id and name is not None:
                states.append(WorkflowState(id=str(state_id), name=str(name), type=node.get("type")))

        return states

    def get_workflow_state(self, state_id: str) -> Optional[WorkflowState]:
        data = self._post_json(_WORKFLOW_STATE_QUERY, {"id": state_id})
        node = data.get("workflowState")
        if not node:
            return None
        return WorkflowState(id=str(node["id"]), name=str(node.get("name") or ""), type=node.get("type"))

    def get_user(self, user_id: str) -> Optional[Person]:
        data = self._post_json(_USER_QUERY, {"id": user_id})
        node = data.get("user")
        if not node:
            return None
        return Person(id=str(node["id"]), name=str(node.get("name") or ""))

    def get_project(self, project_id: str) -> Optional[Project]:
        data = self._post_json(_PROJECT_QUERY, {"id": project_id})
        node = data.get("project")
        if not node:
            return None
        return Project(id=str(node["id"]), name=str(node.get("name") or ""))

    def list_issues(
        self,
        team_id: str,
        page_size: int = _ISSUE_PAGE_SIZE,
        order_by: str = "updatedAt",
    ) -> List[IssueNode]:
        """List one page of issues for a team, most recently updated first.

        Only the first ``page_size`` issues are returned; the dashboard works on
        the most recently updated slice of the backlog.
        """
        data = self._post_json(
            _ISSUES_QUERY,
            {"teamId": team_id, "first": page_size, "orderBy": order_by},
        )
        issues: List[IssueNode] = []

        for node in (data.get("issues") or {}).get("nodes", []):
            issue_id = node.get("id")
            created_at = self._parse_datetime(node.get("createdAt"))

            if not issue_id or created_at is None:
                raise ApiError(
                    "Linear issue payload is missing required fields: "
                    f"team_id={team_id}, payload={node}"
                )

            issues.append(
                IssueNode(
                    id=str(issue_id),
                    title=str(node.get("title") or ""),
                    due_date=self._parse_date(node.get("dueDate")),
                    created_at=created_at,
                    state_id=(node.get("state") or {}).get("id"),
                    assignee_id=(node.get("assignee") or {}).get("id"),
                    project_id=(node.get("project") or {}).get("id"),
                )
            )

        return issues
