"""Backlog REST API client for Backlog Tasks."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, TYPE_CHECKING
import urllib.error
import urllib.parse
import urllib.request

from .models import Issue

if TYPE_CHECKING:
    from .tasks_config import TasksContext

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v2"
PAGE_SIZE = 100  # Backlog API max per request
REQUEST_TIMEOUT = 30


class BacklogAPIError(Exception):
    """Raised when a Backlog API call fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass
class BacklogConfig:
    """Backlog API configuration."""
    api_key: str
    base_url: str
    project_key: str

    @classmethod
    def from_context(cls, context: "TasksContext") -> Optional["BacklogConfig"]:
        """Create BacklogConfig from a TasksContext."""
        if not (context.api_key and context.base_url and context.project_key):
            return None
        return cls(
            api_key=context.api_key,
            base_url=context.base_url,
            project_key=context.project_key,
        )


def _encode_params(params: dict[str, Any]) -> list[tuple[str, str]]:
    """Encode parameters the way Backlog expects (`name[]` for lists)."""
    pairs = []
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((f"{name}[]", str(v)) for v in value)
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


class BacklogClient:
    """Client for the Backlog REST API (v2)."""

    def __init__(self, config: BacklogConfig):
        self.config = config
        self._project_cache: Optional[dict] = None

    @property
    def api_url(self) -> str:
        return self.config.base_url.rstrip("/") + API_PREFIX

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make a request to the Backlog API and decode the JSON response."""
        query = [("apiKey", self.config.api_key)] + _encode_params(params or {})
        url = f"{self.api_url}{path}?{urllib.parse.urlencode(query)}"

        body = None
        headers = {"Accept": "application/json"}
        if data is not None:
            body = urllib.parse.urlencode(_encode_params(data)).encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        req = urllib.request.Request(url, data=body, headers=headers, method=method)

        try:
            with urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace")
            logger.debug("Backlog %s %s failed (%s): %s", method, path, e.code, error_body)
            raise BacklogAPIError(f"Backlog API error ({e.code}): {error_body}", status=e.code) from e
        except urllib.error.URLError as e:
            raise BacklogAPIError(f"Could not reach Backlog: {e.reason}") from e

    def get_project(self) -> dict:
        """Get project information for the configured project key."""
        if self._project_cache is None:
            self._project_cache = self._request("GET", f"/projects/{self.config.project_key}")
        return self._project_cache

    def get_issue_types(self) -> list[dict]:
        """Get the issue types of the project."""
        return self._request("GET", f"/projects/{self.config.project_key}/issueTypes")

    def get_priorities(self) -> list[dict]:
        """Get the priorities defined in the space."""
        return self._request("GET", "/priorities")

    def get_issues(self, params: Optional[dict[str, Any]] = None) -> list[Issue]:
        """Get all issues of the project, draining every page.

        Args:
            params: Extra issue list filters (e.g. `updatedSince`), which
                override the defaults
        """
        project = self.get_project()
        all_issues: list[Issue] = []
        offset = 0

        while True:
            query = {
                "projectId": [project["id"]],
                "sort": "updated",
                "order": "desc",
                "count": PAGE_SIZE,
                "offset": offset,
                **(params or {}),
            }
            page = self._request("GET", "/issues", params=query)
            all_issues.extend(Issue.from_api(item) for item in page)

            # A short page is the last one
            if len(page) < PAGE_SIZE:
                break
            offset += PAGE_SIZE

        return all_issues

    def get_issues_updated_since(self, since: datetime) -> list[Issue]:
        """Get issues updated on or after the day of `since` (UTC)."""
        if since.tzinfo is not None:
            since = since.astimezone(timezone.utc)
        return self.get_issues({
            "updatedSince": since.strftime("%Y-%m-%d"),
            "sort": "updated",
            "order": "desc",
        })

    def get_issue(self, issue_key: str) -> Issue:
        """Get a single issue by key."""
        return Issue.from_api(self._request("GET", f"/issues/{issue_key}"))

    def create_issue(
        self,
        summary: str,
        issue_type_id: int,
        priority_id: int,
        description: Optional[str] = None,
        parent_issue_id: Optional[int] = None,
    ) -> Issue:
        """Create an issue in the configured project."""
        data: dict[str, Any] = {
            "projectId": self.get_project()["id"],
            "summary": summary,
            "issueTypeId": issue_type_id,
            "priorityId": priority_id,
            "description": description or "",
        }
        if parent_issue_id:
            data["parentIssueId"] = parent_issue_id

        return Issue.from_api(self._request("POST", "/issues", data=data))

    def update_issue(
        self,
        issue_key: str,
        summary: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Issue:
        """Update the summary and/or description of an issue.

        Raises:
            ValueError: If neither field is given
        """
        if not summary and description is None:
            raise ValueError("No updates provided")

        data: dict[str, Any] = {}
        if summary:
            data["summary"] = summary
        if description is not None:
            data["description"] = description

        return Issue.from_api(self._request("PATCH", f"/issues/{issue_key}", data=data))

    def test_connection(self) -> bool:
        """Check that the API key and project are valid."""
        self._project_cache = None
        try:
            self.get_project()
            return True
        except BacklogAPIError as e:
            logger.error("Connection test failed: %s", e)
            return False

    def get_issue_url(self, issue_key: str) -> str:
        """Get the browser URL of an issue."""
        return f"{self.config.base_url.rstrip('/')}/view/{issue_key}"

    def get_project_key(self) -> str:
        return self.config.project_key
