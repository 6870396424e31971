"""GitHub Issues task source.

Open issues are the backlog; completing a task closes its issue. Task ids use
the ``"<number>:<title>"`` form so they stay unique and readable.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import httpx

from ..errors import TaskSourceError
from ..runtime.domain.models import Task
from .base import TaskSourceType

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
_PER_PAGE = 100


def _issue_number(task_id: str) -> int:
    head = str(task_id).split(":", 1)[0]
    try:
        return int(head)
    except ValueError as exc:
        raise TaskSourceError(f"Invalid issue ID: {task_id}") from exc


class GitHubTaskSource:
    """Read open issues from ``owner/repo``, optionally filtered by label."""

    type: TaskSourceType = "github"

    def __init__(
        self,
        repo_path: str,
        label: Optional[str] = None,
        *,
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        owner, _, repo = str(repo_path or "").partition("/")
        if not owner or not repo or "/" in repo:
            raise TaskSourceError(f"Invalid repo format: {repo_path}. Expected owner/repo")
        self.owner = owner
        self.repo = repo
        self.label = label or None
        auth_token = token if token is not None else os.environ.get("GITHUB_TOKEN")
        headers = {"Accept": "application/vnd.github+json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = client or httpx.Client(base_url=GITHUB_API_URL, headers=headers, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def _list_issues(self, state: str) -> list[dict[str, Any]]:
        params: Optional[dict[str, Any]] = {"state": state, "per_page": _PER_PAGE}
        if self.label:
            params["labels"] = self.label
        url: Optional[str] = f"/repos/{self.owner}/{self.repo}/issues"
        issues: list[dict[str, Any]] = []
        while url:
            try:
                response = self._client.get(url, params=params)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise TaskSourceError(f"GitHub issue listing failed: {exc}") from exc
            # The issues endpoint also returns pull requests.
            issues.extend(item for item in response.json() if isinstance(item, dict) and "pull_request" not in item)
            url = response.links.get("next", {}).get("url")
            # The next link already carries the full query string.
            params = None
        return issues

    def get_all_tasks(self) -> list[Task]:
        return [
            Task(
                id=f"{issue['number']}:{issue.get('title', '')}",
                title=str(issue.get("title", "")),
                body=issue.get("body") or None,
            )
            for issue in self._list_issues("open")
        ]

    def get_next_task(self) -> Optional[Task]:
        tasks = self.get_all_tasks()
        return tasks[0] if tasks else None

    def mark_complete(self, task_id: str) -> None:
        """Close the issue behind ``task_id``; closing an already closed issue changes nothing."""
        number = _issue_number(task_id)
        try:
            response = self._client.patch(
                f"/repos/{self.owner}/{self.repo}/issues/{number}",
                json={"state": "closed"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TaskSourceError(f"Failed to close issue #{number}: {exc}") from exc
        logger.debug("Closed issue #%s", number)

    def count_remaining(self) -> int:
        return len(self._list_issues("open"))

    def count_completed(self) -> int:
        return len(self._list_issues("closed"))

    def get_issue_body(self, task_id: str) -> str:
        """Fetch the full body of the issue behind ``task_id`` (empty when unknown)."""
        try:
            number = _issue_number(task_id)
        except TaskSourceError:
            return ""
        try:
            response = self._client.get(f"/repos/{self.owner}/{self.repo}/issues/{number}")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TaskSourceError(f"Failed to fetch issue #{number}: {exc}") from exc
        return str(response.json().get("body") or "")
