from __future__ import annotations

import json

import httpx
import pytest

from ralphy.errors import TaskSourceError
from ralphy.tasks.github import GITHUB_API_URL, GitHubTaskSource


class FakeGitHub:
    """In-memory issues API for one repository."""

    def __init__(self, issues: list[dict]) -> None:
        self.issues = {issue["number"]: dict(issue) for issue in issues}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path == "/repos/octo/demo/issues":
            state = request.url.params.get("state")
            label = request.url.params.get("labels")
            page = int(request.url.params.get("page", "1"))
            items = [
                issue
                for issue in self.issues.values()
                if issue["state"] == state and (not label or label in issue.get("labels", []))
            ]
            chunk = items[(page - 1) * 2 : page * 2]
            headers = {}
            if page * 2 < len(items):
                next_url = f"{GITHUB_API_URL}{path}?state={state}&per_page=2&page={page + 1}"
                if label:
                    next_url += f"&labels={label}"
                headers["Link"] = f'<{next_url}>; rel="next"'
            return httpx.Response(200, json=chunk, headers=headers)
        if path.startswith("/repos/octo/demo/issues/"):
            number = int(path.rsplit("/", 1)[1])
            issue = self.issues.get(number)
            if issue is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if request.method == "PATCH":
                issue.update(json.loads(request.content))
            return httpx.Response(200, json=issue)
        return httpx.Response(404, json={"message": "Not Found"})


def _source(fake: FakeGitHub, label: str | None = None) -> GitHubTaskSource:
    client = httpx.Client(base_url=GITHUB_API_URL, transport=httpx.MockTransport(fake.handler))
    return GitHubTaskSource("octo/demo", label, client=client)


@pytest.fixture
def fake() -> FakeGitHub:
    return FakeGitHub(
        [
            {"number": 1, "title": "Fix login", "body": "Steps to reproduce", "state": "open", "labels": ["ralphy"]},
            {"number": 2, "title": "Bump deps", "body": None, "state": "open", "labels": []},
            {"number": 3, "title": "Old thing", "body": "", "state": "closed", "labels": []},
            {"number": 4, "title": "A PR", "state": "open", "pull_request": {"url": "x"}, "labels": []},
            {"number": 5, "title": "Add docs", "body": "Write docs", "state": "open", "labels": ["ralphy"]},
        ]
    )


def test_lists_open_issues_across_pages_without_pull_requests(fake: FakeGitHub) -> None:
    source = _source(fake)

    tasks = source.get_all_tasks()

    assert [t.id for t in tasks] == ["1:Fix login", "2:Bump deps", "5:Add docs"]
    assert tasks[0].body == "Steps to reproduce"
    assert tasks[1].body is None
    assert source.count_remaining() == 3
    assert source.count_completed() == 1


def test_label_filter_is_sent(fake: FakeGitHub) -> None:
    source = _source(fake, label="ralphy")

    assert [t.title for t in source.get_all_tasks()] == ["Fix login", "Add docs"]
    assert fake.requests[0].url.params["labels"] == "ralphy"


def test_next_page_requests_keep_the_link_query(fake: FakeGitHub) -> None:
    source = _source(fake)

    source.get_all_tasks()

    later_pages = [r for r in fake.requests if r.url.params.get("page") == "2"]
    assert len(later_pages) == 1
    assert later_pages[0].url.params["state"] == "open"
    assert later_pages[0].url.params["per_page"] == "2"


def test_mark_complete_closes_issue_and_is_repeatable(fake: FakeGitHub) -> None:
    source = _source(fake)

    source.mark_complete("2:Bump deps")
    source.mark_complete("2:Bump deps")

    assert fake.issues[2]["state"] == "closed"
    assert [t.id for t in source.get_all_tasks()] == ["1:Fix login", "5:Add docs"]
    patches = [r for r in fake.requests if r.method == "PATCH"]
    assert len(patches) == 2
    assert json.loads(patches[0].content) == {"state": "closed"}


def test_get_issue_body(fake: FakeGitHub) -> None:
    source = _source(fake)

    assert source.get_issue_body("5:Add docs") == "Write docs"
    assert source.get_issue_body("not-a-number") == ""


def test_http_errors_become_task_source_errors(fake: FakeGitHub) -> None:
    source = _source(fake)

    with pytest.raises(TaskSourceError, match="#99"):
        source.mark_complete("99:Missing")
    with pytest.raises(TaskSourceError, match="Invalid issue ID"):
        source.mark_complete("abc")


@pytest.mark.parametrize("repo", ["", "octo", "octo/", "/demo", "a/b/c"])
def test_invalid_repo_format(repo: str) -> None:
    with pytest.raises(TaskSourceError, match="Invalid repo format"):
        GitHubTaskSource(repo, client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
