"""Tests for the tracker client layer.

Covers:
- Data models: WorkItem, PRRequest, PRResult
- ForgeClient protocol satisfaction (GitHubClient)
- GitHubClient: REST operations against mocked HTTP (respx)
- GitHubClient: discussions over GraphQL
- Retry on 429/5xx, no retry on 401/403, ForgeError carrying status_code
- factory.get_forge_client from config

No real network calls are made; all HTTP is mocked via respx.
"""

from __future__ import annotations

import base64
import json
import logging

import httpx
import pytest
import respx

from infra.factory import get_forge_client
from infra.forge import ForgeClient, ForgeError, PRRequest, PRResult, WorkItem
from infra.github_client import GitHubClient
from stagehand.core.config import reset_settings

GITHUB_API = "https://api.github.com"
REPO = f"{GITHUB_API}/repos/owner/repo"


def _issue_json(number=42, **extra):
    data = {
        "number": number,
        "title": "Fix the bug",
        "body": "It crashes on startup",
        "html_url": f"https://github.com/owner/repo/issues/{number}",
        "labels": [{"name": "bug"}],
        "user": {"login": "alice"},
        "created_at": "2024-01-02T03:04:05Z",
    }
    data.update(extra)
    return data


def _b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


# ═══════════════════════════════════════════════════════════════════════════
# 1. Data models
# ═══════════════════════════════════════════════════════════════════════════

class TestDataModels:
    def test_work_item_defaults(self):
        item = WorkItem(number=1, title="Test")
        assert item.body == ""
        assert item.labels == []
        assert item.is_pull_request is False
        assert item.created_at is None

    def test_pr_request_defaults(self):
        pr = PRRequest(title="title", head_branch="feature")
        assert pr.body == ""
        assert pr.base_branch == "main"

    def test_pr_result_fields(self):
        result = PRResult(id=101, url="https://github.com/owner/repo/pull/5", number=5)
        assert result.number == 5


# ═══════════════════════════════════════════════════════════════════════════
# 2. Protocol compliance
# ═══════════════════════════════════════════════════════════════════════════

class TestProtocolCompliance:
    def test_github_client_satisfies_protocol(self):
        assert isinstance(GitHubClient(token="tok", repository="owner/repo"), ForgeClient)

    def test_repository_must_be_owner_name(self):
        with pytest.raises(ForgeError):
            GitHubClient(token="tok", repository="just-a-name")

    def test_auth_header(self):
        client = GitHubClient(token="ghp_x", repository="owner/repo")
        assert client._client.headers["Authorization"] == "Bearer ghp_x"
        assert client._client.headers["X-GitHub-Api-Version"] == "2022-11-28"

    def test_no_token_no_auth_header(self):
        client = GitHubClient(token="", repository="owner/repo")
        assert "Authorization" not in client._client.headers

    def test_enterprise_graphql_url(self):
        client = GitHubClient(repository="o/r", base_url="https://ghe.example.com/api/v3")
        assert client._graphql_url == "https://ghe.example.com/api/graphql"


# ═══════════════════════════════════════════════════════════════════════════
# 3. GitHubClient: REST
# ═══════════════════════════════════════════════════════════════════════════

@respx.mock
class TestGitHubClient:

    def _client(self) -> GitHubClient:
        return GitHubClient(token="ghp_test_token", repository="owner/repo", sleep=lambda s: None)

    # --- issues ---

    def test_get_issue(self):
        respx.get(f"{REPO}/issues/42").mock(return_value=httpx.Response(200, json=_issue_json()))
        issue = self._client().get_issue(42)
        assert issue.number == 42
        assert issue.body == "It crashes on startup"
        assert issue.labels == ["bug"]
        assert issue.author == "alice"
        assert issue.created_at is not None
        assert issue.is_pull_request is False

    def test_get_issue_null_body(self):
        respx.get(f"{REPO}/issues/1").mock(
            return_value=httpx.Response(200, json=_issue_json(1, body=None, created_at=None))
        )
        assert self._client().get_issue(1).body == ""

    def test_get_issue_raises_on_404(self):
        respx.get(f"{REPO}/issues/999").mock(return_value=httpx.Response(404, json={"message": "Not Found"}))
        with pytest.raises(ForgeError) as exc_info:
            self._client().get_issue(999)
        assert exc_info.value.status_code == 404

    def test_get_comments(self):
        respx.get(f"{REPO}/issues/42/comments").mock(return_value=httpx.Response(200, json=[
            {"user": {"login": "bob"}, "body": "first", "created_at": "2024-01-01T00:00:00Z"},
            {"user": None, "body": None, "created_at": None},
        ]))
        comments = self._client().get_comments(42)
        assert [c.author for c in comments] == ["bob", ""]
        assert comments[1].body == ""

    def test_create_issue_payload(self):
        route = respx.post(f"{REPO}/issues").mock(return_value=httpx.Response(201, json=_issue_json(7, title="New")))
        issue = self._client().create_issue("New", "body", labels=["agent:develop"], milestone=3)
        assert issue.number == 7
        sent = json.loads(route.calls.last.request.content)
        assert sent == {"title": "New", "body": "body", "labels": ["agent:develop"], "milestone": 3}

    def test_create_issue_without_milestone(self):
        route = respx.post(f"{REPO}/issues").mock(return_value=httpx.Response(201, json=_issue_json(8)))
        self._client().create_issue("t", "b")
        sent = json.loads(route.calls.last.request.content)
        assert "milestone" not in sent
        assert sent["labels"] == []

    def test_create_comment(self):
        route = respx.post(f"{REPO}/issues/42/comments").mock(return_value=httpx.Response(201, json={"id": 1}))
        self._client().create_comment(42, "hello")
        assert json.loads(route.calls.last.request.content) == {"body": "hello"}

    def test_add_labels(self):
        route = respx.post(f"{REPO}/issues/42/labels").mock(return_value=httpx.Response(200, json=[]))
        self._client().add_labels(42, ["status:review"])
        assert json.loads(route.calls.last.request.content) == {"labels": ["status:review"]}

    def test_add_no_labels_makes_no_request(self):
        route = respx.post(f"{REPO}/issues/42/labels").mock(return_value=httpx.Response(200, json=[]))
        self._client().add_labels(42, [])
        assert not route.called

    def test_remove_label_encodes_name(self):
        route = respx.delete(url__regex=r".*/issues/42/labels/.*").mock(return_value=httpx.Response(200, json=[]))
        self._client().remove_label(42, "status:in-progress")
        assert route.called
        assert "status%3Ain-progress" in str(route.calls.last.request.url)

    def test_remove_missing_label_is_ignored(self):
        respx.delete(url__regex=r".*/issues/42/labels/.*").mock(
            return_value=httpx.Response(404, json={"message": "Label does not exist"})
        )
        self._client().remove_label(42, "agent:review")

    def test_remove_label_other_errors_raise(self):
        respx.delete(url__regex=r".*/issues/42/labels/.*").mock(return_value=httpx.Response(422, json={}))
        with pytest.raises(ForgeError) as exc_info:
            self._client().remove_label(42, "agent:review")
        assert exc_info.value.status_code == 422

    def test_list_open_issues_filters_prs(self):
        route = respx.get(f"{REPO}/issues").mock(return_value=httpx.Response(200, json=[
            _issue_json(1),
            _issue_json(2, pull_request={"url": "..."}),
        ]))
        issues = self._client().list_open_issues()
        assert [i.number for i in issues] == [1]
        assert b"state=open" in route.calls.last.request.url.query

    # --- pull requests ---

    def test_get_pull_request(self):
        respx.get(f"{REPO}/pulls/5").mock(return_value=httpx.Response(200, json={
            "number": 5, "title": "[Agent] Fix", "body": None, "html_url": "u",
            "user": {"login": "bot"}, "labels": [{"name": "agent:review"}],
            "head": {"ref": "agent/issue-4-fix"}, "base": {"ref": "main"}, "state": "open",
        }))
        pr = self._client().get_pull_request(5)
        assert pr.head_ref == "agent/issue-4-fix"
        assert pr.base_ref == "main"
        assert pr.body == ""
        assert pr.labels == ["agent:review"]

    def test_get_diff_files(self):
        respx.get(f"{REPO}/pulls/5/files").mock(return_value=httpx.Response(200, json=[
            {"filename": "a.py", "status": "modified", "patch": "@@", "additions": 1, "deletions": 2},
            {"filename": "b.png", "status": "added"},
        ]))
        files = self._client().get_diff_files(5)
        assert files[0].patch == "@@"
        assert files[1].patch is None

    def test_create_pull_request(self):
        route = respx.post(f"{REPO}/pulls").mock(return_value=httpx.Response(201, json={
            "id": 999, "number": 7, "html_url": "https://github.com/owner/repo/pull/7",
        }))
        result = self._client().create_pull_request(
            PRRequest(title="[Agent] X", body="Closes #1", head_branch="agent/issue-1-x")
        )
        assert result == PRResult(id=999, number=7, url="https://github.com/owner/repo/pull/7")
        sent = json.loads(route.calls.last.request.content)
        assert sent == {"title": "[Agent] X", "body": "Closes #1", "head": "agent/issue-1-x", "base": "main"}

    def test_create_review(self):
        route = respx.post(f"{REPO}/pulls/7/reviews").mock(return_value=httpx.Response(200, json={}))
        self._client().create_review(7, "LGTM", "APPROVE")
        assert json.loads(route.calls.last.request.content) == {"body": "LGTM", "event": "APPROVE"}

    def test_list_recent_pull_requests(self):
        route = respx.get(f"{REPO}/pulls").mock(return_value=httpx.Response(200, json=[]))
        assert self._client().list_recent_pull_requests(10) == []
        query = route.calls.last.request.url.query
        assert b"state=all" in query and b"per_page=10" in query and b"sort=updated" in query

    # --- contents ---

    def test_get_file_content_decodes_base64(self):
        route = respx.get(f"{REPO}/contents/src/app.py").mock(
            return_value=httpx.Response(200, json={"content": _b64("print('hi')\n"), "sha": "abc"})
        )
        assert self._client().get_file_content("src/app.py", ref="feature") == "print('hi')\n"
        assert b"ref=feature" in route.calls.last.request.url.query

    def test_get_file_content_missing(self):
        respx.get(f"{REPO}/contents/nope.md").mock(return_value=httpx.Response(404, json={}))
        assert self._client().get_file_content("nope.md") is None

    def test_get_file_content_directory(self):
        respx.get(f"{REPO}/contents/src").mock(return_value=httpx.Response(200, json=[{"name": "a.py"}]))
        with pytest.raises(ForgeError):
            self._client().get_file_content("src")

    def test_get_repository_tree_blobs_only(self):
        route = respx.get(f"{REPO}/git/trees/main").mock(return_value=httpx.Response(200, json={"tree": [
            {"path": "src", "type": "tree"},
            {"path": "src/app.py", "type": "blob"},
            {"path": "README.md", "type": "blob"},
        ]}))
        assert self._client().get_repository_tree() == ["src/app.py", "README.md"]
        assert b"recursive=1" in route.calls.last.request.url.query

    def test_create_branch(self):
        respx.get(f"{REPO}/git/ref/heads/main").mock(
            return_value=httpx.Response(200, json={"object": {"sha": "deadbeef"}})
        )
        route = respx.post(f"{REPO}/git/refs").mock(return_value=httpx.Response(201, json={}))
        self._client().create_branch("agent/issue-1-x")
        assert json.loads(route.calls.last.request.content) == {
            "ref": "refs/heads/agent/issue-1-x", "sha": "deadbeef",
        }

    def test_create_branch_already_exists(self):
        respx.get(f"{REPO}/git/ref/heads/main").mock(
            return_value=httpx.Response(200, json={"object": {"sha": "deadbeef"}})
        )
        respx.post(f"{REPO}/git/refs").mock(
            return_value=httpx.Response(422, json={"message": "Reference already exists"})
        )
        with pytest.raises(ForgeError) as exc_info:
            self._client().create_branch("agent/issue-1-x")
        assert "Reference already exists" in str(exc_info.value)
        assert exc_info.value.status_code == 422

    def test_update_existing_file_sends_sha(self):
        respx.get(f"{REPO}/contents/src/app.py").mock(
            return_value=httpx.Response(200, json={"content": _b64("old"), "sha": "abc123"})
        )
        route = respx.put(f"{REPO}/contents/src/app.py").mock(return_value=httpx.Response(200, json={}))
        self._client().create_or_update_file("src/app.py", "new", "feat: x", "agent/b")
        sent = json.loads(route.calls.last.request.content)
        assert sent["sha"] == "abc123"
        assert sent["branch"] == "agent/b"
        assert base64.b64decode(sent["content"]).decode() == "new"

    def test_create_new_file_has_no_sha(self):
        respx.get(f"{REPO}/contents/new.py").mock(return_value=httpx.Response(404, json={}))
        route = respx.put(f"{REPO}/contents/new.py").mock(return_value=httpx.Response(201, json={}))
        self._client().create_or_update_file("new.py", "x = 1\n", "feat: new", "main")
        assert "sha" not in json.loads(route.calls.last.request.content)

    def test_list_recent_commits(self):
        respx.get(f"{REPO}/commits").mock(return_value=httpx.Response(200, json=[
            {"sha": "0123456789abcdef", "commit": {
                "message": "feat: x\n\nbody", "author": {"name": "Ann", "date": "2024-01-01T00:00:00Z"},
            }},
        ]))
        commits = self._client().list_recent_commits(10)
        assert commits[0].sha == "0123456"
        assert commits[0].author == "Ann"

    # --- milestones ---

    def test_create_milestone(self):
        route = respx.post(f"{REPO}/milestones").mock(
            return_value=httpx.Response(201, json={"number": 3, "title": "M1", "description": None})
        )
        milestone = self._client().create_milestone("M1", "first")
        assert milestone.number == 3
        assert milestone.description == ""
        assert json.loads(route.calls.last.request.content) == {"title": "M1", "description": "first"}

    def test_list_milestones(self):
        respx.get(f"{REPO}/milestones").mock(return_value=httpx.Response(200, json=[
            {"number": 1, "title": "M1", "description": "d"},
        ]))
        assert [m.title for m in self._client().list_milestones()] == ["M1"]

    # --- rate limit ---

    def test_check_rate_limit_warns_when_low(self, caplog):
        caplog.set_level(logging.WARNING, logger="stagehand")
        respx.get(f"{GITHUB_API}/rate_limit").mock(return_value=httpx.Response(200, json={
            "resources": {"core": {"remaining": 42, "reset": 1700000000}},
        }))
        limit = self._client().check_rate_limit()
        assert limit.remaining == 42
        assert "Low rate limit" in caplog.text

    # --- retries ---

    def test_retries_server_errors(self):
        route = respx.get(f"{REPO}/issues/42").mock(side_effect=[
            httpx.Response(502),
            httpx.Response(429),
            httpx.Response(200, json=_issue_json()),
        ])
        assert self._client().get_issue(42).number == 42
        assert route.call_count == 3

    def test_gives_up_after_three_attempts(self):
        route = respx.get(f"{REPO}/issues/42").mock(return_value=httpx.Response(503))
        with pytest.raises(ForgeError) as exc_info:
            self._client().get_issue(42)
        assert exc_info.value.status_code == 503
        assert route.call_count == 3

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors_not_retried(self, status):
        route = respx.get(f"{REPO}/issues/42").mock(return_value=httpx.Response(status))
        with pytest.raises(ForgeError):
            self._client().get_issue(42)
        assert route.call_count == 1

    def test_network_error(self):
        respx.get(f"{REPO}/issues/42").mock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(ForgeError) as exc_info:
            self._client().get_issue(42)
        assert exc_info.value.status_code is None


# ═══════════════════════════════════════════════════════════════════════════
# 4. GitHubClient: discussions (GraphQL)
# ═══════════════════════════════════════════════════════════════════════════

@respx.mock
class TestGitHubDiscussions:

    def _client(self) -> GitHubClient:
        return GitHubClient(token="tok", repository="owner/repo", sleep=lambda s: None)

    def test_get_discussion(self):
        route = respx.post(f"{GITHUB_API}/graphql").mock(return_value=httpx.Response(200, json={"data": {
            "repository": {"discussion": {
                "id": "D_kw1", "number": 3, "title": "New app", "body": "Idea",
                "author": {"login": "alice"},
                "labels": {"nodes": [{"name": "idea"}]},
                "comments": {"nodes": [
                    {"id": "C1", "body": "More detail", "author": {"login": "bob"},
                     "createdAt": "2024-01-01T00:00:00Z"},
                ]},
            }},
        }}))
        discussion = self._client().get_discussion(3)
        assert discussion.node_id == "D_kw1"
        assert discussion.author == "alice"
        assert discussion.labels == ["idea"]
        assert discussion.comments[0].author == "bob"
        variables = json.loads(route.calls.last.request.content)["variables"]
        assert variables == {"owner": "owner", "repo": "repo", "number": 3}

    def test_missing_discussion(self):
        respx.post(f"{GITHUB_API}/graphql").mock(
            return_value=httpx.Response(200, json={"data": {"repository": {"discussion": None}}})
        )
        with pytest.raises(ForgeError) as exc_info:
            self._client().get_discussion(3)
        assert exc_info.value.status_code == 404

    def test_graphql_errors_raise(self):
        respx.post(f"{GITHUB_API}/graphql").mock(
            return_value=httpx.Response(200, json={"errors": [{"message": "Something went wrong"}]})
        )
        with pytest.raises(ForgeError, match="Something went wrong"):
            self._client().create_discussion_comment("D_kw1", "hi")

    def test_create_discussion_comment(self):
        route = respx.post(f"{GITHUB_API}/graphql").mock(
            return_value=httpx.Response(200, json={"data": {"addDiscussionComment": {"comment": {"id": "C9"}}}})
        )
        self._client().create_discussion_comment("D_kw1", "Plan posted")
        payload = json.loads(route.calls.last.request.content)
        assert "addDiscussionComment" in payload["query"]
        assert payload["variables"] == {"discussionId": "D_kw1", "body": "Plan posted"}

    def test_add_discussion_labels(self):
        def respond(request):
            payload = json.loads(request.content)
            if "addLabelsToLabelable" in payload["query"]:
                return httpx.Response(200, json={"data": {"addLabelsToLabelable": {"clientMutationId": None}}})
            return httpx.Response(200, json={"data": {"repository": {"label": {"id": "L_human"}}}})

        route = respx.post(f"{GITHUB_API}/graphql").mock(side_effect=respond)
        self._client().add_discussion_labels("D_kw1", ["human:needed"])
        mutation = json.loads(route.calls.last.request.content)
        assert mutation["variables"] == {"labelableId": "D_kw1", "labelIds": ["L_human"]}
        assert route.call_count == 2

    def test_add_unknown_discussion_label(self):
        respx.post(f"{GITHUB_API}/graphql").mock(
            return_value=httpx.Response(200, json={"data": {"repository": {"label": None}}})
        )
        with pytest.raises(ForgeError, match="does not exist"):
            self._client().add_discussion_labels("D_kw1", ["human:needed"])


# ═══════════════════════════════════════════════════════════════════════════
# 5. Factory
# ═══════════════════════════════════════════════════════════════════════════

class TestFactory:
    def test_from_config(self, monkeypatch):
        monkeypatch.setenv("GITHUB_REPOSITORY", "acme/widgets")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_cfg")
        reset_settings()
        client = get_forge_client()
        assert isinstance(client, GitHubClient)
        assert (client.owner, client.repo) == ("acme", "widgets")

    def test_explicit_repository(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_cfg")
        reset_settings()
        client = get_forge_client("other/repo")
        assert client.repo == "repo"

    def test_missing_repository(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_cfg")
        reset_settings()
        with pytest.raises(ForgeError, match="GITHUB_REPOSITORY"):
            get_forge_client()

    def test_missing_token(self, monkeypatch):
        monkeypatch.setenv("GITHUB_REPOSITORY", "acme/widgets")
        reset_settings()
        with pytest.raises(ForgeError, match="GITHUB_TOKEN"):
            get_forge_client()
