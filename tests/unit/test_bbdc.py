import json

import httpx
import pytest
from conftest import FakeServer, json_response, make_transport

from bkt.models.dc import LoggingConfig
from bkt.services.bbdc.client import DataCenterClient
from bkt.services.http.errors import APIError, InvalidInputError

REPO = {"slug": "repo", "project": {"key": "PRJ"}}
PR = {
    "id": 10,
    "version": 3,
    "title": "Old title",
    "description": "old body",
    "state": "OPEN",
    "fromRef": {"id": "refs/heads/feature-branch", "displayId": "feature-branch", "repository": REPO},
    "toRef": {"id": "refs/heads/main", "displayId": "main", "repository": REPO},
    "reviewers": [{"user": {"name": "alice"}, "status": "UNAPPROVED"}],
}


def make_client(server: FakeServer) -> DataCenterClient:
    return DataCenterClient(make_transport(server))


def body_of(request: httpx.Request) -> dict:
    return json.loads(request.content)


def test_pull_request_paths_uppercase_project_key() -> None:
    server = FakeServer(json_response(200, {"values": [PR], "isLastPage": True}))

    prs = make_client(server).list_pull_requests("prj", "repo", state="merged")

    assert prs[0].id == 10
    request = server.requests[0]
    assert request.url.path == "/rest/api/1.0/projects/PRJ/repos/repo/pull-requests"
    assert request.url.params["state"] == "MERGED"


def test_update_pull_request_round_trips_current_values() -> None:
    server = FakeServer(json_response(200, PR), json_response(200, {**PR, "version": 4, "title": "New title"}))

    updated = make_client(server).update_pull_request("PRJ", "repo", 10, title="New title")

    assert updated.version == 4
    get, put = server.requests
    assert get.method == "GET"
    assert put.method == "PUT"
    body = body_of(put)
    assert body["version"] == 3
    assert body["title"] == "New title"
    assert body["description"] == "old body"
    assert body["reviewers"] == [{"user": {"name": "alice"}}]
    assert body["fromRef"]["id"] == "refs/heads/feature-branch"
    assert body["toRef"]["id"] == "refs/heads/main"


def test_update_pull_request_replaces_reviewers_and_target() -> None:
    server = FakeServer(json_response(200, PR), json_response(200, PR))

    make_client(server).update_pull_request(
        "PRJ", "repo", 10, reviewers=["bob", "carol"], target_branch="release/2.0", description=None
    )

    body = body_of(server.requests[1])
    assert body["reviewers"] == [{"user": {"name": "bob"}}, {"user": {"name": "carol"}}]
    assert body["toRef"]["id"] == "refs/heads/release/2.0"
    assert body["description"] is None
    assert body["title"] == "Old title"


def test_stale_version_surfaces_conflict() -> None:
    server = FakeServer(
        json_response(200, PR),
        json_response(409, {"errors": [{"message": "You are attempting to modify a pull request based on out-of-date information."}]}),
    )

    with pytest.raises(APIError) as excinfo:
        make_client(server).update_pull_request("PRJ", "repo", 10, title="x")

    assert excinfo.value.conflict
    assert "out-of-date" in str(excinfo.value)


def test_decline_sends_version() -> None:
    server = FakeServer(httpx.Response(200, json={}))

    make_client(server).decline_pull_request("PRJ", "repo", 10, 2)

    request = server.requests[0]
    assert request.method == "POST"
    assert request.url.path.endswith("/pull-requests/10/decline")
    assert body_of(request) == {"version": 2}


def test_merge_body() -> None:
    server = FakeServer(json_response(200, PR))

    make_client(server).merge_pull_request("PRJ", "repo", 10, 3, message="ship it", strategy="squash")

    assert body_of(server.requests[0]) == {
        "version": 3,
        "message": "ship it",
        "closeSourceBranch": False,
        "mergeStrategyId": "squash",
    }


def test_create_pull_request_qualifies_refs() -> None:
    server = FakeServer(json_response(201, PR))

    make_client(server).create_pull_request(
        "prj", "repo", title="Add thing", source_branch="feature-branch", target_branch="refs/heads/main", reviewers=["bob"]
    )

    body = body_of(server.requests[0])
    assert body["fromRef"] == {"id": "refs/heads/feature-branch", "repository": {"slug": "repo", "project": {"key": "PRJ"}}}
    assert body["toRef"]["id"] == "refs/heads/main"
    assert body["reviewers"] == [{"user": {"name": "bob"}}]


def test_delete_branch_uses_branch_utils() -> None:
    server = FakeServer(httpx.Response(204))

    make_client(server).delete_branch("PRJ", "repo", "feature-branch")

    request = server.requests[0]
    assert request.method == "DELETE"
    assert request.url.path == "/rest/branch-utils/1.0/projects/PRJ/repos/repo/branches"
    assert body_of(request) == {"name": "refs/heads/feature-branch", "dryRun": False}


def test_create_repository_sets_default_branch() -> None:
    server = FakeServer(json_response(201, REPO), httpx.Response(204))

    repo = make_client(server).create_repository("prj", "repo", default_branch="develop")

    assert repo.slug == "repo"
    create, default = server.requests
    assert body_of(create)["scmId"] == "git"
    assert default.method == "PUT"
    assert default.url.path == "/rest/api/1.0/projects/PRJ/repos/repo/settings/default-branch"
    assert body_of(default) == {"id": "refs/heads/develop"}


def test_branch_restriction_body() -> None:
    server = FakeServer(json_response(200, {"id": 5, "type": "no-deletes", "matcher": {"id": "main", "displayId": "main"}}))

    restriction = make_client(server).create_branch_restriction(
        "PRJ", "repo", type="NO_DELETES", matcher_id="main", users=["alice"]
    )

    assert restriction.id == 5
    request = server.requests[0]
    assert request.url.path == "/rest/branch-permissions/2.0/projects/PRJ/repos/repo/restrictions"
    assert body_of(request) == {
        "type": "no-deletes",
        "matcher": {"id": "main", "displayId": "main", "type": {"id": "BRANCH"}},
        "users": ["alice"],
    }


def test_grant_permission_uses_query_string() -> None:
    server = FakeServer(httpx.Response(204))

    make_client(server).grant_repo_permission("PRJ", "repo", "alice smith", "repo_write")

    request = server.requests[0]
    assert request.method == "PUT"
    assert request.url.params["name"] == "alice smith"
    assert request.url.params["permission"] == "REPO_WRITE"
    assert b"alice%20smith" in request.url.query


def test_diff_stat_aggregates_change_pages() -> None:
    server = FakeServer(
        json_response(
            200,
            {
                "values": [
                    {"path": {"toString": "a.py"}, "stats": {"additions": 3, "deletions": 1}},
                    {"path": {"toString": "b.py"}, "stats": {"additions": 2, "deletions": 0}},
                ],
                "isLastPage": False,
                "nextPageStart": 2,
            },
        ),
        json_response(200, {"values": [{"path": {"toString": "c.py"}}], "isLastPage": True}),
    )

    stat = make_client(server).pull_request_diff_stat("PRJ", "repo", 10)

    assert (stat.files, stat.additions, stat.deletions) == (3, 5, 1)
    assert server.requests[0].url.params["withCounts"] == "true"


def test_logging_config_uses_async_alias() -> None:
    server = FakeServer(json_response(200, {"level": "DEBUG", "async": True}))

    config = make_client(server).update_logging_config(LoggingConfig(level="DEBUG", async_=True))

    assert config.async_ is True
    assert body_of(server.requests[0]) == {"level": "DEBUG", "async": True}


def test_missing_locator_is_rejected_before_any_request() -> None:
    server = FakeServer()

    with pytest.raises(InvalidInputError, match="project_key is required"):
        make_client(server).get_repository(" ", "repo")
    with pytest.raises(InvalidInputError, match="pull_request_id must be positive"):
        make_client(server).get_pull_request("PRJ", "repo", 0)
    assert server.hits == 0
