import json

import httpx
import pytest
from conftest import CLOUD_BASE_URL, FakeServer, json_response, make_transport

from bkt.services.bbcloud.client import CloudClient
from bkt.services.bbcloud.issues import IssueListOptions
from bkt.services.binding import bbql, braced_uuid, ensure_ref, query_string
from bkt.services.http.errors import APIError, InvalidInputError

ISSUE = {"id": 7, "title": "Crash on start", "state": "open", "kind": "bug"}
EMPTY_PAGE = {"values": []}


def make_client(server: FakeServer) -> CloudClient:
    return CloudClient(make_transport(server, base_url=CLOUD_BASE_URL))


def raw_query(request: httpx.Request) -> str:
    return request.url.query.decode()


def test_issue_filters_compose_bbql() -> None:
    server = FakeServer(json_response(200, EMPTY_PAGE))

    make_client(server).list_issues("ws", "repo", IssueListOptions(state="open", kind="bug"))

    request = server.requests[0]
    assert request.url.path == "/2.0/repositories/ws/repo/issues"
    assert "q=state%20%3D%20%22open%22%20AND%20kind%20%3D%20%22bug%22" in raw_query(request)
    assert request.url.params["pagelen"] == "30"


def test_state_all_is_not_a_filter() -> None:
    server = FakeServer(json_response(200, EMPTY_PAGE))

    make_client(server).list_issues("ws", "repo", IssueListOptions(state="ALL"))

    assert "state" not in raw_query(server.requests[0])


def test_pull_request_state_all_is_elided() -> None:
    server = FakeServer(json_response(200, EMPTY_PAGE))

    make_client(server).list_pull_requests("ws", "repo", state="all", mine="alice")

    query = raw_query(server.requests[0])
    assert "state" not in query
    assert server.requests[0].url.params["q"] == 'author.username = "alice"'


def test_update_issue_sends_nulls_for_cleared_relations() -> None:
    server = FakeServer(json_response(200, ISSUE))

    make_client(server).update_issue("ws", "repo", 7, title="Renamed", assignee=None, milestone="", priority="major")

    assert json.loads(server.requests[0].content) == {
        "title": "Renamed",
        "priority": "major",
        "assignee": None,
        "milestone": None,
    }


def test_update_issue_requires_a_change() -> None:
    server = FakeServer()

    with pytest.raises(InvalidInputError, match="nothing to update"):
        make_client(server).update_issue("ws", "repo", 7)
    assert server.hits == 0


def test_disabled_issue_tracker_is_not_found() -> None:
    server = FakeServer(json_response(404, {"type": "error", "error": {"message": "Repository has no issue tracker."}}))

    with pytest.raises(APIError) as excinfo:
        make_client(server).get_issue("ws", "repo", 7)
    assert excinfo.value.not_found


def test_create_issue_body() -> None:
    server = FakeServer(json_response(201, ISSUE))

    issue = make_client(server).create_issue("ws", "repo", title="Crash on start", content="Steps...", kind="bug", milestone="v1")

    assert issue.id == 7
    assert json.loads(server.requests[0].content) == {
        "title": "Crash on start",
        "content": {"raw": "Steps..."},
        "kind": "bug",
        "milestone": {"name": "v1"},
    }


def test_pipeline_uuid_is_braced_and_escaped() -> None:
    server = FakeServer(json_response(200, {"uuid": "{abc}", "build_number": 12}))

    pipeline = make_client(server).get_pipeline("ws", "repo", "abc")

    assert pipeline.build_number == 12
    assert server.requests[0].url.raw_path.endswith(b"/pipelines/%7Babc%7D")


def test_trigger_pipeline_body() -> None:
    server = FakeServer(json_response(201, {"uuid": "{p1}"}))

    make_client(server).trigger_pipeline("ws", "repo", "main", {"DEPLOY": "1"})

    assert json.loads(server.requests[0].content) == {
        "target": {"ref_type": "branch", "type": "pipeline_ref_target", "ref_name": "main"},
        "variables": [{"key": "DEPLOY", "value": "1", "secured": False}],
    }


def test_update_pull_request_drops_untouched_fields() -> None:
    server = FakeServer(json_response(200, {"id": 3, "title": "t"}))

    make_client(server).update_pull_request("ws", "repo", 3, description="new body")

    assert json.loads(server.requests[0].content) == {"description": "new body"}


def test_reopen_pull_request_puts_state() -> None:
    server = FakeServer(json_response(200, {"id": 3}))

    make_client(server).reopen_pull_request("ws", "repo", 3)

    request = server.requests[0]
    assert request.method == "PUT"
    assert json.loads(request.content) == {"state": "OPEN"}


def test_deployment_variable_paths() -> None:
    server = FakeServer(json_response(200, EMPTY_PAGE), httpx.Response(204))
    client = make_client(server)

    client.list_deployment_variables("ws", "repo", "env-1")
    client.delete_deployment_variable("ws", "repo", "{env-1}", "var-9")

    listed, deleted = server.requests
    assert listed.url.raw_path.startswith(
        b"/2.0/repositories/ws/repo/deployments_config/environments/%7Benv-1%7D/variables"
    )
    assert deleted.url.raw_path == b"/2.0/repositories/ws/repo/deployments_config/environments/%7Benv-1%7D/variables/%7Bvar-9%7D"


def test_workspace_variable_create() -> None:
    server = FakeServer(json_response(201, {"uuid": "{v}", "key": "TOKEN", "secured": True}))

    variable = make_client(server).create_workspace_variable("ws", "TOKEN", "xyz", secured=True)

    assert variable.secured
    assert server.requests[0].url.path == "/2.0/workspaces/ws/pipelines-config/variables"


def test_webhook_requires_events() -> None:
    with pytest.raises(InvalidInputError, match="at least one event"):
        make_client(FakeServer()).create_webhook("ws", "repo", url="https://ci.example.com/hook", events=[])


def test_binding_helpers() -> None:
    assert ensure_ref("main") == "refs/heads/main"
    assert ensure_ref("refs/tags/v1") == "refs/tags/v1"
    assert braced_uuid(" {abc} ") == "{abc}"
    assert query_string({"a": None, "b": "", "c": True, "d": "x y"}) == "?c=true&d=x%20y"
    assert query_string({}) == ""
    assert bbql(("title", 'say "hi"'), ("state", "all"), raw="priority > 2") == 'title = "say \\"hi\\"" AND priority > 2'
