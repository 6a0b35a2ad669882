import pytest
from conftest import CLOUD_BASE_URL, FakeServer, json_response, make_transport

from bkt.models.cloud import CloudPage
from bkt.models.dc import DCPage, Repository
from bkt.services.bbcloud.client import CloudClient
from bkt.services.bbdc.client import DataCenterClient
from bkt.services.http.errors import BitbucketError
from bkt.services.http.pagination import PageWalker, cloud_decoder, dc_decoder, page_size, with_query


def cloud_client(server: FakeServer) -> CloudClient:
    return CloudClient(make_transport(server, base_url=CLOUD_BASE_URL))


def dc_page(values: list[dict], *, last: bool, next_start: int | None = None) -> dict:
    page = {"values": values, "size": len(values), "isLastPage": last, "start": 0}
    if next_start is not None:
        page["nextPageStart"] = next_start
    return page


def test_cloud_follows_next_links() -> None:
    server = FakeServer(
        json_response(
            200,
            {
                "values": [{"uuid": "1"}, {"uuid": "2"}],
                "next": f"{CLOUD_BASE_URL}/repositories/ws/repo/pipelines/?page=2&pagelen=20",
            },
        ),
        json_response(200, {"values": [{"uuid": "3"}]}),
    )

    pipelines = cloud_client(server).list_pipelines("ws", "repo")

    assert [p.uuid for p in pipelines] == ["1", "2", "3"]
    assert server.hits == 2
    first, second = server.requests
    assert first.url.path == "/2.0/repositories/ws/repo/pipelines/"
    assert first.url.params["pagelen"] == "20"
    assert first.url.params["sort"] == "-created_on"
    assert second.url.path == "/2.0/repositories/ws/repo/pipelines/"
    assert second.url.params["page"] == "2"


def test_cloud_rejects_foreign_next_link() -> None:
    server = FakeServer(
        json_response(200, {"values": [{"slug": "a"}], "next": "https://evil.example.com/2.0/repositories/ws?page=2"})
    )

    with pytest.raises(BitbucketError, match="does not match host"):
        cloud_client(server).list_repositories("ws")
    assert server.hits == 1


def test_cloud_rejects_next_link_outside_base_path() -> None:
    decode = cloud_decoder(CLOUD_BASE_URL)
    page = CloudPage(values=[])
    page_with_next = CloudPage(values=[], next="https://api.bitbucket.org/1.0/repositories?page=2")

    assert decode(page, "/x").next_path is None
    with pytest.raises(BitbucketError, match="outside"):
        decode(page_with_next, "/x")


def test_cloud_limit_sets_page_length_and_stops_early() -> None:
    server = FakeServer(
        json_response(
            200,
            {"values": [{"slug": "a"}, {"slug": "b"}, {"slug": "c"}], "next": f"{CLOUD_BASE_URL}/repositories/ws?page=2"},
        )
    )

    repos = cloud_client(server).list_repositories("ws", limit=2)

    assert [r.slug for r in repos] == ["a", "b"]
    assert server.hits == 1
    assert server.requests[0].url.params["pagelen"] == "2"


def test_dc_limit_truncates_without_second_request() -> None:
    server = FakeServer(
        json_response(200, dc_page([{"slug": "a"}, {"slug": "b"}, {"slug": "c"}], last=False, next_start=3))
    )
    client = DataCenterClient(make_transport(server))

    repos = client.list_repositories("prj", limit=2)

    assert [r.slug for r in repos] == ["a", "b"]
    assert server.hits == 1
    request = server.requests[0]
    assert request.url.path == "/rest/api/1.0/projects/PRJ/repos"
    assert request.url.params["limit"] == "2"
    assert request.url.params["start"] == "0"


def test_dc_walks_until_last_page() -> None:
    server = FakeServer(
        json_response(200, dc_page([{"slug": "a"}, {"slug": "b"}], last=False, next_start=2)),
        json_response(200, dc_page([{"slug": "c"}], last=True)),
    )
    client = DataCenterClient(make_transport(server))

    repos = client.list_repositories("PRJ")

    assert [r.slug for r in repos] == ["a", "b", "c"]
    assert server.hits == 2
    assert server.requests[1].url.params["start"] == "2"
    assert server.requests[1].url.params["limit"] == "25"


def test_dc_stops_on_empty_page() -> None:
    server = FakeServer(json_response(200, dc_page([], last=False, next_start=25)))
    client = DataCenterClient(make_transport(server))

    assert client.list_repositories("PRJ") == []
    assert server.hits == 1


def test_loop_is_detected() -> None:
    server = FakeServer(json_response(200, dc_page([{"slug": "a"}], last=False, next_start=0)))
    walker = PageWalker(make_transport(server), DCPage[Repository], dc_decoder)

    with pytest.raises(BitbucketError, match="loop"):
        walker.walk("/rest/api/1.0/repos?limit=25&start=0")


def test_with_query_replaces_existing_keys() -> None:
    assert with_query("/repos?limit=25&start=0", start="50") == "/repos?limit=25&start=50"
    assert with_query("/repos", start="0") == "/repos?start=0"


@pytest.mark.parametrize(
    ("limit", "default", "maximum", "expected"),
    [(0, 25, 25, 25), (10, 25, 25, 10), (40, 25, 25, 25), (30, 20, 100, 30), (80, 20, 50, 20), (-1, 20, 100, 20)],
)
def test_page_size(limit: int, default: int, maximum: int, expected: int) -> None:
    assert page_size(limit, default, maximum) == expected
