import io

import httpx
import pytest
from conftest import CLOUD_BASE_URL, FakeServer, json_response, make_transport

from bkt.services.bbcloud.client import CloudClient
from bkt.services.http.client import Transport
from bkt.services.http.errors import APIError, BitbucketError, InvalidInputError
from bkt.services.http.multipart import MultipartFile, encode_parts, is_seekable
from bkt.services.http.options import RetryPolicy, TransportOptions

RETRY_ONCE = RetryPolicy(max_attempts=2, initial_backoff=0.01, max_backoff=0.01, jitter=0)


class OneShotReader:
    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


def client_for(server: FakeServer) -> CloudClient:
    return CloudClient(make_transport(server, base_url=CLOUD_BASE_URL))


class StreamingServer(httpx.BaseTransport):
    """Drains the request stream on every attempt, as a socket would."""

    def __init__(self, *statuses: int) -> None:
        self.statuses = statuses
        self.bodies: list[bytes] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(b"".join(request.stream))
        status = self.statuses[min(len(self.bodies), len(self.statuses)) - 1]
        return httpx.Response(status, json=[{"name": "notes.txt"}] if status < 300 else {})


def upload_transport(server: StreamingServer) -> Transport:
    options = TransportOptions(base_url=CLOUD_BASE_URL, username="alice", secret="s3cr3t", retry=RETRY_ONCE)
    return Transport(options, transport=server)


def test_encode_parts_reports_rewindability() -> None:
    seekable = MultipartFile("files", "a.txt", io.BytesIO(b"a"))
    one_shot = MultipartFile("files", "b.txt", OneShotReader(b"b"))

    data, parts, rewindable = encode_parts([seekable], {"message": "hi"})
    assert data == {"message": "hi"}
    assert parts == [("files", ("a.txt", seekable.reader, "application/octet-stream"))]
    assert rewindable

    _, _, rewindable = encode_parts([seekable, one_shot])
    assert not rewindable
    assert not is_seekable(one_shot.reader)


def test_multipart_request_requires_files() -> None:
    transport = make_transport(FakeServer(), base_url=CLOUD_BASE_URL)
    with pytest.raises(InvalidInputError, match="files is required"):
        transport.build_multipart_request("POST", "/upload", [])


def test_upload_attachment_returns_first_record() -> None:
    server = FakeServer(json_response(201, [{"name": "notes.txt", "links": {}}, {"name": "other.txt"}]))

    attachment = client_for(server).upload_issue_attachment("ws", "repo", 7, "notes.txt", io.BytesIO(b"hello world"))

    assert attachment.name == "notes.txt"
    request = server.requests[0]
    assert request.url.path == "/2.0/repositories/ws/repo/issues/7/attachments"
    assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
    assert b'name="files"; filename="notes.txt"' in request.content
    assert b"hello world" in request.content


def test_upload_with_empty_reply_is_an_error() -> None:
    server = FakeServer(json_response(201, []))

    with pytest.raises(BitbucketError, match="no attachment returned"):
        client_for(server).upload_issue_attachment("ws", "repo", 7, "notes.txt", io.BytesIO(b"x"))


def test_download_attachment_is_byte_identical() -> None:
    payload = bytes(range(256)) * 16
    server = FakeServer(httpx.Response(200, content=payload, headers={"Content-Type": "application/octet-stream"}))
    sink = io.BytesIO()

    client_for(server).download_issue_attachment("ws", "repo", 7, "dump file.bin", sink)

    assert sink.getvalue() == payload
    request = server.requests[0]
    assert request.headers["Accept"] == "*/*"
    assert request.url.raw_path.endswith(b"/attachments/dump%20file.bin")


def test_pipeline_log_streams_to_sink() -> None:
    server = FakeServer(httpx.Response(200, content=b"+ make test\nok\n"))
    sink = io.BytesIO()

    client_for(server).get_pipeline_log("ws", "repo", "pipe-1", "{step-1}", sink)

    assert sink.getvalue() == b"+ make test\nok\n"
    assert server.requests[0].url.raw_path.endswith(b"/pipelines/%7Bpipe-1%7D/steps/%7Bstep-1%7D/log")
    assert server.requests[0].headers["Accept"] == "application/octet-stream"


def test_seekable_upload_is_rewound_and_replayed() -> None:
    server = StreamingServer(503, 201)
    transport = upload_transport(server)
    files = [MultipartFile("files", "notes.txt", io.BytesIO(b"hello world"))]

    request = transport.build_multipart_request("POST", "/upload", files, idempotent=True)
    transport.do(request, list)

    assert len(server.bodies) == 2
    assert [body.count(b"hello world") for body in server.bodies] == [1, 1]


def test_one_shot_upload_is_not_replayed() -> None:
    server = StreamingServer(503, 201)
    transport = upload_transport(server)
    files = [MultipartFile("files", "notes.txt", OneShotReader(b"hello world"))]

    request = transport.build_multipart_request("POST", "/upload", files, idempotent=True)
    with pytest.raises(APIError) as excinfo:
        transport.do(request, list)

    assert excinfo.value.status_code == 503
    assert len(server.bodies) == 1
