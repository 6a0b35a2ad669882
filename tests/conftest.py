import json
from collections.abc import Callable, Iterable
from typing import Any

import httpx
import pytest

from bkt.services.http.client import Transport
from bkt.services.http.options import RetryPolicy, TransportOptions

DC_BASE_URL = "https://bitbucket.example.com"
CLOUD_BASE_URL = "https://api.bitbucket.org/2.0"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeServer:
    """MockTransport handler that records requests and replays canned responses.

    Responses are consumed in order; the last one repeats once the queue is
    drained. A callable entry is invoked with the request.
    """

    def __init__(self, *responses: httpx.Response | Handler) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if not isinstance(response, httpx.Response):
            return response(request)
        # Fresh copy so a repeated response can be read again.
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    @property
    def hits(self) -> int:
        return len(self.requests)

    def json_bodies(self) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.requests]


def json_response(status: int, payload: Any, headers: Iterable[tuple[str, str]] | None = None) -> httpx.Response:
    return httpx.Response(status, json=payload, headers=list(headers or []))


def make_transport(
    server: Handler,
    *,
    base_url: str = DC_BASE_URL,
    retry: RetryPolicy | None = None,
    **options: Any,
) -> Transport:
    opts = TransportOptions(
        base_url=base_url,
        username=options.pop("username", "alice"),
        secret=options.pop("secret", "s3cr3t"),
        retry=retry or RetryPolicy(max_attempts=1),
        **options,
    )
    return Transport(opts, transport=httpx.MockTransport(server))


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record Context.sleep calls instead of waiting."""
    from bkt.services.http.context import Context

    delays: list[float] = []

    def fake_sleep(self: Context, seconds: float) -> None:
        self.raise_if_done()
        delays.append(seconds)

    monkeypatch.setattr(Context, "sleep", fake_sleep)
    return delays
