import io
import random
import threading
import time
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

import httpx
import pytest
from conftest import FakeServer, json_response, make_transport

from bkt.services.http.context import Context
from bkt.services.http.errors import APIError, RequestCancelled, RequestTimedOut
from bkt.services.http.options import RetryPolicy
from bkt.services.http.retry import backoff_delay, parse_retry_after

FAST = RetryPolicy(max_attempts=3, initial_backoff=0.01, max_backoff=0.01, jitter=0)


def test_retries_5xx_then_succeeds() -> None:
    server = FakeServer(httpx.Response(500), json_response(200, {"ok": True}))
    transport = make_transport(server, retry=FAST)

    started = time.monotonic()
    result = transport.request("GET", "/rest/api/1.0/projects", target=dict)
    elapsed = time.monotonic() - started

    assert result == {"ok": True}
    assert server.hits == 2
    assert elapsed >= 0.01


def test_exhausted_retries_surface_last_response(no_sleep: list[float]) -> None:
    server = FakeServer(json_response(503, {"errors": [{"message": "maintenance"}]}))
    transport = make_transport(server, retry=FAST)

    with pytest.raises(APIError) as excinfo:
        transport.request("GET", "/x")

    assert excinfo.value.status_code == 503
    assert str(excinfo.value) == "503 Service Unavailable: maintenance"
    assert server.hits == 3
    assert len(no_sleep) == 2


def test_post_is_not_retried_by_default(no_sleep: list[float]) -> None:
    server = FakeServer(httpx.Response(503), httpx.Response(200))
    transport = make_transport(server, retry=FAST)

    with pytest.raises(APIError):
        transport.request("POST", "/rest/api/1.0/projects", {"key": "PRJ"})
    assert server.hits == 1


def test_idempotent_post_is_retried(no_sleep: list[float]) -> None:
    server = FakeServer(httpx.Response(503), httpx.Response(204))
    transport = make_transport(server, retry=FAST)

    transport.request("POST", "/pull-requests/1/approve", idempotent=True)

    assert server.hits == 2
    assert server.requests[0].method == "POST"


def test_one_shot_body_is_not_replayed(no_sleep: list[float]) -> None:
    server = FakeServer(httpx.Response(503), httpx.Response(204))
    transport = make_transport(server, retry=FAST)

    with pytest.raises(APIError):
        transport.request("PUT", "/upload", io.BytesIO(b"payload"))
    assert server.hits == 1


def test_non_retryable_status_returns_immediately(no_sleep: list[float]) -> None:
    server = FakeServer(httpx.Response(400))
    transport = make_transport(server, retry=FAST)

    with pytest.raises(APIError):
        transport.request("GET", "/x")
    assert server.hits == 1
    assert no_sleep == []


def test_connect_error_is_retried(no_sleep: list[float]) -> None:
    calls: list[int] = []

    def flaky(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            raise httpx.ConnectError("reset", request=request)
        return json_response(200, {"ok": True})

    transport = make_transport(flaky, retry=FAST)

    assert transport.request("GET", "/x", target=dict) == {"ok": True}
    assert len(calls) == 2


def test_retry_after_extends_backoff(no_sleep: list[float]) -> None:
    server = FakeServer(httpx.Response(429, headers={"Retry-After": "3"}), httpx.Response(204))
    transport = make_transport(server, retry=FAST)

    transport.request("GET", "/x")

    assert no_sleep == [3.0]


def test_retry_after_beyond_deadline_times_out() -> None:
    server = FakeServer(httpx.Response(503, headers={"Retry-After": "30"}))
    transport = make_transport(server, retry=FAST)
    ctx = Context.background().with_timeout(0.5)

    with pytest.raises(RequestTimedOut):
        transport.request("GET", "/x", ctx=ctx)
    assert server.hits == 1


def test_backoff_grows_and_caps() -> None:
    policy = RetryPolicy(initial_backoff=0.25, max_backoff=1.0, backoff_multiplier=2.0, jitter=0)

    assert backoff_delay(policy, 1) == 0.25
    assert backoff_delay(policy, 2) == 0.5
    assert backoff_delay(policy, 5) == 1.0


def test_backoff_jitter_stays_in_band() -> None:
    policy = RetryPolicy(initial_backoff=1.0, max_backoff=1.0, jitter=0.25)
    rng = random.Random(7)

    delays = [backoff_delay(policy, 1, rng) for _ in range(50)]

    assert all(0.75 <= d <= 1.25 for d in delays)


def test_parse_retry_after() -> None:
    assert parse_retry_after("2") == 2.0
    assert parse_retry_after(None) is None
    assert parse_retry_after("soon") is None
    past = format_datetime(datetime.now(tz=UTC) - timedelta(minutes=5), usegmt=True)
    assert parse_retry_after(past) == 0.0
    future = format_datetime(datetime.now(tz=UTC) + timedelta(seconds=120), usegmt=True)
    assert 100 < parse_retry_after(future) <= 120


def test_policy_rejects_inverted_backoff() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(initial_backoff=10, max_backoff=1)


def test_layers_compose_rate_limit_cache_retry(no_sleep: list[float]) -> None:
    etag = '"v1"'
    server = FakeServer(
        json_response(200, {"n": 1}, headers=[("ETag", etag)]),
        json_response(500, {}, headers=[("X-RateLimit-Remaining", "7")]),
        httpx.Response(304, headers=[("ETag", etag)]),
    )
    transport = make_transport(server, retry=FAST, enable_cache=True)

    transport.request("GET", "/x", target=dict)
    again = transport.request("GET", "/x", target=dict)

    # The retried 500 reached the tracker; the 304 never reached retry.
    assert again == {"n": 1}
    assert server.hits == 3
    assert len(no_sleep) == 1
    assert transport.rate_limit_state().remaining == 7
    assert server.requests[2].headers["If-None-Match"] == etag


def test_cancel_during_backoff_stops_at_once() -> None:
    server = FakeServer(httpx.Response(500))
    transport = make_transport(server, retry=RetryPolicy(max_attempts=3, initial_backoff=5, max_backoff=5, jitter=0))
    ctx = Context()
    timer = threading.Timer(0.2, ctx.cancel)

    started = time.monotonic()
    timer.start()
    try:
        with pytest.raises(RequestCancelled):
            transport.request("GET", "/x", ctx=ctx)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 2.0
    assert server.hits == 1
