import gc
import time

import httpx
import pytest
from conftest import make_transport

from bkt.services.http.context import Context
from bkt.services.http.errors import RequestCancelled, RequestTimedOut


def test_cancelling_parent_cancels_live_children() -> None:
    parent = Context()
    child = parent.with_timeout(30)

    parent.cancel()

    assert child.cancelled
    with pytest.raises(RequestCancelled):
        child.raise_if_done()


def test_child_of_cancelled_parent_starts_cancelled() -> None:
    parent = Context()
    parent.cancel()

    assert parent.with_timeout(30).cancelled


def test_child_keeps_earlier_deadline() -> None:
    parent = Context().with_timeout(0.5)
    child = parent.with_timeout(60)

    assert child.deadline == parent.deadline


def test_sleep_past_deadline_times_out_without_waiting() -> None:
    ctx = Context().with_timeout(0.05)

    started = time.monotonic()
    with pytest.raises(RequestTimedOut):
        ctx.sleep(10)
    assert time.monotonic() - started < 1.0


def test_reused_context_does_not_accumulate_request_children() -> None:
    transport = make_transport(lambda request: httpx.Response(204))
    ctx = Context()

    for _ in range(50):
        transport.request("GET", "/x", ctx=ctx)
    gc.collect()

    assert len(ctx._children) == 0
