"""Outermost transport decorator: replays idempotent requests on transient failures."""

import logging
import random
import time
from email.utils import parsedate_to_datetime

import httpx

from bkt.services.http.context import Context
from bkt.services.http.errors import RequestTimedOut
from bkt.services.http.options import RetryPolicy
from bkt.services.http.ratelimit import CONTEXT_EXTENSION

logger = logging.getLogger(__name__)

IDEMPOTENT_EXTENSION = "bkt.idempotent"
REWINDABLE_EXTENSION = "bkt.rewindable"
REPLAYABLE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
    httpx.TimeoutException,
)


def backoff_delay(policy: RetryPolicy, attempt: int, rng: random.Random | None = None) -> float:
    """Delay before attempt `attempt + 1`, where `attempt` counts from 1."""
    base = min(policy.max_backoff, policy.initial_backoff * policy.backoff_multiplier ** (attempt - 1))
    if policy.jitter:
        uniform = (rng or random).uniform
        base *= uniform(1 - policy.jitter, 1 + policy.jitter)
    return max(0.0, base)


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, when.timestamp() - time.time())


def is_replayable(request: httpx.Request) -> bool:
    if not request.extensions.get(REWINDABLE_EXTENSION, True):
        return False
    if request.method in REPLAYABLE_METHODS:
        return True
    return bool(request.extensions.get(IDEMPOTENT_EXTENSION))


class RetryTransport(httpx.BaseTransport):
    def __init__(self, inner: httpx.BaseTransport, policy: RetryPolicy, rng: random.Random | None = None) -> None:
        self._inner = inner
        self._policy = policy
        self._rng = rng

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        ctx: Context = request.extensions.get(CONTEXT_EXTENSION) or Context.background()
        replayable = is_replayable(request)
        attempt = 0
        while True:
            attempt += 1
            ctx.raise_if_done()
            _clamp_timeout(request, ctx)
            try:
                response = self._inner.handle_request(request)
            except TRANSIENT_ERRORS as exc:
                if ctx.expired:
                    raise RequestTimedOut() from exc
                if not replayable or attempt >= self._policy.max_attempts:
                    raise
                delay = backoff_delay(self._policy, attempt, self._rng)
                logger.warning(
                    "%s %s failed (%s). Retrying in %.2fs (attempt %d/%d)",
                    request.method,
                    request.url,
                    exc.__class__.__name__,
                    delay,
                    attempt,
                    self._policy.max_attempts,
                )
                ctx.sleep(delay)
                continue

            if (
                response.status_code not in self._policy.retryable_status
                or not replayable
                or attempt >= self._policy.max_attempts
            ):
                return response

            delay = backoff_delay(self._policy, attempt, self._rng)
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            if retry_after is not None:
                delay = max(delay, retry_after)
            response.close()
            logger.warning(
                "%s %s returned %d. Retrying in %.2fs (attempt %d/%d)",
                request.method,
                request.url,
                response.status_code,
                delay,
                attempt,
                self._policy.max_attempts,
            )
            ctx.sleep(delay)

    def close(self) -> None:
        self._inner.close()


def _clamp_timeout(request: httpx.Request, ctx: Context) -> None:
    remaining = ctx.remaining()
    if remaining is None:
        return
    timeout = dict(request.extensions.get("timeout") or {})
    for phase in ("connect", "read", "write", "pool"):
        current = timeout.get(phase)
        timeout[phase] = remaining if current is None else min(current, remaining)
    request.extensions["timeout"] = timeout
