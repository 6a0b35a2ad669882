"""Rate-limit header tracking and the adaptive throttle."""

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import httpx

from bkt.services.http.context import Context

logger = logging.getLogger(__name__)

CONTEXT_EXTENSION = "bkt.context"
MAX_THROTTLE_SECONDS = 5.0

_LIMIT_HEADERS = ("X-RateLimit-Limit", "X-Attempt-RateLimit-Limit", "X-RateLimit-Capacity")
_REMAINING_HEADERS = ("X-RateLimit-Remaining", "X-Attempt-RateLimit-Remaining", "X-RateLimit-Available")
_RESET_HEADERS = ("X-RateLimit-Reset", "X-Attempt-RateLimit-Reset")


@dataclass(frozen=True)
class RateLimit:
    limit: int = 0
    # None until a response actually reports it.
    remaining: int | None = None
    reset: datetime | None = None
    source: str = "none"


def _first_int(headers: httpx.Headers, names: tuple[str, ...]) -> int | None:
    for name in names:
        raw = headers.get(name)
        if raw is None:
            continue
        try:
            return int(raw.strip())
        except ValueError:
            logger.debug("Non-numeric %s header: %r", name, raw)
    return None


def parse_reset(raw: str) -> datetime | None:
    """Parse a reset header given as epoch seconds, ISO-8601 or an HTTP-date."""
    raw = raw.strip()
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(float(raw), tz=UTC)
    except (ValueError, OverflowError, OSError):
        pass
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            logger.debug("Unparseable rate-limit reset header: %r", raw)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class RateLimitTracker:
    def __init__(self, source: str | None = None) -> None:
        self._source = source or "none"
        self._lock = threading.Lock()
        self._state = RateLimit(source=self._source)

    def snapshot(self) -> RateLimit:
        with self._lock:
            return self._state

    def update(self, headers: httpx.Headers) -> bool:
        limit = _first_int(headers, _LIMIT_HEADERS)
        remaining = _first_int(headers, _REMAINING_HEADERS)
        reset = None
        for name in _RESET_HEADERS:
            if name in headers:
                reset = parse_reset(headers[name])
                break
        if limit is None and remaining is None and reset is None:
            return False

        with self._lock:
            previous = self._state
            self._state = RateLimit(
                limit=limit if limit is not None else previous.limit,
                remaining=remaining if remaining is not None else previous.remaining,
                reset=reset if reset is not None else previous.reset,
                source=self._source,
            )
        return True

    def throttle_delay(self, now: datetime | None = None) -> float:
        state = self.snapshot()
        if state.remaining is None or state.remaining > 1 or state.reset is None:
            return 0.0
        now = now or datetime.now(tz=UTC)
        wait = (state.reset - now).total_seconds()
        if wait <= 0:
            return 0.0
        return min(wait, MAX_THROTTLE_SECONDS)


class RateLimitTransport(httpx.BaseTransport):
    """Innermost decorator: records rate-limit headers from every response."""

    def __init__(self, inner: httpx.BaseTransport, tracker: RateLimitTracker) -> None:
        self._inner = inner
        self._tracker = tracker

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        response = self._inner.handle_request(request)
        if self._tracker.update(response.headers):
            delay = self._tracker.throttle_delay()
            if delay > 0:
                logger.warning("Rate limit nearly exhausted, pausing %.1fs", delay)
                ctx: Context = request.extensions.get(CONTEXT_EXTENSION) or Context.background()
                try:
                    ctx.sleep(delay)
                except BaseException:
                    response.close()
                    raise
        return response

    def close(self) -> None:
        self._inner.close()
