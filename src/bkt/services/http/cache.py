"""Conditional-GET response cache keyed by method, URL and auth identity."""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)

STREAM_EXTENSION = "bkt.stream"
CACHEABLE_METHODS = frozenset({"GET", "HEAD"})
EVICTING_STATUS = frozenset({404, 410})

# Hop-by-hop or body-shape headers that no longer describe a replayed body.
_DROPPED_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})

CacheKey = tuple[str, str, str]


@dataclass
class CacheEntry:
    etag: str | None
    last_modified: str | None
    body: bytes
    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    received_at: float = field(default_factory=time.time)


def auth_identity(request: httpx.Request) -> str:
    authorization = request.headers.get("Authorization", "")
    if not authorization:
        return ""
    return hashlib.sha256(authorization.encode()).hexdigest()[:16]


def cache_key(request: httpx.Request) -> CacheKey:
    return (request.method, str(request.url), auth_identity(request))


class ResponseCache:
    """Bounded LRU of validator-carrying responses."""

    def __init__(self, max_entries: int = 256) -> None:
        self._max_entries = max_entries
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: CacheKey) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def evict(self, key: CacheKey) -> None:
        with self._lock:
            self._entries.pop(key, None)


class CacheTransport(httpx.BaseTransport):
    """Adds validators to GET/HEAD requests and turns 304s into cache hits."""

    def __init__(self, inner: httpx.BaseTransport, cache: ResponseCache) -> None:
        self._inner = inner
        self._cache = cache

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if request.method not in CACHEABLE_METHODS or request.extensions.get(STREAM_EXTENSION):
            return self._inner.handle_request(request)

        key = cache_key(request)
        entry = self._cache.get(key)
        if entry is not None:
            if entry.etag and "If-None-Match" not in request.headers:
                request.headers["If-None-Match"] = entry.etag
            if entry.last_modified and "If-Modified-Since" not in request.headers:
                request.headers["If-Modified-Since"] = entry.last_modified

        response = self._inner.handle_request(request)

        if response.status_code == 304 and entry is not None:
            response.close()
            logger.debug("cache hit for %s %s", request.method, request.url)
            return self._replay(request, entry)

        if 200 <= response.status_code < 300:
            etag = response.headers.get("ETag")
            last_modified = response.headers.get("Last-Modified")
            if etag or last_modified:
                body = response.read()
                self._cache.put(
                    key,
                    CacheEntry(
                        etag=etag,
                        last_modified=last_modified,
                        body=body,
                        status_code=response.status_code,
                        headers=[
                            (name, value)
                            for name, value in response.headers.multi_items()
                            if name.lower() not in _DROPPED_HEADERS
                        ],
                    ),
                )
        elif response.status_code in EVICTING_STATUS:
            logger.debug("evicting cache entry for %s", request.url)
            self._cache.evict(key)

        return response

    @staticmethod
    def _replay(request: httpx.Request, entry: CacheEntry) -> httpx.Response:
        return httpx.Response(
            status_code=entry.status_code,
            headers=entry.headers,
            content=entry.body,
            request=request,
        )

    def close(self) -> None:
        self._inner.close()
