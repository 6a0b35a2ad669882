"""Authenticated HTTP transport shared by the Data Center and Cloud bindings.

Requests go through a stack of httpx transport decorators:

    RetryTransport -> CacheTransport -> RateLimitTransport -> network

Rate-limit observation sits innermost so it sees every response, 304s and
retried 5xx included. The cache turns 304s into hits before retry sees them.
Retry is outermost and only sees real failures.
"""

import base64
import json
import logging
from collections.abc import Iterator, Mapping
from functools import lru_cache
from typing import Any, BinaryIO, Self
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from bkt.services.http.cache import STREAM_EXTENSION, CacheTransport, ResponseCache
from bkt.services.http.context import Context
from bkt.services.http.errors import (
    APIError,
    BitbucketError,
    DecodeError,
    InvalidInputError,
    RequestTimedOut,
    TransportFailure,
)
from bkt.services.http.fields import drop_unset
from bkt.services.http.multipart import MultipartFile, encode_parts
from bkt.services.http.options import TransportOptions
from bkt.services.http.ratelimit import CONTEXT_EXTENSION, RateLimit, RateLimitTracker, RateLimitTransport
from bkt.services.http.retry import IDEMPOTENT_EXTENSION, REWINDABLE_EXTENSION, RetryTransport

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
CHUNK_SIZE = 64 * 1024


@lru_cache(maxsize=128)
def _adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def _is_sink(target: Any) -> bool:
    return not isinstance(target, type) and callable(getattr(target, "write", None))


def _read_chunks(reader: BinaryIO) -> Iterator[bytes]:
    while chunk := reader.read(CHUNK_SIZE):
        yield chunk


class Transport:
    def __init__(
        self,
        options: TransportOptions,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.options = options
        self._tracker = RateLimitTracker(options.dialect)
        self._cache = ResponseCache(options.cache_size) if options.enable_cache else None

        chain: httpx.BaseTransport = RateLimitTransport(transport or httpx.HTTPTransport(), self._tracker)
        if self._cache is not None:
            chain = CacheTransport(chain, self._cache)
        chain = RetryTransport(chain, options.retry)

        hooks: dict[str, list[Any]] = {"request": [], "response": []}
        if options.debug:
            hooks["request"].append(self._trace_request)
            hooks["response"].append(self._trace_response)

        self._client = httpx.Client(
            transport=chain,
            follow_redirects=True,
            timeout=options.timeout,
            event_hooks=hooks,
        )

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @property
    def base_url(self) -> str:
        return self.options.base_url

    def rate_limit_state(self) -> RateLimit:
        return self._tracker.snapshot()

    def resolve(self, path: str) -> str:
        if not path or not path.strip():
            raise InvalidInputError.required("path")
        parts = urlsplit(path)
        if parts.scheme or parts.netloc:
            raise InvalidInputError(f"absolute URL not allowed: {path}")
        return f"{self.options.base_url}/{path.lstrip('/')}"

    def build_request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        ctx: Context | None = None,
        accept: str | None = None,
        headers: Mapping[str, str] | None = None,
        idempotent: bool | None = None,
    ) -> httpx.Request:
        url = self.resolve(path)
        request_headers = self._base_headers(accept)
        content: bytes | Iterator[bytes] | None = None
        rewindable = True

        if body is None:
            pass
        elif isinstance(body, (bytes, bytearray)):
            content = bytes(body)
        elif callable(getattr(body, "read", None)):
            content = _read_chunks(body)
            rewindable = False
        else:
            if isinstance(body, BaseModel):
                payload = body.model_dump(mode="json", by_alias=True, exclude_unset=True)
            else:
                payload = drop_unset(body)
            content = json.dumps(payload).encode("utf-8")
            request_headers["Content-Type"] = JSON_CONTENT_TYPE

        if headers:
            request_headers.update(headers)

        request = self._client.build_request(
            method.upper(),
            url,
            content=content,
            headers=request_headers,
            extensions=self._extensions(ctx, idempotent, rewindable),
        )
        return request

    def build_multipart_request(
        self,
        method: str,
        path: str,
        files: list[MultipartFile],
        fields: Mapping[str, str] | None = None,
        *,
        ctx: Context | None = None,
        idempotent: bool | None = None,
    ) -> httpx.Request:
        if not files:
            raise InvalidInputError.required("files")
        url = self.resolve(path)
        data, parts, rewindable = encode_parts(files, fields)
        return self._client.build_request(
            method.upper(),
            url,
            data=data,
            files=parts,
            headers=self._base_headers(None),
            extensions=self._extensions(ctx, idempotent, rewindable),
        )

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        target: Any = None,
        **kwargs: Any,
    ) -> Any:
        return self.do(self.build_request(method, path, body, **kwargs), target)

    def do(self, request: httpx.Request, target: Any = None) -> Any:
        """Send `request` and decode the response into `target`.

        `target` may be None (body discarded), a byte sink with `write`
        (body streamed verbatim) or a type understood by pydantic.

        Sinks are written as chunks arrive. If the connection drops mid-body
        the call raises TransportFailure, and the sink keeps whatever was
        written before the failure; callers needing all-or-nothing output
        should stream into a temporary file.
        """
        sink = target is not None and _is_sink(target)
        if sink:
            request.extensions[STREAM_EXTENSION] = True

        try:
            response = self._client.send(request, stream=True)
        except BitbucketError:
            raise
        except httpx.TimeoutException as exc:
            raise RequestTimedOut() from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(exc) from exc

        try:
            if not response.is_success:
                body = response.read()
                try:
                    payload = json.loads(body) if body else None
                except ValueError:
                    payload = None
                raise APIError.from_body(response.status_code, body, payload)

            if target is None:
                response.read()
                return None
            if sink:
                for chunk in response.iter_bytes():
                    target.write(chunk)
                return None

            body = response.read()
        except httpx.TimeoutException as exc:
            raise RequestTimedOut() from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(exc) from exc
        finally:
            response.close()

        if not body.strip():
            return None
        try:
            return _adapter(target).validate_json(body)
        except ValidationError as exc:
            raise DecodeError(exc) from exc

    def _base_headers(self, accept: str | None) -> dict[str, str]:
        headers = {
            "Accept": accept or JSON_CONTENT_TYPE,
            "User-Agent": self.options.user_agent,
        }
        if self.options.has_credentials:
            secret = self.options.secret.get_secret_value()
            token = base64.b64encode(f"{self.options.username}:{secret}".encode()).decode("ascii")
            headers["Authorization"] = f"Basic {token}"
        return headers

    def _extensions(self, ctx: Context | None, idempotent: bool | None, rewindable: bool) -> dict[str, Any]:
        ctx = ctx or Context.background()
        if ctx.deadline is None:
            ctx = ctx.with_timeout(self.options.timeout)
        extensions: dict[str, Any] = {CONTEXT_EXTENSION: ctx, REWINDABLE_EXTENSION: rewindable}
        if idempotent:
            extensions[IDEMPOTENT_EXTENSION] = True
        return extensions

    @staticmethod
    def _trace_request(request: httpx.Request) -> None:
        logger.debug("--> %s %s", request.method, request.url)

    @staticmethod
    def _trace_response(response: httpx.Response) -> None:
        logger.debug("<-- %d %s %s", response.status_code, response.request.method, response.request.url)
