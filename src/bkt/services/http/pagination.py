"""Pagination driver shared by the Data Center and Cloud bindings.

Both dialects are flattened through a `PageWalker`. The walker fetches a page,
hands it to a dialect-specific decoder and follows the path the decoder
returns until there is none or the caller's limit is met.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from bkt.services.http.context import Context
from bkt.services.http.errors import BitbucketError

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P")


@dataclass
class Page(Generic[T]):
    values: list[T]
    next_path: str | None = None


PageDecoder = Callable[[Any, str], Page[T]]


class PageWalker(Generic[P, T]):
    def __init__(self, transport: Any, page_type: type[P], decoder: Callable[[P, str], Page[T]]) -> None:
        self._transport = transport
        self._page_type = page_type
        self._decoder = decoder

    def walk(self, first_path: str, *, limit: int = 0, ctx: Context | None = None) -> list[T]:
        records: list[T] = []
        path: str | None = first_path
        seen: set[str] = set()
        while path:
            if path in seen:
                raise BitbucketError(f"pagination loop detected at {path}")
            seen.add(path)

            request = self._transport.build_request("GET", path, ctx=ctx)
            page = self._transport.do(request, self._page_type)
            if page is None:
                break
            decoded = self._decoder(page, path)
            records.extend(decoded.values)
            if limit > 0 and len(records) >= limit:
                return records[:limit]
            path = decoded.next_path
        return records


def cloud_decoder(base_url: str) -> Callable[[Any, str], Page[Any]]:
    """Follow Cloud's absolute `next` link, refusing links to other hosts."""
    base = urlsplit(base_url)
    base_path = base.path.rstrip("/")

    def decode(page: Any, current_path: str) -> Page[Any]:
        next_url = getattr(page, "next", None)
        if not next_url:
            return Page(list(page.values), None)
        target = urlsplit(next_url)
        if (target.scheme, target.netloc) != (base.scheme, base.netloc):
            logger.warning("Rejecting pagination link outside %s: %.100s", base_url, next_url)
            raise BitbucketError(f"pagination link {next_url!r} does not match host {base.netloc!r}")
        path = target.path
        if base_path:
            if path != base_path and not path.startswith(base_path + "/"):
                raise BitbucketError(f"pagination link {next_url!r} is outside {base_url!r}")
            path = path[len(base_path):]
        if target.query:
            path = f"{path}?{target.query}"
        return Page(list(page.values), path or "/")

    return decode


def dc_decoder(page: Any, current_path: str) -> Page[Any]:
    """Advance `start` to `nextPageStart` until the server reports the last page."""
    values = list(page.values)
    if page.isLastPage or not values or page.nextPageStart is None:
        return Page(values, None)
    return Page(values, with_query(current_path, start=str(page.nextPageStart)))


def with_query(path: str, **params: str) -> str:
    """Return `path` with `params` set in its query string, replacing existing keys."""
    parts = urlsplit(path)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit(("", "", parts.path, urlencode(query, quote_via=quote), ""))


def page_size(limit: int, default: int, maximum: int) -> int:
    """Use the caller's limit as page size when it fits under `maximum`."""
    if 0 < limit <= maximum:
        return limit
    return default
