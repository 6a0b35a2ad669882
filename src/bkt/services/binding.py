"""Helpers shared by the Data Center and Cloud bindings."""

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlencode

from bkt.services.http.errors import InvalidInputError

BRANCH_PREFIX = "refs/heads/"


def escape(segment: str | int) -> str:
    return quote(str(segment), safe="")


def require(**fields: Any) -> None:
    for name, value in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidInputError.required(name)


def require_positive(**fields: int) -> None:
    for name, value in fields.items():
        if value is None or value <= 0:
            raise InvalidInputError(f"{name} must be positive")


def ensure_ref(name: str) -> str:
    name = name.strip()
    if name.startswith("refs/"):
        return name
    return BRANCH_PREFIX + name


def query_string(params: Mapping[str, Any]) -> str:
    """Encode non-empty params with `%20` for spaces, as Bitbucket expects."""
    pairs = [(k, str(v).lower() if isinstance(v, bool) else str(v)) for k, v in params.items() if v not in (None, "")]
    if not pairs:
        return ""
    return "?" + urlencode(pairs, quote_via=quote)


def bbql(*pieces: tuple[str, str | None], raw: str | None = None) -> str:
    """Compose a BBQL expression from `(field, value)` pairs.

    Blank values are skipped and `state = "all"` is dropped, since "all"
    means no filter.
    """
    clauses = []
    for field, value in pieces:
        if value is None or not value.strip():
            continue
        value = value.strip()
        if field == "state" and value.lower() == "all":
            continue
        clauses.append(f'{field} = "{_bbql_quote(value)}"')
    if raw and raw.strip():
        clauses.append(raw.strip())
    return " AND ".join(clauses)


def _bbql_quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def braced_uuid(uuid: str) -> str:
    """Bitbucket Cloud UUIDs travel wrapped in braces, e.g. `{1234-...}`."""
    return "{" + uuid.strip().strip("{}") + "}"
