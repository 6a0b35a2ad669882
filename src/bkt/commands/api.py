from typing import Annotated, Any

import typer

from bkt.commands.common import emit, get_factory, handle_errors, parse_pairs
from bkt.services.binding import query_string


@handle_errors
def api(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Path relative to the host's API root, e.g. /user")],
    method: Annotated[str, typer.Option("--method", "-X")] = "GET",
    fields: Annotated[list[str] | None, typer.Option("--field", "-f", help="KEY=VALUE, repeatable")] = None,
) -> None:
    """Send an authenticated request and print the JSON response."""
    params = parse_pairs(fields, "--field")
    method = method.upper()
    body = None
    if method in ("GET", "HEAD", "DELETE"):
        query = query_string(params)
        if query:
            path += "&" + query[1:] if "?" in path else query
    elif params:
        body = params

    client, _ = get_factory(ctx).client()
    with client.transport as transport:
        result = transport.request(method, path, body, target=Any)
    if result is not None:
        emit(ctx, result)
