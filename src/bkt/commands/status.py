import typer

from bkt.commands.auth import describe_rate_limit, rate_limit_data
from bkt.commands.common import emit, get_factory, handle_errors

app = typer.Typer(help="Server and client status", no_args_is_help=True)


@app.command("rate-limit")
@handle_errors
def rate_limit(ctx: typer.Context) -> None:
    """Ping the active host and show the last rate-limit snapshot."""
    client, _ = get_factory(ctx).client()
    with client.transport:
        client.ping()
        state = client.rate_limit()
    emit(ctx, rate_limit_data(state), lambda: f"{describe_rate_limit(state)}\nSource: {state.source}")
