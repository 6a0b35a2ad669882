import logging
from dataclasses import asdict
from enum import StrEnum
from typing import Annotated
from urllib.parse import urlsplit

import typer
from pydantic import SecretStr

from bkt.commands.common import emit, get_factory, handle_errors
from bkt.config import Context, Host
from bkt.services.bbcloud.client import DEFAULT_BASE_URL, CloudClient
from bkt.services.http.ratelimit import RateLimit

logger = logging.getLogger(__name__)

app = typer.Typer(help="Authentication commands", no_args_is_help=True)


class HostKind(StrEnum):
    dc = "dc"
    cloud = "cloud"


def describe_rate_limit(state: RateLimit) -> str:
    if not state.limit and state.remaining is None and state.reset is None:
        return "Rate limit: not reported"
    reset = state.reset.isoformat() if state.reset else "unknown"
    remaining = "?" if state.remaining is None else state.remaining
    return f"Rate limit: {remaining}/{state.limit} remaining (resets {reset})"


def rate_limit_data(state: RateLimit) -> dict[str, object]:
    data = asdict(state)
    data["reset"] = state.reset.isoformat() if state.reset else None
    return data


@app.command("login")
@handle_errors
def login(
    ctx: typer.Context,
    kind: Annotated[HostKind, typer.Option("--kind", help="Host kind")] = HostKind.dc,
    host: Annotated[str | None, typer.Option("--host", help="Base URL (defaults to Bitbucket Cloud)")] = None,
    username: Annotated[str | None, typer.Option("--username", "-u")] = None,
    token: Annotated[str | None, typer.Option("--token", help="Access token or app password")] = None,
    context_name: Annotated[str | None, typer.Option("--context-name", help="Name of the context to create")] = None,
    project: Annotated[str | None, typer.Option("--project", help="Default project key (DC)")] = None,
    workspace: Annotated[str | None, typer.Option("--workspace", help="Default workspace (Cloud)")] = None,
    repo: Annotated[str | None, typer.Option("--repo", help="Default repository slug")] = None,
) -> None:
    """Verify credentials and store a host plus a context pointing at it."""
    factory = get_factory(ctx)
    if kind is HostKind.dc and not host:
        raise typer.BadParameter("--host is required for Data Center", param_hint="--host")
    base_url = host or DEFAULT_BASE_URL
    entry = Host(kind=kind.value, base_url=base_url, username=username)

    secret = SecretStr(token) if token else factory.token_for(entry)
    if not secret.get_secret_value():
        secret = SecretStr(typer.prompt("Token", hide_input=True))

    client = factory.client_for(entry, secret)
    try:
        if isinstance(client, CloudClient):
            account = client.current_user()
            who = account.display_name or account.username or username or ""
        elif username:
            who = client.current_user(username).displayName or username
        else:
            client.ping()
            who = "token"
    finally:
        client.close()

    host_key = urlsplit(entry.base_url).netloc
    name = context_name or host_key
    config = factory.config
    config.set_host(host_key, entry)
    config.set_context(
        name,
        Context(host=host_key, project_key=project, workspace=workspace, default_repo=repo),
    )
    config.set_active_context(name)
    config.save()
    logger.info("stored host %s and context %s", host_key, name)
    typer.echo(f"Logged in to {base_url} as {who}")
    typer.echo(f"Active context: {name}")


@app.command("status")
@handle_errors
def status(ctx: typer.Context) -> None:
    factory = get_factory(ctx)
    client, target = factory.client()
    try:
        if isinstance(client, CloudClient):
            account = client.current_user()
            summary = f"Logged in to {target.host.base_url} as {account.display_name or account.username}"
        else:
            props = client.ping()
            summary = f"Connected to {props.displayName or 'Bitbucket'} {props.version or ''} at {target.host.base_url}"
        state = client.rate_limit()
    finally:
        client.close()

    data = {"context": target.name, "host": target.host.base_url, "rate_limit": rate_limit_data(state)}
    emit(ctx, data, lambda: f"{summary.rstrip()}\nContext: {target.name}\n{describe_rate_limit(state)}")


@app.command("logout")
@handle_errors
def logout(ctx: typer.Context, host: Annotated[str, typer.Argument(help="Host key as shown by `context list`")]) -> None:
    config = get_factory(ctx).config
    config.get_host(host)
    removed = config.delete_host(host)
    config.save()
    typer.echo(f"Removed host {host}")
    for name in removed:
        typer.echo(f"Removed context {name}")
