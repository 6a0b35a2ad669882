from importlib.metadata import PackageNotFoundError, version
from typing import Annotated

import typer
from pydantic import SecretStr

from bkt.commands import api, auth, context, issue, pipeline, pr, repo, status
from bkt.commands.common import get_factory
from bkt.logging import configure_logging

app = typer.Typer(help="Bitbucket Data Center and Cloud CLI", no_args_is_help=True)

app.add_typer(auth.app, name="auth")
app.add_typer(context.app, name="context")
app.add_typer(repo.app, name="repo")
app.add_typer(pr.app, name="pr")
app.add_typer(issue.app, name="issue")
app.add_typer(pipeline.app, name="pipeline")
app.add_typer(status.app, name="status")
app.command("api")(api.api)


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        typer.echo(f"bkt {version('bkt-cli')}")
    except PackageNotFoundError:
        typer.echo("bkt (not installed)")
    raise typer.Exit()


@app.callback()
def root(
    ctx: typer.Context,
    context_name: Annotated[str | None, typer.Option("--context", "-c", help="Context to use for this command")] = None,
    token: Annotated[str | None, typer.Option("--token", help="Access token (overrides BKT_TOKEN)")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON")] = False,
    yaml_output: Annotated[bool, typer.Option("--yaml", help="Print YAML")] = False,
    debug: Annotated[bool, typer.Option("--debug", help="Trace HTTP requests on stderr")] = False,
    show_version: Annotated[
        bool, typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit")
    ] = False,
) -> None:
    if json_output and yaml_output:
        raise typer.BadParameter("--json and --yaml are mutually exclusive")

    factory = get_factory(ctx)
    factory.context_override = context_name
    if token:
        factory.token_override = SecretStr(token)
    factory.output_format = "json" if json_output else "yaml" if yaml_output else "text"
    factory.debug = factory.debug or debug

    settings = factory.settings
    configure_logging(settings.log_level, json_output=settings.log_json, http_debug=factory.debug)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
