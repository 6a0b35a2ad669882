from typing import Annotated

import typer

from bkt.commands.common import emit, get_factory, handle_errors
from bkt.config import Context
from bkt.output import table

app = typer.Typer(help="Manage named contexts", no_args_is_help=True)


@app.command("list")
@handle_errors
def list_contexts(ctx: typer.Context) -> None:
    config = get_factory(ctx).config
    data = [
        {"name": name, "active": name == config.active_context, **context.model_dump(exclude_none=True)}
        for name, context in sorted(config.contexts.items())
    ]

    def text() -> str:
        rows = [
            ("*" if item["active"] else " ", item["name"], item["host"], item.get("project_key") or item.get("workspace", ""))
            for item in data
        ]
        return table(rows, empty="No contexts configured. Run `bkt auth login`.")

    emit(ctx, data, text)


@app.command("use")
@handle_errors
def use_context(ctx: typer.Context, name: Annotated[str, typer.Argument()]) -> None:
    config = get_factory(ctx).config
    config.set_active_context(name)
    config.save()
    typer.echo(f"Switched to context {name}")


@app.command("create")
@handle_errors
def create_context(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument()],
    host: Annotated[str, typer.Option("--host", help="Host key of a logged-in host")],
    project: Annotated[str | None, typer.Option("--project")] = None,
    workspace: Annotated[str | None, typer.Option("--workspace")] = None,
    repo: Annotated[str | None, typer.Option("--repo")] = None,
    activate: Annotated[bool, typer.Option("--activate/--no-activate")] = False,
) -> None:
    config = get_factory(ctx).config
    config.get_host(host)
    config.set_context(name, Context(host=host, project_key=project, workspace=workspace, default_repo=repo))
    if activate:
        config.set_active_context(name)
    config.save()
    typer.echo(f"Created context {name}")


@app.command("delete")
@handle_errors
def delete_context(ctx: typer.Context, name: Annotated[str, typer.Argument()]) -> None:
    config = get_factory(ctx).config
    config.get_context(name)
    config.delete_context(name)
    config.save()
    typer.echo(f"Deleted context {name}")
