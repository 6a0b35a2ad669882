from typing import Annotated

import typer

from bkt.commands.common import LimitOption, OwnerOption, emit, get_factory, handle_errors, locate
from bkt.output import table
from bkt.services.bbcloud.client import CloudClient
from bkt.services.http.errors import InvalidInputError

app = typer.Typer(help="Repository commands", no_args_is_help=True)


@app.command("list")
@handle_errors
def repo_list(ctx: typer.Context, owner: OwnerOption = None, limit: LimitOption = 0) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        if isinstance(client, CloudClient):
            workspace = owner or target.context.workspace
            if not workspace:
                raise InvalidInputError.required("workspace")
            repos = client.list_repositories(workspace, limit=limit)
            rows = [(r.full_name or r.slug, "private" if r.is_private else "public", r.description or "") for r in repos]
        else:
            project = owner or target.context.project_key
            if not project:
                raise InvalidInputError.required("project")
            repos = client.list_repositories(project, limit=limit)
            rows = [(f"{r.project.key if r.project else project}/{r.slug}", r.name or "", r.state or "") for r in repos]
    emit(ctx, repos, lambda: table(rows, empty="No repositories found."))


@app.command("view")
@handle_errors
def repo_view(
    ctx: typer.Context,
    slug: Annotated[str | None, typer.Argument(help="Repository slug (defaults to the context repo)")] = None,
    owner: OwnerOption = None,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, slug = locate(target, owner, slug)
        repo = client.get_repository(owner, slug)
    if isinstance(client, CloudClient):
        lines = [f"{repo.full_name or repo.slug}", f"Private: {bool(repo.is_private)}"]
    else:
        lines = [f"{owner}/{repo.slug}", f"Name: {repo.name or ''}", f"State: {repo.state or ''}"]
    emit(ctx, repo, lambda: "\n".join(lines))


@app.command("create")
@handle_errors
def repo_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument()],
    owner: OwnerOption = None,
    description: Annotated[str, typer.Option("--description", "-d")] = "",
    public: Annotated[bool, typer.Option("--public/--private")] = False,
    default_branch: Annotated[str, typer.Option("--default-branch", help="Data Center only")] = "",
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        if isinstance(client, CloudClient):
            workspace = owner or target.context.workspace
            if not workspace:
                raise InvalidInputError.required("workspace")
            repo = client.create_repository(workspace, name, name=name, description=description, is_private=not public)
        else:
            project = owner or target.context.project_key
            if not project:
                raise InvalidInputError.required("project")
            repo = client.create_repository(
                project, name, description=description, public=public, default_branch=default_branch
            )
    emit(ctx, repo, lambda: f"Created repository {repo.slug}")
