from typing import Annotated

import typer

from bkt.commands.common import (
    LimitOption,
    OwnerOption,
    RepoOption,
    binary_stdout,
    emit,
    get_factory,
    handle_errors,
    locate,
)
from bkt.models import cloud, dc
from bkt.output import table
from bkt.services.bbcloud.client import CloudClient
from bkt.services.http.fields import UNSET

app = typer.Typer(help="Pull request commands", no_args_is_help=True)

IdArgument = Annotated[int, typer.Argument(help="Pull request ID")]
DeleteSourceOption = Annotated[
    bool, typer.Option("--delete-source", help="Delete the source branch afterwards (Data Center only)")
]


def _dc_row(pr: dc.PullRequest) -> tuple[str, ...]:
    source = (pr.fromRef.displayId or pr.fromRef.id) if pr.fromRef else ""
    target = (pr.toRef.displayId or pr.toRef.id) if pr.toRef else ""
    return (f"#{pr.id}", pr.title, f"{source} -> {target}", str(pr.state or ""))


def _cloud_row(pr: cloud.PullRequest) -> tuple[str, ...]:
    source = pr.source.branch.name if pr.source and pr.source.branch else ""
    target = pr.destination.branch.name if pr.destination and pr.destination.branch else ""
    return (f"#{pr.id}", pr.title, f"{source} -> {target}", pr.state or "")


def _require_dc(client: object, flag: str) -> None:
    if isinstance(client, CloudClient):
        raise typer.BadParameter("only supported for Data Center", param_hint=flag)


@app.command("list")
@handle_errors
def pr_list(
    ctx: typer.Context,
    owner: OwnerOption = None,
    repo: RepoOption = None,
    state: Annotated[str, typer.Option("--state", "-s", help="OPEN, MERGED, DECLINED or ALL")] = "OPEN",
    author: Annotated[str, typer.Option("--author", help="Author username (Cloud only)")] = "",
    limit: LimitOption = 0,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        if isinstance(client, CloudClient):
            prs = client.list_pull_requests(owner, repo, state=state, mine=author, limit=limit)
            rows = [_cloud_row(pr) for pr in prs]
        else:
            prs = client.list_pull_requests(owner, repo, state=state, limit=limit)
            rows = [_dc_row(pr) for pr in prs]
    emit(ctx, prs, lambda: table(rows, empty="No pull requests found."))


@app.command("view")
@handle_errors
def pr_view(ctx: typer.Context, pr_id: IdArgument, owner: OwnerOption = None, repo: RepoOption = None) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        pr = client.get_pull_request(owner, repo, pr_id)
    row = _cloud_row(pr) if isinstance(pr, cloud.PullRequest) else _dc_row(pr)
    emit(ctx, pr, lambda: "\n".join([f"{row[0]} {row[1]}", f"{row[2]} [{row[3]}]", "", pr.description or ""]))


@app.command("create")
@handle_errors
def pr_create(
    ctx: typer.Context,
    title: Annotated[str, typer.Option("--title", "-t")],
    source: Annotated[str, typer.Option("--source", "-H", help="Source branch")],
    destination: Annotated[str, typer.Option("--target", "-B", help="Target branch")],
    body: Annotated[str, typer.Option("--body", "-b")] = "",
    reviewers: Annotated[list[str] | None, typer.Option("--reviewer")] = None,
    close_source: Annotated[bool, typer.Option("--close-source")] = False,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        if isinstance(client, CloudClient):
            pr = client.create_pull_request(
                owner,
                repo,
                title=title,
                source=source,
                destination=destination,
                description=body,
                close_source=close_source,
                reviewers=reviewers,
            )
        else:
            pr = client.create_pull_request(
                owner,
                repo,
                title=title,
                source_branch=source,
                target_branch=destination,
                description=body,
                reviewers=reviewers,
                close_source=close_source,
            )
    emit(ctx, pr, lambda: f"Created pull request #{pr.id}")


@app.command("edit")
@handle_errors
def pr_edit(
    ctx: typer.Context,
    pr_id: IdArgument,
    title: Annotated[str | None, typer.Option("--title", "-t")] = None,
    body: Annotated[str | None, typer.Option("--body", "-b")] = None,
    destination: Annotated[str, typer.Option("--target", "-B", help="Retarget (Data Center only)")] = "",
    reviewers: Annotated[list[str] | None, typer.Option("--reviewer", help="Replace reviewers (Data Center only)")] = None,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        title_arg = UNSET if title is None else title
        body_arg = UNSET if body is None else body
        if isinstance(client, CloudClient):
            if destination or reviewers:
                raise typer.BadParameter("--target and --reviewer are only supported for Data Center")
            pr = client.update_pull_request(owner, repo, pr_id, title=title_arg, description=body_arg)
        else:
            pr = client.update_pull_request(
                owner,
                repo,
                pr_id,
                title=title_arg,
                description=body_arg,
                target_branch=destination,
                reviewers=UNSET if reviewers is None else reviewers,
            )
    emit(ctx, pr, lambda: f"Updated pull request #{pr.id}")


@app.command("approve")
@handle_errors
def pr_approve(ctx: typer.Context, pr_id: IdArgument, owner: OwnerOption = None, repo: RepoOption = None) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        client.approve_pull_request(owner, repo, pr_id)
    typer.echo(f"Approved pull request #{pr_id}")


@app.command("merge")
@handle_errors
def pr_merge(
    ctx: typer.Context,
    pr_id: IdArgument,
    message: Annotated[str, typer.Option("--message", "-m")] = "",
    strategy: Annotated[str, typer.Option("--strategy", help="Merge strategy id")] = "",
    close_source: Annotated[bool, typer.Option("--close-source")] = False,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        if isinstance(client, CloudClient):
            client.merge_pull_request(
                owner, repo, pr_id, message=message, strategy=strategy, close_source_branch=close_source or UNSET
            )
        else:
            current = client.get_pull_request(owner, repo, pr_id)
            client.merge_pull_request(
                owner,
                repo,
                pr_id,
                current.version,
                message=message,
                strategy=strategy,
                close_source_branch=close_source,
            )
    typer.echo(f"Merged pull request #{pr_id}")


@app.command("decline")
@handle_errors
def pr_decline(
    ctx: typer.Context,
    pr_id: IdArgument,
    delete_source: DeleteSourceOption = False,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        if isinstance(client, CloudClient):
            if delete_source:
                _require_dc(client, "--delete-source")
            client.decline_pull_request(owner, repo, pr_id)
            typer.echo(f"Declined pull request #{pr_id}")
            return

        current = client.get_pull_request(owner, repo, pr_id)
        client.decline_pull_request(owner, repo, pr_id, current.version)
        typer.echo(f"Declined pull request #{pr_id}")
        if not delete_source or current.fromRef is None:
            return

        # The source branch may live in a fork.
        source_repo = current.fromRef.repository
        source_project = source_repo.project.key if source_repo and source_repo.project else owner
        source_slug = source_repo.slug if source_repo else repo
        branch = current.fromRef.displayId or current.fromRef.id
        client.delete_branch(source_project, source_slug, current.fromRef.id)
        typer.echo(f"Deleted source branch {branch}")


@app.command("reopen")
@handle_errors
def pr_reopen(ctx: typer.Context, pr_id: IdArgument, owner: OwnerOption = None, repo: RepoOption = None) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        if isinstance(client, CloudClient):
            client.reopen_pull_request(owner, repo, pr_id)
        else:
            current = client.get_pull_request(owner, repo, pr_id)
            client.reopen_pull_request(owner, repo, pr_id, current.version)
    typer.echo(f"Reopened pull request #{pr_id}")


@app.command("comment")
@handle_errors
def pr_comment(
    ctx: typer.Context,
    pr_id: IdArgument,
    body: Annotated[str, typer.Option("--body", "-b")],
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        client.comment_pull_request(owner, repo, pr_id, body)
    typer.echo(f"Commented on pull request #{pr_id}")


@app.command("diff")
@handle_errors
def pr_diff(
    ctx: typer.Context,
    pr_id: IdArgument,
    stat: Annotated[bool, typer.Option("--stat", help="Summarise changes (Data Center only)")] = False,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).client()
    with client.transport:
        owner, repo = locate(target, owner, repo)
        if stat:
            _require_dc(client, "--stat")
            summary = client.pull_request_diff_stat(owner, repo, pr_id)
            emit(
                ctx,
                summary,
                lambda: f"{summary.files} files changed, {summary.additions} insertions(+), {summary.deletions} deletions(-)",
            )
            return
        client.pull_request_diff(owner, repo, pr_id, binary_stdout())
