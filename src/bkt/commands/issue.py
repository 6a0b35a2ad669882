"""Bitbucket Cloud issue tracker commands."""

from pathlib import Path
from typing import Annotated

import typer

from bkt.commands.common import LimitOption, OwnerOption, RepoOption, emit, get_factory, handle_errors, locate
from bkt.output import table
from bkt.services.bbcloud.issues import IssueListOptions
from bkt.services.http.fields import UNSET, Maybe

app = typer.Typer(help="Issue commands (Bitbucket Cloud)", no_args_is_help=True)
attachment_app = typer.Typer(help="Issue attachments", no_args_is_help=True)
app.add_typer(attachment_app, name="attachment")

IdArgument = Annotated[int, typer.Argument(help="Issue ID")]


def _maybe(value: str | None) -> Maybe[str]:
    return UNSET if value is None else value


@app.command("list")
@handle_errors
def issue_list(
    ctx: typer.Context,
    state: Annotated[str, typer.Option("--state", "-s")] = "",
    kind: Annotated[str, typer.Option("--kind")] = "",
    priority: Annotated[str, typer.Option("--priority")] = "",
    assignee: Annotated[str, typer.Option("--assignee")] = "",
    milestone: Annotated[str, typer.Option("--milestone")] = "",
    query: Annotated[str, typer.Option("--query", "-q", help="Raw BBQL appended to the filters")] = "",
    limit: LimitOption = 0,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).cloud_client()
    options = IssueListOptions(
        state=state,
        kind=kind,
        priority=priority,
        assignee=assignee,
        milestone=milestone,
        query=query,
        limit=limit,
    )
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        issues = client.list_issues(workspace, repo, options)
    rows = [(f"#{i.id}", i.title, i.state or "", i.kind or "", i.priority or "") for i in issues]
    emit(ctx, issues, lambda: table(rows, empty="No issues found."))


@app.command("view")
@handle_errors
def issue_view(ctx: typer.Context, issue_id: IdArgument, owner: OwnerOption = None, repo: RepoOption = None) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        issue = client.get_issue(workspace, repo, issue_id)

    def text() -> str:
        assignee = issue.assignee.display_name if issue.assignee else "unassigned"
        body = issue.content.raw if issue.content else ""
        return f"#{issue.id} {issue.title}\n{issue.state} {issue.kind} {issue.priority} ({assignee})\n\n{body}"

    emit(ctx, issue, text)


@app.command("create")
@handle_errors
def issue_create(
    ctx: typer.Context,
    title: Annotated[str, typer.Option("--title", "-t")],
    body: Annotated[str, typer.Option("--body", "-b")] = "",
    kind: Annotated[str, typer.Option("--kind")] = "",
    priority: Annotated[str, typer.Option("--priority")] = "",
    assignee: Annotated[str, typer.Option("--assignee")] = "",
    milestone: Annotated[str, typer.Option("--milestone")] = "",
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        issue = client.create_issue(
            workspace,
            repo,
            title=title,
            content=body,
            kind=kind,
            priority=priority,
            assignee=assignee,
            milestone=milestone,
        )
    emit(ctx, issue, lambda: f"Created issue #{issue.id}")


@app.command("edit")
@handle_errors
def issue_edit(
    ctx: typer.Context,
    issue_id: IdArgument,
    title: Annotated[str | None, typer.Option("--title", "-t")] = None,
    body: Annotated[str | None, typer.Option("--body", "-b")] = None,
    state: Annotated[str | None, typer.Option("--state", "-s")] = None,
    kind: Annotated[str | None, typer.Option("--kind")] = None,
    priority: Annotated[str | None, typer.Option("--priority")] = None,
    assignee: Annotated[str | None, typer.Option("--assignee", help='Pass "" to unassign')] = None,
    milestone: Annotated[str | None, typer.Option("--milestone", help='Pass "" to clear')] = None,
    component: Annotated[str | None, typer.Option("--component", help='Pass "" to clear')] = None,
    version: Annotated[str | None, typer.Option("--version", help='Pass "" to clear')] = None,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        issue = client.update_issue(
            workspace,
            repo,
            issue_id,
            title=_maybe(title),
            content=_maybe(body),
            state=_maybe(state),
            kind=_maybe(kind),
            priority=_maybe(priority),
            assignee=_maybe(assignee),
            milestone=_maybe(milestone),
            component=_maybe(component),
            version=_maybe(version),
        )
    emit(ctx, issue, lambda: f"Updated issue #{issue.id}")


@app.command("delete")
@handle_errors
def issue_delete(
    ctx: typer.Context,
    issue_id: IdArgument,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    if not yes:
        typer.confirm(f"Delete issue #{issue_id}?", abort=True)
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        client.delete_issue(workspace, repo, issue_id)
    typer.echo(f"Deleted issue #{issue_id}")


@app.command("comment")
@handle_errors
def issue_comment(
    ctx: typer.Context,
    issue_id: IdArgument,
    body: Annotated[str, typer.Option("--body", "-b")],
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        comment = client.create_issue_comment(workspace, repo, issue_id, body)
    emit(ctx, comment, lambda: f"Commented on issue #{issue_id}")


@attachment_app.command("list")
@handle_errors
def attachment_list(
    ctx: typer.Context, issue_id: IdArgument, owner: OwnerOption = None, repo: RepoOption = None
) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        attachments = client.list_issue_attachments(workspace, repo, issue_id)
    emit(ctx, attachments, lambda: "\n".join(a.name for a in attachments) or "No attachments.")


@attachment_app.command("upload")
@handle_errors
def attachment_upload(
    ctx: typer.Context,
    issue_id: IdArgument,
    path: Annotated[Path, typer.Argument(exists=True, dir_okay=False, readable=True)],
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport, path.open("rb") as reader:
        workspace, repo = locate(target, owner, repo)
        attachment = client.upload_issue_attachment(workspace, repo, issue_id, path.name, reader)
    emit(ctx, attachment, lambda: f"Uploaded {attachment.name}")


@attachment_app.command("download")
@handle_errors
def attachment_download(
    ctx: typer.Context,
    issue_id: IdArgument,
    name: Annotated[str, typer.Argument(help="Attachment file name")],
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Destination (defaults to NAME)")] = None,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    destination = output or Path(name)
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        with destination.open("wb") as sink:
            client.download_issue_attachment(workspace, repo, issue_id, name, sink)
    typer.echo(f"Saved {destination}")


@attachment_app.command("delete")
@handle_errors
def attachment_delete(
    ctx: typer.Context,
    issue_id: IdArgument,
    name: Annotated[str, typer.Argument(help="Attachment file name")],
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        client.delete_issue_attachment(workspace, repo, issue_id, name)
    typer.echo(f"Deleted attachment {name}")
