"""Bitbucket Cloud pipeline commands."""

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
    parse_pairs,
)
from bkt.models.cloud import Pipeline
from bkt.output import table
from bkt.services.bbcloud.client import CloudClient

app = typer.Typer(help="Pipeline commands (Bitbucket Cloud)", no_args_is_help=True)

PipelineArgument = Annotated[str, typer.Argument(help="Pipeline UUID or build number")]


def _state(pipeline: Pipeline) -> str:
    if pipeline.state is None:
        return ""
    if pipeline.state.result is not None and pipeline.state.result.name:
        return pipeline.state.result.name
    return pipeline.state.name or ""


def _fetch(client: CloudClient, workspace: str, repo: str, ref: str) -> Pipeline:
    if ref.isdigit():
        return client.get_pipeline_by_build_number(workspace, repo, int(ref))
    return client.get_pipeline(workspace, repo, ref)


@app.command("list")
@handle_errors
def pipeline_list(ctx: typer.Context, limit: LimitOption = 0, owner: OwnerOption = None, repo: RepoOption = None) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        pipelines = client.list_pipelines(workspace, repo, limit=limit)
    rows = [
        (f"#{p.build_number}", _state(p), p.target.ref_name if p.target else "", p.created_on or "")
        for p in pipelines
    ]
    emit(ctx, pipelines, lambda: table(rows, empty="No pipelines found."))


@app.command("run")
@handle_errors
def pipeline_run(
    ctx: typer.Context,
    branch: Annotated[str, typer.Option("--branch", "-b")],
    variables: Annotated[list[str] | None, typer.Option("--var", help="KEY=VALUE, repeatable")] = None,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    pairs = parse_pairs(variables, "--var")
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        pipeline = client.trigger_pipeline(workspace, repo, branch, pairs)
    emit(ctx, pipeline, lambda: f"Started pipeline #{pipeline.build_number} {pipeline.uuid}")


@app.command("view")
@handle_errors
def pipeline_view(ctx: typer.Context, ref: PipelineArgument, owner: OwnerOption = None, repo: RepoOption = None) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        pipeline = _fetch(client, workspace, repo, ref)
        steps = client.list_pipeline_steps(workspace, repo, pipeline.uuid)

    def text() -> str:
        lines = [f"#{pipeline.build_number} {pipeline.uuid} {_state(pipeline)}"]
        lines += [f"  {step.name or step.uuid}" for step in steps]
        return "\n".join(lines)

    emit(ctx, {"pipeline": pipeline, "steps": steps}, text)


@app.command("logs")
@handle_errors
def pipeline_logs(
    ctx: typer.Context,
    ref: PipelineArgument,
    step: Annotated[str | None, typer.Option("--step", help="Step UUID (defaults to every step)")] = None,
    owner: OwnerOption = None,
    repo: RepoOption = None,
) -> None:
    client, target = get_factory(ctx).cloud_client()
    with client.transport:
        workspace, repo = locate(target, owner, repo)
        pipeline = _fetch(client, workspace, repo, ref)
        step_ids = [step] if step else [s.uuid for s in client.list_pipeline_steps(workspace, repo, pipeline.uuid)]
        for step_id in step_ids:
            client.get_pipeline_log(workspace, repo, pipeline.uuid, step_id, binary_stdout())
