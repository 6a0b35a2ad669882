import functools
import sys
from collections.abc import Callable
from typing import Annotated, Any, TypeVar

import typer

from bkt.factory import Factory, Target
from bkt.output import write_output
from bkt.services.http.errors import BitbucketError, InvalidInputError

F = TypeVar("F", bound=Callable[..., Any])


def handle_errors(func: F) -> F:
    """Turn BitbucketError into `Error: ...` on stderr and exit status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except BitbucketError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1) from exc

    return wrapper  # type: ignore[return-value]


def get_factory(ctx: typer.Context) -> Factory:
    return ctx.ensure_object(Factory)


def emit(ctx: typer.Context, data: Any, fallback: Callable[[], str] | None = None) -> None:
    write_output(data, get_factory(ctx).output_format, fallback)


def binary_stdout() -> Any:
    sys.stdout.flush()
    return sys.stdout.buffer


def locate(target: Target, owner: str | None, repo: str | None) -> tuple[str, str]:
    """Resolve (workspace or project key, repo slug) from flags and the active context."""
    cloud = target.host.kind == "cloud"
    owner = owner or (target.context.workspace if cloud else target.context.project_key)
    repo = repo or target.context.default_repo
    if not owner:
        raise InvalidInputError.required("workspace" if cloud else "project")
    if not repo:
        raise InvalidInputError.required("repo")
    return owner, repo


def parse_pairs(values: list[str] | None, flag: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint=flag)
        pairs[key] = value
    return pairs


OwnerOption = Annotated[
    str | None,
    typer.Option("--project", "--workspace", "-p", help="Project key (DC) or workspace (Cloud)"),
]
RepoOption = Annotated[str | None, typer.Option("--repo", "-r", help="Repository slug")]
LimitOption = Annotated[int, typer.Option("--limit", "-L", help="Maximum number of results (0 = all)")]
