import json
from collections.abc import Callable
from typing import Any

import typer
import yaml
from pydantic import BaseModel


def to_data(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, (list, tuple)):
        return [to_data(item) for item in value]
    if isinstance(value, dict):
        return {key: to_data(item) for key, item in value.items()}
    return value


def render(data: Any, fmt: str, fallback: Callable[[], str] | None = None) -> str:
    """Render `data` as JSON, YAML or the human-readable `fallback`."""
    if fmt == "yaml":
        return yaml.safe_dump(to_data(data), sort_keys=False)
    if fmt == "text" and fallback is not None:
        text = fallback()
        return text if not text or text.endswith("\n") else text + "\n"
    return json.dumps(to_data(data), indent=2) + "\n"


def write_output(data: Any, fmt: str, fallback: Callable[[], str] | None = None) -> None:
    typer.echo(render(data, fmt, fallback), nl=False)


def table(rows: list[tuple[Any, ...]], empty: str = "No results.") -> str:
    if not rows:
        return empty
    widths = [max(len(str(row[i])) for row in rows) for i in range(len(rows[0]))]
    lines = ["  ".join(str(cell).ljust(width) for cell, width in zip(row, widths)).rstrip() for row in rows]
    return "\n".join(lines)
