from __future__ import annotations

"""Loading knowledge-base components with CLI-friendly errors."""

from pathlib import Path
from typing import Any, Callable

import typer
from rich.console import Console

from convosim.io.loaders import LoaderError


def load_or_exit(
    loader_fn: Callable[..., Any],
    path: str,
    *args: Any,
    console: Console,
    required: bool = True,
    verbose_errors: bool = False,
    **kwargs: Any,
) -> Any:
    """Run a loader on ``path``; print a red message and exit(1) on failure.

    A missing optional path is skipped silently.
    """
    if not Path(path).exists():
        if not required:
            return None
        console.print(f"[red]Path not found:[/red] {path}")
        raise typer.Exit(code=1)
    try:
        return loader_fn(path, *args, **kwargs)
    except LoaderError as err:
        if verbose_errors and err.cause is not None:
            console.print(f"[red]Failed to load {Path(path).name}:[/red] {err.message}\n{err.cause}")
        else:
            console.print(f"[red]Failed to load:[/red] {err}")
        raise typer.Exit(code=1)


__all__ = ["load_or_exit"]
