# src/protofixture/cli.py
"""protofixture command line interface.

Snapshot housekeeping: find the snapshot a test run would use, build one
ahead of time from a hooks object, and look inside an existing one.
"""

from __future__ import annotations

import importlib
from pathlib import Path

import typer
from sqlalchemy import inspect

from protofixture import __version__
from protofixture.core.config import DEFAULT_SNAPSHOT_FILENAME, FactorySettings, locate_snapshot
from protofixture.core.logging import configure_logging
from protofixture.database.connection import open_connection
from protofixture.database.handle import HandleOptions, create_handle_engine
from protofixture.factory import FactoryHooks, PrototypeFactory

__all__ = ["app"]

app = typer.Typer(
    name="protofixture",
    help="Prototype databases for fast, isolated tests.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"protofixture version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log build and clone events.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit logs as JSON.",
    ),
) -> None:
    """protofixture: prototype databases for fast, isolated tests."""
    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING", stream="stderr")


def _load_hooks(target: str) -> FactoryHooks:
    """Import ``module:attribute`` naming FactoryHooks or a callable returning them."""
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise typer.BadParameter(f"expected 'module:attribute', got {target!r}", param_hint="--hooks")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import module {module_name!r}: {e}", param_hint="--hooks") from e

    try:
        value = getattr(module, attribute)
    except AttributeError as e:
        raise typer.BadParameter(f"module {module_name!r} has no attribute {attribute!r}", param_hint="--hooks") from e

    if not isinstance(value, FactoryHooks) and callable(value):
        value = value()
    if not isinstance(value, FactoryHooks):
        raise typer.BadParameter(
            f"{target!r} must be FactoryHooks or a callable returning FactoryHooks, got {type(value).__name__}",
            param_hint="--hooks",
        )
    return value


@app.command()
def locate(
    filename: str = typer.Option(
        DEFAULT_SNAPSHOT_FILENAME,
        "--filename",
        "-f",
        help="Snapshot file name to search for.",
    ),
    start: Path | None = typer.Option(
        None,
        "--start",
        help="Directory to start searching from (default: current directory).",
    ),
) -> None:
    """Print the snapshot path a test run would use."""
    path = locate_snapshot(filename, start)
    status = "exists" if path.is_file() else "missing"
    typer.echo(f"{path}\t{status}")


@app.command("build-snapshot")
def build_snapshot(
    hooks: str = typer.Option(
        ...,
        "--hooks",
        help="Hooks to build with, as 'module:attribute'.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Snapshot file to write (default: located from the current directory).",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Rebuild even if the snapshot file already exists.",
    ),
) -> None:
    """Migrate and seed a snapshot file for later test runs."""
    factory_hooks = _load_hooks(hooks)
    path = output if output is not None else locate_snapshot()

    if path.exists():
        if not force:
            typer.echo(f"Snapshot already exists: {path} (use --force to rebuild)")
            return
        path.unlink()

    path.parent.mkdir(parents=True, exist_ok=True)
    with PrototypeFactory(FactorySettings.for_snapshot(path), hooks=factory_hooks) as factory:
        factory.build()

    typer.echo(f"Snapshot written: {path}")


@app.command("inspect")
def inspect_snapshot(
    path: Path = typer.Argument(
        ...,
        help="Snapshot database file.",
    ),
) -> None:
    """Print each table of a snapshot with its row count."""
    if not path.is_file():
        typer.echo(f"Error: snapshot not found: {path}", err=True)
        raise typer.Exit(1)

    connection = open_connection(f"sqlite:///{path.resolve()}?mode=ro")
    try:
        engine = create_handle_engine(HandleOptions(connection=connection))
        tables = sorted(inspect(engine).get_table_names())
        if not tables:
            typer.echo("No tables.")
            return
        for table in tables:
            quoted = table.replace('"', '""')
            (count,) = connection.execute(f'SELECT COUNT(*) FROM "{quoted}"').fetchone()
            typer.echo(f"{table}\t{count}")
    finally:
        connection.close()
