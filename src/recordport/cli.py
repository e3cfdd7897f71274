"""recordport CLI - typer application entry point."""

from __future__ import annotations

import atexit
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from ruamel.yaml.error import YAMLError

from recordport.bundle.codec import dumps, read_bundle
from recordport.config import load_config
from recordport.errors import RecordPortError
from recordport.observability import close_file_logging, configure_logging, get_logger
from recordport.porter import RecordPorter
from recordport.schema import StaticSchemaCatalog
from recordport.sqlite_store import SqliteRecordStore

if TYPE_CHECKING:
    from recordport.bundle.models import UnresolvedReference
    from recordport.policy import TraversalPolicy

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="recordport",
    help="recordport: export record subgraphs to portable bundles and import them back.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)
log = get_logger(__name__)

SchemaOption = Annotated[
    Path,
    typer.Option("--schema", "-s", help="Schema catalog YAML file.", envvar="RECORDPORT_SCHEMA"),
]
DbOption = Annotated[
    Path,
    typer.Option("--db", help="SQLite record store.", envvar="RECORDPORT_DB"),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Porter configuration YAML file."),
]


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_dir: Annotated[
        Path | None,
        typer.Option("--log-dir", help="Also write JSONL logs to this directory."),
    ] = None,
) -> None:
    """recordport: export record subgraphs to portable bundles and import them back."""
    configure_logging(verbosity=verbose, log_to_file=log_dir is not None, log_dir=log_dir)
    if log_dir is not None:
        atexit.register(close_file_logging)


def _parse_field_ref(value: str) -> tuple[str, str]:
    type_name, sep, field_name = value.partition(".")
    if not sep or not type_name or not field_name:
        raise typer.BadParameter(f"expected TYPE.FIELD, got '{value}'")
    return type_name, field_name


def _open(
    schema: Path, db: Path, config_path: Path | None
) -> tuple[RecordPorter, SqliteRecordStore]:
    if not schema.exists():
        err_console.print(f"[red]Error:[/red] Schema file '{schema}' not found")
        raise typer.Exit(1)
    try:
        catalog = StaticSchemaCatalog.from_yaml(schema)
        config = load_config(config_path)
    except (RecordPortError, YAMLError, ValueError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    store = SqliteRecordStore(db)
    return RecordPorter(catalog, store, config), store


@app.command()
def version() -> None:
    """Show version information."""
    from recordport import __version__

    console.print(f"recordport v{__version__}")


@app.command()
def export(
    anchor_ids: Annotated[list[str], typer.Argument(help="Identities of the anchor records.")],
    schema: SchemaOption,
    db: DbOption,
    type_name: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Anchor type (looked up in the store if omitted)."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the bundle here instead of stdout."),
    ] = None,
    follow: Annotated[
        list[str] | None,
        typer.Option("--follow", help="Also follow reference TYPE.FIELD (repeatable)."),
    ] = None,
    follow_child: Annotated[
        list[str] | None,
        typer.Option("--follow-child", help="Also follow child TYPE.FIELD (repeatable)."),
    ] = None,
    omit: Annotated[
        list[str] | None,
        typer.Option("--omit", help="Leave TYPE.FIELD out of the bundle (repeatable)."),
    ] = None,
    config_path: ConfigOption = None,
) -> None:
    """Export anchor records and everything they reach as a JSON bundle."""
    porter, store = _open(schema, db, config_path)
    try:
        policy: TraversalPolicy | None = None
        if follow or follow_child or omit:
            anchor_type = type_name or porter.store.type_of(anchor_ids[0])
            if anchor_type is None:
                err_console.print(f"[red]Error:[/red] Unknown anchor '{anchor_ids[0]}'")
                raise typer.Exit(1)
            policy = porter.derive_policy(anchor_type)
            for ref in follow or []:
                policy.follow(*_parse_field_ref(ref))
            for ref in follow_child or []:
                policy.follow_child(*_parse_field_ref(ref))
            for ref in omit or []:
                policy.omit(*_parse_field_ref(ref))

        bundle = porter.export_bundle(anchor_ids, policy, type_name=type_name)
    except RecordPortError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        store.close()

    text = dumps(bundle)
    if output is None:
        sys.stdout.write(text + "\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text)
    log.debug("bundle_written", path=str(output), groups=len(bundle.groups))
    console.print(
        f"[green]✓[/green] Exported {bundle.record_count} record(s) "
        f"in {len(bundle.groups)} group(s) to {output}"
    )


def _report_unresolved(type_name: str, unresolved: list[UnresolvedReference]) -> None:
    fields = sorted({f for ref in unresolved for f in ref.fields})
    err_console.print(
        f"[yellow]Warning:[/yellow] {len(unresolved)} {type_name} record(s) with "
        f"unresolved references: {', '.join(fields)}"
    )


@app.command("import")
def import_(
    bundle_file: Annotated[Path, typer.Argument(help="Bundle JSON file.")],
    schema: SchemaOption,
    db: DbOption,
    config_path: ConfigOption = None,
) -> None:
    """Import a JSON bundle under fresh identities (all-or-nothing)."""
    porter, store = _open(schema, db, config_path)
    try:
        bundle = read_bundle(bundle_file)
        with store.transaction():
            root_ids = porter.import_bundle(bundle, _report_unresolved)
    except (RecordPortError, OSError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        store.close()

    console.print(f"[green]✓[/green] Imported {bundle.record_count} record(s)")
    for record_id in sorted(root_ids):
        console.print(f"  {record_id}")


@app.command()
def inspect(
    bundle_file: Annotated[Path, typer.Argument(help="Bundle JSON file.")],
) -> None:
    """Show the groups of a bundle in commit order."""
    try:
        bundle = read_bundle(bundle_file)
    except (RecordPortError, OSError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(title=f"Bundle: {bundle_file.name}")
    table.add_column("#", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Records", justify="right")
    table.add_column("Fields", style="dim")
    for position, group in enumerate(bundle.groups):
        field_names = sorted({k for r in group.records for k in r.values})
        marker = " (root)" if group.type_name == bundle.root_type else ""
        table.add_row(
            str(position),
            f"{group.type_name}{marker}",
            str(len(group)),
            ", ".join(field_names),
        )

    console.print()
    console.print(table)
    console.print(f"Total: {bundle.record_count} record(s)")
