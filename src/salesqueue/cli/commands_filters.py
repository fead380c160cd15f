"""Saved-filter CLI commands.

- filters list: list saved filters
- filters resolve: turn a filter name into its id
- filters create: create a filter from a JSON condition tree
- filters fields: list the fields usable in conditions
"""

import json
import sys
from pathlib import Path
from typing import NoReturn, Optional

import typer
from typer import Context, Typer

from salesqueue.cli.app import app, build_service, get_config, run_async
from salesqueue.connectors.base import ConnectorError
from salesqueue.digest import SalesQueueService

# =============================================================================
# Filters Subcommand Group
# =============================================================================

filters_app = Typer(help="Saved filter commands")
app.add_typer(filters_app, name="filters")


@filters_app.callback()
def filters_init(
    ctx: Context,
    demo: bool = typer.Option(False, "--demo", help="Use the built-in offline demo account"),
):
    """Work with Pipedrive saved filters."""
    ctx.obj.demo = demo


def _service(ctx: Context) -> SalesQueueService:
    return build_service(get_config(ctx), demo=getattr(ctx.obj, "demo", False))


def _fail(e: Exception) -> NoReturn:
    typer.echo(f"❌ Error: {e}", err=True)
    raise typer.Exit(1)


@filters_app.command(name="list")
def filters_list(
    ctx: Context,
    filter_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Only this type (deals, activity, people, org, products, leads)"
    ),
):
    """List saved filters."""
    try:
        filters = run_async(_service(ctx).list_filters(filter_type))
    except (ConnectorError, ValueError) as e:
        _fail(e)

    if not filters:
        typer.echo("📭 No filters found.")
        return
    typer.echo(f"📋 Filters ({len(filters)}):")
    for f in filters:
        typer.echo(f"  - {f.describe()}")


@filters_app.command(name="resolve")
def filters_resolve(
    ctx: Context,
    name: str = typer.Argument(..., help="Filter name (or id)"),
    filter_type: Optional[str] = typer.Option(None, "--type", "-t", help="Expected filter type"),
):
    """Print the id of the filter with this name."""
    try:
        filter_id = run_async(_service(ctx).resolve_filter_id(name, filter_type))
    except (ConnectorError, ValueError) as e:
        _fail(e)
    typer.echo(str(filter_id))


@filters_app.command(name="create")
def filters_create(
    ctx: Context,
    name: str = typer.Argument(..., help="Name of the new filter"),
    filter_type: str = typer.Option("deals", "--type", "-t", help="Filter type"),
    conditions: str = typer.Option(
        ..., "--conditions", "-c", help="JSON file with the condition tree, or '-' for stdin"
    ),
):
    """Create a saved filter.

    Conditions may reference fields by key or name; they are resolved to
    numeric ids and arranged into Pipedrive's and/or layout first.

    Examples:
        salesqueue filters create "Stalled deals" --conditions stalled.json
        echo '[{"field_id": "status", "operator": "=", "value": "open"}]' | \\
            salesqueue filters create "Open deals" -c -
    """
    try:
        raw = sys.stdin.read() if conditions == "-" else Path(conditions).read_text(encoding="utf-8")
        tree = json.loads(raw)
    except (OSError, json.JSONDecodeError) as e:
        _fail(ValueError(f"Cannot read conditions: {e}"))

    try:
        created = run_async(_service(ctx).create_filter(name, tree, filter_type))
    except (ConnectorError, ValueError) as e:
        _fail(e)
    typer.echo(f"✅ Created filter {created.describe()}")


@filters_app.command(name="fields")
def filters_fields(
    ctx: Context,
    object_type: str = typer.Argument(..., help="Object type (deal, person, organization, ...)"),
):
    """List the fields of an object type with their numeric ids."""
    try:
        fields = run_async(_service(ctx).list_fields(object_type))
    except (ConnectorError, ValueError) as e:
        _fail(e)

    typer.echo(f"📋 Fields ({len(fields)}):")
    for fd in fields:
        typer.echo(f"  {fd.id}\t{fd.key}\t{fd.name}")
