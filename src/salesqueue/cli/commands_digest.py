"""Digest CLI command.

- digest: build the sales queue digest and print it as JSON or markdown
"""

from datetime import datetime
from typing import Optional

import typer
from typer import Context

from salesqueue.cli.app import app, build_service, get_config, run_async
from salesqueue.connectors.base import ConnectorError
from salesqueue.digest import DigestLimits
from salesqueue.pipedrive.dummy import DEMO_FILTERS, DEMO_NOW
from salesqueue.render import render_markdown


def _parse_now(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"'{value}' is not an ISO-8601 date/time", param_hint="--now")


@app.command()
def digest(
    ctx: Context,
    overdue_filter: Optional[str] = typer.Option(
        None, "--overdue-filter", help="Overdue activities filter, id or name"
    ),
    today_filter: Optional[str] = typer.Option(
        None, "--today-filter", help="Due-today activities filter, id or name"
    ),
    missing_filter: Optional[str] = typer.Option(
        None, "--missing-filter", help="Deals-without-next-action filter, id or name"
    ),
    max_results: Optional[int] = typer.Option(
        None, "--max-results", "-n", min=0, help="Maximum items per section"
    ),
    overdue_limit: Optional[int] = typer.Option(None, "--overdue-limit", min=0),
    today_limit: Optional[int] = typer.Option(None, "--today-limit", min=0),
    missing_limit: Optional[int] = typer.Option(None, "--missing-limit", min=0),
    timezone: Optional[str] = typer.Option(None, "--timezone", "-z", help="IANA timezone"),
    now: Optional[str] = typer.Option(None, "--now", help="Reference instant (ISO-8601)"),
    people_orgs: bool = typer.Option(
        True, "--people-orgs/--no-people-orgs", help="Look up referenced persons, orgs and deals"
    ),
    format: str = typer.Option("json", "--format", "-f", help="Output format: json or markdown"),
    demo: bool = typer.Option(False, "--demo", help="Use the built-in offline demo account"),
):
    """Build the sales queue digest.

    Filters default to PIPEDRIVE_OVERDUE_FILTER_ID, PIPEDRIVE_TODAY_FILTER_ID
    and PIPEDRIVE_MISSING_ACTION_FILTER_ID.

    Examples:
        salesqueue digest
        salesqueue digest --max-results 20 --format markdown
        salesqueue digest --demo
    """
    cfg = get_config(ctx)
    if format not in ("json", "markdown"):
        typer.echo(f"❌ Error: unknown format '{format}' (use json or markdown)", err=True)
        raise typer.Exit(1)

    reference = _parse_now(now)
    base = max_results if max_results is not None else cfg.max_results

    try:
        limits = DigestLimits(
            overdue=overdue_limit if overdue_limit is not None else base,
            today=today_limit if today_limit is not None else base,
            missing=missing_limit if missing_limit is not None else base,
        )
        if demo:
            filters = {
                "overdue": overdue_filter or DEMO_FILTERS["overdue"],
                "today": today_filter or DEMO_FILTERS["today"],
                "missing": missing_filter or DEMO_FILTERS["missing"],
            }
            reference = reference or DEMO_NOW
        else:
            configured = cfg.filter_values()
            cfg.overdue_filter = overdue_filter or configured["overdue"]
            cfg.today_filter = today_filter or configured["today"]
            cfg.missing_filter = missing_filter or configured["missing"]
            filters = cfg.require_filter_ids()

        service = build_service(cfg, demo=demo)
        result = run_async(
            service.get_sales_queue_digest(
                filters["overdue"],
                filters["today"],
                filters["missing"],
                limits=limits,
                timezone=timezone,
                now=reference,
                include_people_orgs=people_orgs,
            )
        )
    except (ConnectorError, ValueError) as e:
        typer.echo(f"❌ Error: {e}", err=True)
        raise typer.Exit(1)

    if format == "markdown":
        typer.echo(render_markdown(result))
    else:
        typer.echo(result.to_json())
