"""MCP server CLI command."""

import typer
from typer import Context

from salesqueue.cli.app import app, build_service, get_config
from salesqueue.config import ConfigError
from salesqueue.pipedrive.dummy import DEMO_FILTERS


@app.command()
def serve(
    ctx: Context,
    demo: bool = typer.Option(False, "--demo", help="Serve the built-in offline demo account"),
):
    """Run the MCP tool server on stdio."""
    from salesqueue import server

    cfg = get_config(ctx)
    try:
        service = build_service(cfg, demo=demo)
    except ConfigError as e:
        typer.echo(f"❌ Error: {e}", err=True)
        raise typer.Exit(1)

    if demo:
        cfg.overdue_filter = str(DEMO_FILTERS["overdue"])
        cfg.today_filter = str(DEMO_FILTERS["today"])
        cfg.missing_filter = str(DEMO_FILTERS["missing"])
    server.run(service, cfg)
