"""CLI app setup and common utilities.

This module creates the main Typer app and the helpers shared by all
commands: per-invocation configuration, logging bootstrap, service
construction and the async entry point.
"""

import asyncio
from typing import Any, Coroutine, Optional

import typer
from typer import Context, Typer

from salesqueue.config import Config
from salesqueue.digest import SalesQueueService
from salesqueue.pipedrive.client import PipedriveClient
from salesqueue.pipedrive.dummy import DummyPipedriveClient

# Initialize Typer app
app = Typer(
    name="salesqueue",
    help="Pipedrive sales queue: overdue work, today's activities and stalled deals in one digest.",
)


# =============================================================================
# Shared CLI state
# =============================================================================


class CLIState:
    """Shared state object for CLI commands."""

    def __init__(self, cfg: Config):
        self.config = cfg
        self.demo = False


def get_config(ctx: Context) -> Config:
    """Configuration resolved by the app callback."""
    if ctx.obj is None:
        raise RuntimeError("CLI state not initialized - this is a bug")
    return ctx.obj.config


def build_service(cfg: Config, demo: bool = False) -> SalesQueueService:
    """Service over the live API, or over the in-memory demo account.

    Raises:
        ConfigError: If no API token is configured for live use.
    """
    if demo:
        client: Any = DummyPipedriveClient.demo()
    else:
        client = PipedriveClient(
            api_token=cfg.require_token(),
            base_url=cfg.base_url,
            legacy_base_url=cfg.legacy_base_url,
            policy=cfg.build_policy(),
        )
    return SalesQueueService.from_config(cfg, client)


def run_async(coro: Coroutine) -> Any:
    return asyncio.run(coro)


@app.callback()
def init_app(
    ctx: Context,
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (default: SALES_QUEUE_LOG_LEVEL or INFO)",
    ),
):
    """Load configuration and set up logging on stderr."""
    cfg = Config()
    cfg.setup_logging(log_level)
    ctx.obj = CLIState(cfg)
