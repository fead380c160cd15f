"""MCP tool server exposing the sales queue over stdio.

Tools:
- sales_queue_get: the consolidated digest for the configured filters
- filters_list: saved filters, optionally of one type
- filters_create: create a saved filter from a condition tree

stdout is the MCP transport, so logging must go to stderr.
"""

import logging
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from salesqueue.config import Config
from salesqueue.digest import DigestLimits, SalesQueueService

logger = logging.getLogger(__name__)

SERVER_NAME = "salesqueue"


class SalesQueueTools:
    """Tool implementations bound to one service and configuration."""

    def __init__(self, service: SalesQueueService, cfg: Config):
        self.service = service
        self.cfg = cfg

    async def sales_queue_get(
        self,
        max_results: Optional[int] = None,
        overdue_limit: Optional[int] = None,
        today_limit: Optional[int] = None,
        missing_limit: Optional[int] = None,
        timezone: Optional[str] = None,
        include_people_orgs: bool = True,
    ) -> Dict[str, Any]:
        """Get the sales queue digest: overdue activities, activities due today,
        and open deals without a next activity, enriched with deal, person and
        organization details.

        Args:
            max_results: Maximum items per section (default from configuration)
            overdue_limit: Override for the overdue section
            today_limit: Override for the due-today section
            missing_limit: Override for the missing-next-action section
            timezone: IANA timezone for "today" (default from configuration)
            include_people_orgs: Look up person, organization and deal details
        """
        logger.info(f"Tool call: sales_queue_get(max_results={max_results}, timezone={timezone})")
        try:
            base = max_results if max_results is not None else self.cfg.max_results
            limits = DigestLimits(
                overdue=overdue_limit if overdue_limit is not None else base,
                today=today_limit if today_limit is not None else base,
                missing=missing_limit if missing_limit is not None else base,
            )
            filters = self.cfg.require_filter_ids()
            digest = await self.service.get_sales_queue_digest(
                filters["overdue"],
                filters["today"],
                filters["missing"],
                limits=limits,
                timezone=timezone,
                include_people_orgs=include_people_orgs,
            )
        except Exception as e:
            logger.error(f"sales_queue_get failed: {e}")
            raise ToolError(f"Error fetching sales queue digest: {e}") from e
        return digest.model_dump()

    async def filters_list(self, filter_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """List saved Pipedrive filters.

        Args:
            filter_type: Only filters of this type (deals, activity, people, org, ...)
        """
        try:
            filters = await self.service.list_filters(filter_type)
        except Exception as e:
            raise ToolError(f"Error listing filters: {e}") from e
        return [{"id": f.id, "name": f.name, "type": f.type} for f in filters]

    async def filters_create(
        self,
        name: str,
        conditions: Dict[str, Any],
        filter_type: str = "deals",
    ) -> Dict[str, Any]:
        """Create a saved Pipedrive filter.

        Conditions may use field keys or names instead of numeric ids and may
        be a flat group of conditions; they are brought into the two-group
        layout Pipedrive expects.

        Args:
            name: Filter name
            conditions: Condition tree ({glue, conditions: [...]})
            filter_type: Filter type (deals, activity, people, org, products, leads)
        """
        try:
            created = await self.service.create_filter(name, conditions, filter_type)
        except Exception as e:
            raise ToolError(f"Error creating filter: {e}") from e
        return {"id": created.id, "name": created.name, "type": created.type}


def build_server(service: SalesQueueService, cfg: Config) -> FastMCP:
    """Create the MCP server with all sales queue tools registered."""
    mcp = FastMCP(SERVER_NAME)
    tools = SalesQueueTools(service, cfg)
    mcp.tool(name="sales_queue_get")(tools.sales_queue_get)
    mcp.tool(name="filters_list")(tools.filters_list)
    mcp.tool(name="filters_create")(tools.filters_create)
    return mcp


def run(service: SalesQueueService, cfg: Config) -> None:
    """Serve the tools over stdio until the client disconnects."""
    logger.info("Starting salesqueue MCP server on stdio")
    build_server(service, cfg).run()
