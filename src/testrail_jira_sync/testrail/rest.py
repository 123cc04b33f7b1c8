"""TestRail REST API client with offset pagination.

Provides high-level methods for the TestRail endpoints the sync job reads.
Bulk endpoints return pages shaped like ``{"offset": 0, "limit": 250,
"size": 250, "_links": {...}, "projects": [...]}``; the items live under an
endpoint-specific field.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 250


class Fetcher(Protocol):
    """Anything that can GET one TestRail endpoint path."""

    async def fetch(self, endpoint: str) -> Any: ...


class RestClient:
    """TestRail REST API client with pagination.

    Wraps a fetcher (normally ``TestRailClient``) to provide:
    - Offset/limit pagination until a short page is returned
    - High-level methods for projects, milestones, plans and runs
    """

    def __init__(self, fetcher: Fetcher, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        """Initialize REST API client.

        Args:
            fetcher: Object issuing single GET requests.
            page_size: Items requested per page (TestRail allows at most 250).
        """
        if page_size < 1:
            msg = f"page_size must be >= 1, got {page_size}"
            raise ValueError(msg)
        self._fetcher = fetcher
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        """Get the page size."""
        return self._page_size

    async def _paginate(self, endpoint: str, items_field: str) -> AsyncIterator[list[Any]]:
        """Yield each page of items for a bulk endpoint.

        Stops after the first page holding fewer than ``page_size`` items.
        The ``size``/``_links`` fields are not consulted.

        Args:
            endpoint: Endpoint path, possibly with ``&key=value`` filters.
            items_field: Name of the field holding the items list.

        Yields:
            List of items for each page.
        """
        offset = 0
        while True:
            data = await self._fetcher.fetch(
                f"{endpoint}&limit={self._page_size}&offset={offset}"
            )
            items = data.get(items_field) if isinstance(data, dict) else None
            if not isinstance(items, list):
                items = []

            logger.debug("Fetched %d %s at offset %d", len(items), items_field, offset)
            yield items

            if len(items) < self._page_size:
                break
            offset += self._page_size

    async def fetch_all(self, endpoint: str, items_field: str) -> list[Any]:
        """Fetch every item of a bulk endpoint.

        Args:
            endpoint: Endpoint path, possibly with ``&key=value`` filters.
            items_field: Name of the field holding the items list.

        Returns:
            Concatenated items from all pages.
        """
        all_items: list[Any] = []
        async for items in self._paginate(endpoint, items_field):
            all_items.extend(items)
        return all_items

    async def list_projects(self) -> list[dict[str, Any]]:
        """List all projects in the order TestRail returns them."""
        logger.info("Fetching projects")
        return await self.fetch_all("get_projects", "projects")

    async def list_milestones(self, project_id: int) -> list[dict[str, Any]]:
        """List all milestones of a project."""
        return await self.fetch_all(f"get_milestones/{project_id}", "milestones")

    async def list_plans(self, project_id: int, milestone_id: int) -> list[dict[str, Any]]:
        """List the test plans of a milestone (summaries without entries)."""
        return await self.fetch_all(
            f"get_plans/{project_id}&milestone_id={milestone_id}", "plans"
        )

    async def get_plan(self, plan_id: int) -> dict[str, Any]:
        """Get full detail of a single test plan."""
        data = await self._fetcher.fetch(f"get_plan/{plan_id}")
        return data if isinstance(data, dict) else {}

    async def list_runs(self, project_id: int, milestone_id: int) -> list[dict[str, Any]]:
        """List the standalone test runs of a milestone."""
        return await self.fetch_all(f"get_runs/{project_id}&milestone_id={milestone_id}", "runs")
