"""Search analytics boundary: per-page click-through metrics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Protocol


@dataclass(slots=True)
class PageMetrics:
    """Click-through metrics for one page over a date window."""

    page_url: str
    ctr: float
    impressions: int
    clicks: int = 0


class SearchMetricsSource(Protocol):
    """Metrics query capability (e.g. a Search Console client)."""

    async def query_by_page(
        self,
        site_url: str,
        page_url: str,
        start_date: date,
        end_date: date,
    ) -> PageMetrics | None:
        """Metrics for exactly one page, or None when the source has no row."""

    async def query_all(
        self,
        site_url: str,
        start_date: date,
        end_date: date,
    ) -> list[PageMetrics]:
        """Metrics for every page of the site."""


def site_base_url(site_url: str) -> str:
    """Map a property id to the URL prefix its page paths hang off.

    ``sc-domain:example.com`` becomes ``https://example.com``; URL-prefix
    properties are returned without a trailing slash.
    """
    if site_url.startswith("sc-domain:"):
        return "https://" + site_url[len("sc-domain:"):].rstrip("/")
    return site_url.rstrip("/")
