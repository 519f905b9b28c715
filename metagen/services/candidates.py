"""Pick under-performing pages from site-wide metrics and enrich them for the writer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace
from fnmatch import fnmatchcase
from urllib.parse import urlparse

from metagen.config import settings
from metagen.integrations.page_scraper import PageContent
from metagen.integrations.search_metrics import PageMetrics
from metagen.services.types import Candidate

logger = logging.getLogger(__name__)

PageFetcher = Callable[[str], Awaitable[PageContent]]


def is_excluded(url: str, exclude: Sequence[str]) -> bool:
    """Whether the URL path matches any exclude glob (``/blog/*``, ``/``)."""
    path = urlparse(url).path or "/"
    return any(fnmatchcase(path, pattern) for pattern in exclude)


def select_candidates(
    rows: Sequence[PageMetrics],
    *,
    ctr_threshold: float | None = None,
    min_impressions: int | None = None,
    exclude: Sequence[str] | None = None,
    max_pages: int | None = None,
) -> list[Candidate]:
    """Keep rows below the CTR threshold with enough impressions, in source order."""
    threshold = settings.candidate_ctr_threshold if ctr_threshold is None else ctr_threshold
    impressions_floor = (
        settings.candidate_min_impressions if min_impressions is None else min_impressions
    )
    patterns = list(settings.candidate_exclude if exclude is None else exclude)
    limit = settings.candidate_max_pages if max_pages is None else max_pages

    selected: list[Candidate] = []
    for row in rows:
        if len(selected) >= limit:
            break
        if row.ctr >= threshold or row.impressions < impressions_floor:
            continue
        if is_excluded(row.page_url, patterns):
            continue
        selected.append(Candidate(url=row.page_url, ctr=row.ctr, impressions=row.impressions))

    logger.info(
        "Candidates selected",
        extra={
            "rows": len(rows),
            "selected": len(selected),
            "ctr_threshold": threshold,
            "min_impressions": impressions_floor,
        },
    )
    return selected


async def enrich_candidates(
    candidates: Sequence[Candidate],
    fetch_page: PageFetcher,
) -> list[Candidate]:
    """Attach current title, description and content to each candidate.

    A page that cannot be fetched keeps its metrics-only candidate.
    """

    async def _enrich(candidate: Candidate) -> Candidate:
        try:
            page = await fetch_page(candidate.url)
        except Exception as exc:
            logger.warning(
                "Page enrichment failed",
                extra={"page": candidate.url, "error": str(exc) or type(exc).__name__},
            )
            return candidate
        return replace(
            candidate,
            current_title=page.title,
            current_description=page.description,
            content=page.content,
        )

    return list(await asyncio.gather(*[_enrich(candidate) for candidate in candidates]))
