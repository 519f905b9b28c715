"""Classify earlier generations against freshly observed click-through data."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from metagen.config import settings
from metagen.integrations.outcome_store import (
    HIGH_CTR,
    IMPROVED,
    INSUFFICIENT_DATA,
    NO_IMPROVEMENT,
    ClassifiedPageAttributes,
    InsufficientPageDataAttributes,
    OutcomeStore,
    TrackingCategory,
)
from metagen.integrations.search_metrics import PageMetrics, SearchMetricsSource, site_base_url
from metagen.services.types import ClassifiedOutcome, TrackedRecord

logger = logging.getLogger(__name__)

HIGH_IMPROVEMENT_RATIO = 0.20
HIGH_ABSOLUTE_CTR = 0.05
IMPROVED_ABSOLUTE_CTR = 0.03


@dataclass(slots=True)
class TrackingSummary:
    """Counts exclude Insufficient Data records."""

    tracked: int = 0
    high_performers: int = 0
    skipped_recent: int = 0
    outcomes: list[ClassifiedOutcome] = field(default_factory=list)


def classify_performance(
    current_ctr: float,
    baseline_ctr: float | None,
) -> tuple[TrackingCategory, float | None]:
    """Return the category and relative improvement (None without a baseline)."""
    if baseline_ctr is not None and baseline_ctr > 0:
        # Rounded so 0.036 vs 0.03 lands on exactly 20%, not float noise either side
        improvement = round((current_ctr - baseline_ctr) / baseline_ctr, 9)
        if improvement > HIGH_IMPROVEMENT_RATIO:
            return HIGH_CTR, improvement
        if improvement > 0:
            return IMPROVED, improvement
        return NO_IMPROVEMENT, improvement

    if current_ctr >= HIGH_ABSOLUTE_CTR:
        return HIGH_CTR, None
    if current_ctr >= IMPROVED_ABSOLUTE_CTR:
        return IMPROVED, None
    return NO_IMPROVEMENT, None


def format_improvement(improvement: float | None) -> str:
    if improvement is None:
        return "no baseline"
    sign = "+" if improvement > 0 else ""
    return f"{sign}{improvement * 100:.0f}%"


class PerformanceTracker:
    """Fetch current metrics for tracked pages and classify each one.

    Fetches run with bounded parallelism; classification and audit recording
    happen afterwards, one record at a time, in input order. The first fetch
    error aborts the whole run once every fetch has settled.
    """

    def __init__(
        self,
        metrics: SearchMetricsSource,
        store: OutcomeStore,
        *,
        site_url: str | None = None,
        window_days: int | None = None,
        min_impressions: int | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        self.metrics = metrics
        self.store = store
        self.site_url = site_url if site_url is not None else settings.site_url
        self.window_days = window_days or settings.tracking_window_days
        self.min_impressions = (
            settings.tracking_min_impressions if min_impressions is None else min_impressions
        )
        self.max_concurrent = max(1, max_concurrent or settings.tracking_max_concurrent)

    async def track(
        self,
        records: Sequence[TrackedRecord],
        *,
        scope_id: str,
        min_days: int | None = None,
        now: datetime | None = None,
    ) -> TrackingSummary:
        current = now or datetime.now(timezone.utc)
        age_threshold = timedelta(
            days=settings.tracking_min_days if min_days is None else min_days
        )
        eligible = [r for r in records if current - r.generated_at >= age_threshold]
        summary = TrackingSummary(skipped_recent=len(records) - len(eligible))

        if not eligible:
            logger.info(
                "No records old enough to track",
                extra={"records": len(records), "min_days": age_threshold.days},
            )
            return summary

        start_date, end_date = tracking_window(current, self.window_days)
        base_url = site_base_url(self.site_url)
        semaphore = asyncio.Semaphore(min(self.max_concurrent, len(eligible)))

        async def _fetch(record: TrackedRecord) -> PageMetrics | None:
            async with semaphore:
                return await self.metrics.query_by_page(
                    self.site_url,
                    f"{base_url}{record.path}",
                    start_date,
                    end_date,
                )

        logger.info(
            "Fetching page metrics",
            extra={
                "eligible": len(eligible),
                "max_concurrent": self.max_concurrent,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
        results = await asyncio.gather(
            *[_fetch(record) for record in eligible],
            return_exceptions=True,
        )
        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            logger.warning(
                "Page metrics fetch failed",
                extra={"failed": len(errors), "eligible": len(eligible), "error": str(errors[0])},
            )
            raise errors[0]

        fetched: list[PageMetrics | None] = [
            result for result in results if not isinstance(result, BaseException)
        ]
        for record, perf in zip(eligible, fetched):
            outcome = self._classify(record, perf, scope_id)
            summary.outcomes.append(outcome)
            if outcome.category == INSUFFICIENT_DATA:
                continue
            summary.tracked += 1
            if outcome.category == HIGH_CTR:
                summary.high_performers += 1

        logger.info(
            "Performance tracking finished",
            extra={
                "tracked": summary.tracked,
                "high_performers": summary.high_performers,
                "insufficient": len(summary.outcomes) - summary.tracked,
                "skipped_recent": summary.skipped_recent,
            },
        )
        return summary

    def _classify(
        self,
        record: TrackedRecord,
        perf: PageMetrics | None,
        scope_id: str,
    ) -> ClassifiedOutcome:
        if perf is None or perf.impressions < self.min_impressions:
            reason = "Low impressions" if perf is not None else "No data from metrics source"
            insufficient: InsufficientPageDataAttributes = {
                "page": record.path,
                "reason": reason,
                "impressions": perf.impressions if perf is not None else None,
                "generationRunId": record.run_id,
            }
            self.store.record(scope_id, INSUFFICIENT_DATA, insufficient)
            return ClassifiedOutcome(
                path=record.path,
                category=INSUFFICIENT_DATA,
                current_ctr=perf.ctr if perf is not None else None,
                baseline_ctr=record.baseline_ctr,
                improvement=None,
                impressions=perf.impressions if perf is not None else None,
                reason=reason,
            )

        category, improvement = classify_performance(perf.ctr, record.baseline_ctr)
        classified: ClassifiedPageAttributes = {
            "page": record.path,
            "title": record.title,
            "description": record.description,
            "ctr": perf.ctr,
            "baselineCTR": record.baseline_ctr or 0,
            "improvement": format_improvement(improvement),
            "impressions": perf.impressions,
            "generationRunId": record.run_id,
        }
        self.store.record(scope_id, category, classified)
        return ClassifiedOutcome(
            path=record.path,
            category=category,
            current_ctr=perf.ctr,
            baseline_ctr=record.baseline_ctr,
            improvement=improvement,
            impressions=perf.impressions,
        )


def tracking_window(now: datetime, window_days: int) -> tuple[date, date]:
    """Trailing ``window_days`` window ending on ``now``'s date."""
    end_date = now.date()
    return end_date - timedelta(days=window_days), end_date
