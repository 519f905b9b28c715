"""One full flywheel turn: track, learn, then generate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from metagen.config import settings
from metagen.integrations.outcome_store import OutcomeStore, RunCategory
from metagen.integrations.search_metrics import SearchMetricsSource
from metagen.services.candidates import PageFetcher, enrich_candidates, select_candidates
from metagen.services.generation import MetaGenerationService
from metagen.services.learning import PatternLearningService
from metagen.services.meta_store import MetaFile, page_path
from metagen.services.prompt_state import PromptState
from metagen.services.tracking import PerformanceTracker, tracking_window

logger = logging.getLogger(__name__)

RUN_SCOPE = "Meta Gen"


@dataclass(slots=True)
class CycleSummary:
    """Counts reported by one cycle."""

    run_id: str
    status: RunCategory
    tracked: int = 0
    high_performers: int = 0
    patterns_learned: int | None = None
    candidates: int = 0
    generated: int = 0
    failed: int = 0


class FlywheelCycle:
    """Run tracker, learner and generator under one run scope.

    The learner runs before generation so this cycle's writer already sees
    the patterns and guidelines mined from the previous cycles.
    """

    def __init__(
        self,
        *,
        prompt_state: PromptState,
        store: OutcomeStore,
        metrics: SearchMetricsSource,
        meta_file: MetaFile,
        fetch_page: PageFetcher | None = None,
        tracker: PerformanceTracker | None = None,
        learner: PatternLearningService | None = None,
        generator: MetaGenerationService | None = None,
        site_url: str | None = None,
        domain: str | None = None,
    ) -> None:
        self.prompt_state = prompt_state
        self.store = store
        self.metrics = metrics
        self.meta_file = meta_file
        self.fetch_page = fetch_page
        self.site_url = site_url if site_url is not None else settings.site_url
        self.domain = domain if domain is not None else settings.domain
        self.tracker = tracker or PerformanceTracker(metrics, store, site_url=self.site_url)
        self.learner = learner or PatternLearningService(prompt_state, store)
        self.generator = generator or MetaGenerationService(prompt_state, store)

    async def run(self, *, min_days: int | None = None, now: datetime | None = None) -> CycleSummary:
        current = now or datetime.now(timezone.utc)
        self.prompt_state.initialize()
        self.meta_file.load()

        run_id = self.store.open_scope(RUN_SCOPE, attributes={"domain": self.domain})
        logger.info("Flywheel cycle started", extra={"run_id": run_id, "domain": self.domain})

        try:
            feedback_scope = self.store.open_scope("Feedback", parent_id=run_id)
            tracking = await self.tracker.track(
                self.meta_file.tracked_records(),
                scope_id=feedback_scope,
                min_days=min_days,
                now=current,
            )
            # The learner reads this cycle's classifications back from the store
            await self.store.flush()

            learn_scope = self.store.open_scope("Learn", parent_id=run_id)
            patterns_learned = await self.learner.learn(scope_id=learn_scope, now=current)

            generate_scope = self.store.open_scope("Generate", parent_id=run_id)
            start_date, end_date = tracking_window(current, settings.tracking_window_days)
            rows = await self.metrics.query_all(self.site_url, start_date, end_date)
            candidates = select_candidates(rows)
            candidates = [
                replace(c, previous_failures=self.meta_file.failure_reasons(page_path(c.url)))
                for c in candidates
            ]
            if self.fetch_page is not None and candidates:
                candidates = await enrich_candidates(candidates, self.fetch_page)

            batch = await self.generator.generate(
                candidates,
                scope_id=generate_scope,
                on_outcome=lambda outcome: self.meta_file.record(outcome, run_id),
            )
        except Exception:
            logger.exception("Flywheel cycle aborted", extra={"run_id": run_id})
            try:
                await self.store.flush()
            except Exception:
                logger.exception("Outcome flush failed after cycle error", extra={"run_id": run_id})
            raise

        all_failed = not batch.results and bool(batch.failures)
        status: RunCategory = "Run Failed" if all_failed else "Run Complete"
        self.store.record(
            run_id,
            status,
            {
                "generated": len(batch.results),
                "generationFailed": len(batch.failures),
                "tracked": tracking.tracked,
                "highPerformers": tracking.high_performers,
                "patternsLearned": patterns_learned or 0,
            },
        )
        await self.store.flush()

        summary = CycleSummary(
            run_id=run_id,
            status=status,
            tracked=tracking.tracked,
            high_performers=tracking.high_performers,
            patterns_learned=patterns_learned,
            candidates=len(candidates),
            generated=len(batch.results),
            failed=len(batch.failures),
        )
        logger.info(
            "Flywheel cycle finished",
            extra={
                "run_id": run_id,
                "status": status,
                "tracked": summary.tracked,
                "patterns_learned": summary.patterns_learned,
                "generated": summary.generated,
                "failed": summary.failed,
            },
        )
        return summary
