"""Mine classified outcomes into learned patterns and updated quality guidance."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, cast

from metagen.agents.pattern_analyst import PatternAnalysisInput, PatternAnalystAgent
from metagen.agents.quality_rewriter import QualityGuidelinesRewriterAgent, QualityRewriteInput
from metagen.config import settings
from metagen.integrations.outcome_store import (
    GENERATION_FAILED,
    HIGH_CTR,
    NO_IMPROVEMENT,
    ClassifiedPageAttributes,
    GenerationFailedAttributes,
    OutcomeCategory,
    OutcomeRecord,
    OutcomeStore,
)
from metagen.services.prompt_state import PromptState

logger = logging.getLogger(__name__)


class PatternLearningService:
    """Turn tracked high/low performers and generation failures into prompt changes.

    Runs only when the window holds enough high performers; below the floor it
    records Insufficient Data and leaves the prompt state untouched. Store
    and LLM errors propagate to the caller.
    """

    def __init__(
        self,
        prompt_state: PromptState,
        store: OutcomeStore,
        *,
        window_days: int | None = None,
        min_high_performers: int | None = None,
        max_examples: int | None = None,
        page_size: int | None = None,
    ) -> None:
        self.prompt_state = prompt_state
        self.store = store
        self.window_days = window_days or settings.learning_window_days
        self.min_high_performers = (
            settings.learning_min_high_performers
            if min_high_performers is None
            else min_high_performers
        )
        self.max_examples = max_examples or settings.learning_max_examples
        self.page_size = max(1, page_size or settings.learning_page_size)

    async def learn(self, *, scope_id: str, now: datetime | None = None) -> int | None:
        """Return the number of patterns learned, or None below the data floor."""
        since = (now or datetime.now(timezone.utc)) - timedelta(days=self.window_days)

        high_records, low_records, failure_records = await asyncio.gather(
            self.fetch_all(HIGH_CTR, since),
            self.fetch_all(NO_IMPROVEMENT, since),
            self.fetch_all(GENERATION_FAILED, since),
        )

        high_performers = [
            self._performer(record, include_improvement=True)
            for record in high_records
            if record.attributes.get("description")
        ]
        low_performers = [
            self._performer(record, include_improvement=False)
            for record in low_records
            if record.attributes.get("description")
        ]
        generation_failures = [
            self._failure(record) for record in failure_records if record.attributes.get("lastReason")
        ]

        if len(high_performers) < self.min_high_performers:
            logger.info(
                "Not enough high performers to learn from",
                extra={
                    "high_performers": len(high_performers),
                    "needed": self.min_high_performers,
                },
            )
            self.store.record(
                scope_id,
                "Insufficient Data",
                {"highPerformers": len(high_performers), "needed": self.min_high_performers},
            )
            return None

        analyst = PatternAnalystAgent()
        analysis = await analyst.run(
            PatternAnalysisInput(
                high_performers=high_performers,
                low_performers=low_performers,
                generation_failures=generation_failures,
                max_examples=self.max_examples,
            )
        )

        sample_size = len(high_performers)
        for pattern in analysis.patterns:
            self.prompt_state.add_pattern(
                description=pattern.description,
                example=pattern.example,
                impact=pattern.impact,
                confidence=pattern.confidence,
                sample_size=sample_size,
            )

        rewriter = QualityGuidelinesRewriterAgent()
        rewrite = await rewriter.run(
            QualityRewriteInput(
                current_quality=self.prompt_state.get_quality_prompt(),
                improvements=analysis.improvements,
                failure_insights=analysis.failure_insights,
            )
        )
        self.prompt_state.update_quality_prompt(rewrite.content)

        self.store.record(
            scope_id,
            "Patterns Learned",
            {
                "count": len(analysis.patterns),
                "patterns": [pattern.description for pattern in analysis.patterns],
                "failureInsights": analysis.failure_insights,
                "highPerformers": len(high_performers),
                "lowPerformers": len(low_performers),
                "generationFailures": len(generation_failures),
            },
        )
        logger.info(
            "Patterns learned",
            extra={
                "patterns": len(analysis.patterns),
                "high_performers": len(high_performers),
                "low_performers": len(low_performers),
                "generation_failures": len(generation_failures),
            },
        )
        return len(analysis.patterns)

    async def fetch_all(self, category: OutcomeCategory, since: datetime) -> list[OutcomeRecord]:
        """Follow pagination until the store reports no more pages."""
        records: list[OutcomeRecord] = []
        offset = 0
        while True:
            page = await self.store.query_by_category(
                category,
                since,
                limit=self.page_size,
                offset=offset,
            )
            records.extend(page.records)
            if not page.has_more:
                break
            offset += self.page_size

        logger.info(
            "Outcomes fetched",
            extra={"category": category, "count": len(records), "pages": offset // self.page_size + 1},
        )
        return records

    def _performer(self, record: OutcomeRecord, *, include_improvement: bool) -> dict[str, Any]:
        # Older outcomes can lack fields
        attrs = cast(ClassifiedPageAttributes, record.attributes)
        performer: dict[str, Any] = {
            "page": attrs.get("page"),
            "title": attrs.get("title"),
            "description": attrs.get("description"),
            "ctr": attrs.get("ctr"),
            "baselineCTR": attrs.get("baselineCTR"),
        }
        if include_improvement:
            performer["improvement"] = attrs.get("improvement")
        return performer

    def _failure(self, record: OutcomeRecord) -> dict[str, Any]:
        attrs = cast(GenerationFailedAttributes, record.attributes)
        return {
            "page": attrs.get("page"),
            "attempts": attrs.get("attempts"),
            "lastReason": attrs.get("lastReason"),
            "history": attrs.get("history"),
        }
