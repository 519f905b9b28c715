"""Ordered validator chain for generated titles and descriptions.

Validators run in order and the first rejection stops the chain, so the LLM
quality check never runs on structurally invalid output. Each validator
records its own audit outcome scoped to the page being processed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from metagen.agents.meta_writer import GeneratedText
from metagen.agents.quality_scorer import MetaQualityScorerAgent, QualityScorerInput
from metagen.config import settings
from metagen.integrations.outcome_store import OutcomeStore
from metagen.services.types import Candidate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ValidationResult:
    """Verdict of one validator, or of the whole chain."""

    passed: bool
    reason: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ValidationContext:
    """Where validators report, and which attempt is being checked."""

    store: OutcomeStore
    scope_id: str
    attempt: int = 1


class Validator(Protocol):
    """Capability interface for one link of the chain."""

    async def validate(
        self,
        generated: GeneratedText,
        candidate: Candidate,
        context: ValidationContext,
    ) -> ValidationResult:
        """Accept or reject a generated snippet."""


class LengthValidator:
    """Description length must fall in the closed interval [min_length, max_length]."""

    def __init__(self, min_length: int | None = None, max_length: int | None = None) -> None:
        self.min_length = settings.description_min_length if min_length is None else min_length
        self.max_length = settings.description_max_length if max_length is None else max_length

    async def validate(
        self,
        generated: GeneratedText,
        candidate: Candidate,
        context: ValidationContext,
    ) -> ValidationResult:
        length = len(generated.description)

        if length < self.min_length or length > self.max_length:
            context.store.record(
                context.scope_id,
                "Length Failed",
                {
                    "page": candidate.url,
                    "length": length,
                    "min": self.min_length,
                    "max": self.max_length,
                    "attempt": context.attempt,
                },
            )
            return ValidationResult(
                passed=False,
                reason=(
                    f"Description is {length} chars, must be "
                    f"{self.min_length}-{self.max_length}"
                ),
            )

        context.store.record(
            context.scope_id,
            "Length Passed",
            {"page": candidate.url, "length": length, "attempt": context.attempt},
        )
        return ValidationResult(passed=True)


class QualityValidator:
    """LLM rubric score must reach the acceptance threshold."""

    def __init__(
        self,
        threshold: float | None = None,
        scorer: MetaQualityScorerAgent | None = None,
    ) -> None:
        self.threshold = settings.quality_threshold if threshold is None else threshold
        self.scorer = scorer or MetaQualityScorerAgent()

    async def validate(
        self,
        generated: GeneratedText,
        candidate: Candidate,
        context: ValidationContext,
    ) -> ValidationResult:
        result = await self.scorer.run(
            QualityScorerInput(
                url=candidate.url,
                current_title=candidate.current_title,
                content=candidate.content,
                title=generated.title,
                description=generated.description,
            )
        )
        score = result.score
        feedback = result.feedback

        if score < self.threshold:
            context.store.record(
                context.scope_id,
                "Quality Failed",
                {
                    "page": candidate.url,
                    "score": score,
                    "threshold": self.threshold,
                    "feedback": feedback,
                    "attempt": context.attempt,
                },
            )
            return ValidationResult(
                passed=False,
                reason=f"Quality score {score:g}/10 (needs {self.threshold:g}+): {feedback}",
            )

        context.store.record(
            context.scope_id,
            "Quality Passed",
            {
                "page": candidate.url,
                "score": score,
                "feedback": feedback,
                "attempt": context.attempt,
            },
        )
        return ValidationResult(
            passed=True,
            meta={"qualityScore": score, "qualityFeedback": feedback},
        )


def default_validators() -> list[Validator]:
    """Length check first, then the LLM quality score."""
    return [LengthValidator(), QualityValidator()]


async def run_validator_chain(
    validators: Sequence[Validator],
    generated: GeneratedText,
    candidate: Candidate,
    context: ValidationContext,
) -> ValidationResult:
    """Run validators in order; stop at the first rejection.

    On success, every validator's meta is merged, later keys overwriting
    earlier ones. Meta from a failing chain is discarded.
    """
    merged_meta: dict[str, Any] = {}
    for validator in validators:
        result = await validator.validate(generated, candidate, context)
        if not result.passed:
            logger.info(
                "Validation rejected candidate",
                extra={
                    "page": candidate.url,
                    "validator": type(validator).__name__,
                    "attempt": context.attempt,
                    "reason": result.reason,
                },
            )
            return ValidationResult(passed=False, reason=result.reason)
        merged_meta.update(result.meta)

    return ValidationResult(passed=True, meta=merged_meta)
