"""Domain types shared by the generation, tracking, and learning services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from metagen.integrations.outcome_store import AttemptAttributes, TrackingCategory


@dataclass(slots=True)
class Candidate:
    """A page queued for generation, with its baseline metrics.

    ``previous_failures`` holds rejection reasons from earlier runs that
    failed on the same page.
    """

    url: str
    ctr: float
    impressions: int
    current_title: str | None = None
    current_description: str | None = None
    content: str | None = None
    previous_failures: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Attempt:
    """One rejected generation attempt; attempt 0 marks a transport error."""

    attempt: int
    reason: str
    title: str | None = None
    description: str | None = None

    def to_dict(self) -> AttemptAttributes:
        return {"attempt": self.attempt, "reason": self.reason}


@dataclass(slots=True)
class GenerationSuccess:
    """Accepted title/description for a candidate."""

    url: str
    title: str
    description: str
    generated_at: datetime
    baseline_ctr: float
    baseline_impressions: int
    attempts: int = 1
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class GenerationFailure:
    """Candidate that exhausted its attempts or hit a transport error."""

    url: str
    attempts: int
    last_reason: str
    history: list[Attempt]
    failed_at: datetime


@dataclass(slots=True)
class GenerationBatch:
    """Results and failures of one generator run, kept separate."""

    results: list[GenerationSuccess] = field(default_factory=list)
    failures: list[GenerationFailure] = field(default_factory=list)


@dataclass(slots=True)
class TrackedRecord:
    """A prior success awaiting performance classification."""

    path: str
    title: str
    description: str
    run_id: str
    generated_at: datetime
    baseline_ctr: float | None = None
    baseline_impressions: int | None = None


@dataclass(slots=True, frozen=True)
class ClassifiedOutcome:
    """Tracker verdict for one record, with the metrics behind it."""

    path: str
    category: TrackingCategory
    current_ctr: float | None
    baseline_ctr: float | None
    improvement: float | None
    impressions: int | None
    reason: str | None = None
