"""Outcome store integration (WarpMetrics) for audit events and outcome queries.

Every phase reports what happened to each page as a named outcome scoped to a
run or phase group. The learner reads those outcomes back, one category at a
time, to mine patterns.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol, TypedDict

import httpx

from metagen.config import settings
from metagen.core.exceptions import APIKeyMissingError, ExternalAPIError, RateLimitExceededError

logger = logging.getLogger(__name__)

ValidationCategory = Literal["Length Passed", "Length Failed", "Quality Passed", "Quality Failed"]
GenerationCategory = Literal["Generated", "Generation Failed", "Generation Error"]
TrackingCategory = Literal["High CTR", "Improved", "No Improvement", "Insufficient Data"]
LearningCategory = Literal["Insufficient Data", "Patterns Learned"]
RunCategory = Literal["Run Complete", "Run Failed"]

OutcomeCategory = (
    ValidationCategory | GenerationCategory | TrackingCategory | LearningCategory | RunCategory
)

HIGH_CTR: TrackingCategory = "High CTR"
IMPROVED: TrackingCategory = "Improved"
NO_IMPROVEMENT: TrackingCategory = "No Improvement"
INSUFFICIENT_DATA: TrackingCategory = "Insufficient Data"
GENERATION_FAILED: GenerationCategory = "Generation Failed"


class ClassifiedPageAttributes(TypedDict):
    """Written by the tracker for High CTR, Improved and No Improvement; read by the learner."""

    page: str
    title: str
    description: str
    ctr: float
    baselineCTR: float
    improvement: str
    impressions: int
    generationRunId: str


class InsufficientPageDataAttributes(TypedDict):
    page: str
    reason: str
    impressions: int | None
    generationRunId: str


class AttemptAttributes(TypedDict):
    attempt: int
    reason: str


class GenerationFailedAttributes(TypedDict):
    page: str
    attempts: int
    lastReason: str
    history: list[AttemptAttributes]


@dataclass(slots=True)
class OutcomeRecord:
    """One outcome read back from the store."""

    id: str
    category: str
    attributes: dict[str, Any] = field(default_factory=dict)
    recorded_at: datetime | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "OutcomeRecord":
        recorded_at: datetime | None = None
        raw_timestamp = payload.get("timestamp")
        if isinstance(raw_timestamp, str) and raw_timestamp:
            try:
                recorded_at = datetime.fromisoformat(raw_timestamp.replace("Z", "+00:00"))
            except ValueError:
                recorded_at = None
        opts = payload.get("opts")
        return cls(
            id=str(payload.get("id", "")),
            category=str(payload.get("name", "")),
            attributes=dict(opts) if isinstance(opts, dict) else {},
            recorded_at=recorded_at,
        )


@dataclass(slots=True)
class OutcomePage:
    """One page of an outcome query."""

    records: list[OutcomeRecord]
    has_more: bool


class OutcomeStore(Protocol):
    """Audit sink and outcome query capability."""

    def open_scope(
        self,
        name: str,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> str:
        """Open a run or phase scope and return its id."""

    def record(
        self,
        scope_id: str,
        category: OutcomeCategory,
        attributes: Mapping[str, Any],
    ) -> str:
        """Record one outcome under a scope and return its id."""

    async def flush(self) -> None:
        """Deliver buffered events."""

    async def query_by_category(
        self,
        category: OutcomeCategory,
        since: datetime,
        *,
        limit: int,
        offset: int,
    ) -> OutcomePage:
        """Fetch one page of outcomes of a category recorded since a date."""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class WarpMetricsClient:
    """Client for the WarpMetrics outcome API.

    Scopes and outcomes are buffered in-process and delivered by ``flush``.
    Delivery is at-least-once: a failed flush keeps the buffer for the next try.
    """

    API_NAME = "WarpMetrics"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key or settings.warpmetrics_api_key
        self.base_url = (base_url or settings.warpmetrics_api_base_url).rstrip("/")
        self.timeout = timeout or settings.warpmetrics_timeout
        self._client: httpx.AsyncClient | None = None
        self._buffer: list[dict[str, Any]] = []

        if not self.api_key:
            raise APIKeyMissingError(self.API_NAME)

    async def __aenter__(self) -> "WarpMetricsClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    @property
    def pending_events(self) -> int:
        return len(self._buffer)

    def open_scope(
        self,
        name: str,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> str:
        scope_id = uuid.uuid4().hex
        self._buffer.append(
            {
                "type": "scope",
                "id": scope_id,
                "name": name,
                "parentId": parent_id,
                "opts": attributes or {},
                "timestamp": _utcnow_iso(),
            }
        )
        return scope_id

    def record(
        self,
        scope_id: str,
        category: OutcomeCategory,
        attributes: Mapping[str, Any],
    ) -> str:
        outcome_id = uuid.uuid4().hex
        self._buffer.append(
            {
                "type": "outcome",
                "id": outcome_id,
                "scopeId": scope_id,
                "name": category,
                "opts": dict(attributes),
                "timestamp": _utcnow_iso(),
            }
        )
        return outcome_id

    async def flush(self) -> None:
        """Post all buffered events in one request."""
        if not self._buffer:
            return

        events = list(self._buffer)
        logger.info("Flushing outcome events", extra={"event_count": len(events)})
        await self._request("POST", "events", json={"events": events})
        del self._buffer[: len(events)]

    async def query_by_category(
        self,
        category: OutcomeCategory,
        since: datetime,
        *,
        limit: int,
        offset: int,
    ) -> OutcomePage:
        params = {
            "name": category,
            "from": since.isoformat(),
            "limit": str(limit),
            "offset": str(offset),
        }
        body = await self._request("GET", "outcomes", params=params)
        data = body.get("data") if isinstance(body, dict) else None
        pagination = body.get("pagination") if isinstance(body, dict) else None
        records = [
            OutcomeRecord.from_dict(item)
            for item in (data if isinstance(data, list) else [])
            if isinstance(item, dict)
        ]
        has_more = bool(pagination.get("hasMore")) if isinstance(pagination, dict) else False
        return OutcomePage(records=records, has_more=has_more)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = await self.client.request(method, url, params=params, json=json)

            if response.status_code == 429:
                logger.warning("WarpMetrics rate limit hit", extra={"endpoint": endpoint})
                raise RateLimitExceededError(self.API_NAME)

            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()

        except httpx.HTTPError as e:
            logger.warning(
                "WarpMetrics HTTP error",
                extra={"endpoint": endpoint, "method": method, "error": str(e)},
            )
            raise ExternalAPIError(self.API_NAME, str(e)) from e


class InMemoryOutcomeStore:
    """Process-local outcome store for dry runs and tests."""

    def __init__(self) -> None:
        self.scopes: dict[str, dict[str, Any]] = {}
        self.outcomes: list[dict[str, Any]] = []
        self.flush_count = 0

    def open_scope(
        self,
        name: str,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> str:
        scope_id = uuid.uuid4().hex
        self.scopes[scope_id] = {
            "name": name,
            "parent_id": parent_id,
            "attributes": dict(attributes or {}),
        }
        return scope_id

    def record(
        self,
        scope_id: str,
        category: OutcomeCategory,
        attributes: Mapping[str, Any],
    ) -> str:
        outcome_id = uuid.uuid4().hex
        self.outcomes.append(
            {
                "id": outcome_id,
                "scope_id": scope_id,
                "category": category,
                "attributes": dict(attributes),
                "recorded_at": datetime.now(timezone.utc),
            }
        )
        return outcome_id

    async def flush(self) -> None:
        self.flush_count += 1

    async def query_by_category(
        self,
        category: OutcomeCategory,
        since: datetime,
        *,
        limit: int,
        offset: int,
    ) -> OutcomePage:
        matching = [
            item
            for item in self.outcomes
            if item["category"] == category and item["recorded_at"] >= since
        ]
        window = matching[offset : offset + limit]
        return OutcomePage(
            records=[
                OutcomeRecord(
                    id=item["id"],
                    category=item["category"],
                    attributes=dict(item["attributes"]),
                    recorded_at=item["recorded_at"],
                )
                for item in window
            ],
            has_more=offset + limit < len(matching),
        )

    def categories(self, scope_id: str | None = None) -> list[str]:
        """Recorded categories in order, optionally limited to one scope."""
        return [
            item["category"]
            for item in self.outcomes
            if scope_id is None or item["scope_id"] == scope_id
        ]
