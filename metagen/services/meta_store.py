"""Batch output artifact: page path -> generated snippet or failure record."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from metagen.services.types import GenerationFailure, GenerationSuccess, TrackedRecord

logger = logging.getLogger(__name__)


def page_path(url: str) -> str:
    """Key used in the artifact for a page URL."""
    return urlparse(url).path or "/"


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def success_entry(result: GenerationSuccess, run_id: str) -> dict[str, Any]:
    return {
        "title": result.title,
        "description": result.description,
        "generatedAt": result.generated_at.isoformat(),
        "runId": run_id,
        "baseline": {
            "ctr": result.baseline_ctr,
            "impressions": result.baseline_impressions,
        },
    }


def failure_entry(failure: GenerationFailure, run_id: str) -> dict[str, Any]:
    return {
        "failed": True,
        "failedAt": failure.failed_at.isoformat(),
        "runId": run_id,
        "attempts": failure.attempts,
        "lastReason": failure.last_reason,
        "failures": [item.to_dict() for item in failure.history],
    }


class MetaFile:
    """JSON mapping shared between one cycle's generator and the next cycle's tracker."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.entries: dict[str, dict[str, Any]] = {}

    def load(self) -> dict[str, dict[str, Any]]:
        """Read the artifact; a missing file is an empty mapping."""
        if not self.path.exists():
            self.entries = {}
            return self.entries

        payload = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"{self.path} must contain a JSON object")
        self.entries = {
            str(key): value for key, value in payload.items() if isinstance(value, dict)
        }
        return self.entries

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.entries, indent=2) + "\n", encoding="utf-8")

    def apply(self, outcome: GenerationSuccess | GenerationFailure, run_id: str) -> None:
        """Merge one terminal outcome.

        A failure never replaces an existing success for the same page: the
        published snippet is still live and still worth tracking.
        """
        key = page_path(outcome.url)
        if isinstance(outcome, GenerationSuccess):
            self.entries[key] = success_entry(outcome, run_id)
            return

        existing = self.entries.get(key)
        if existing is not None and not existing.get("failed"):
            logger.info(
                "Keeping existing snippet despite generation failure",
                extra={"page": key, "run_id": run_id},
            )
            return
        self.entries[key] = failure_entry(outcome, run_id)

    def record(self, outcome: GenerationSuccess | GenerationFailure, run_id: str) -> None:
        """Merge one outcome and persist immediately."""
        self.apply(outcome, run_id)
        self.save()

    def failure_reasons(self, path: str) -> list[str]:
        """Rejection reasons of the failure entry stored for ``path``, if any."""
        entry = self.entries.get(path)
        if not entry or not entry.get("failed"):
            return []
        failures = entry.get("failures")
        reasons = [
            str(item["reason"])
            for item in (failures if isinstance(failures, list) else [])
            if isinstance(item, dict) and item.get("reason")
        ]
        return reasons or ([str(entry["lastReason"])] if entry.get("lastReason") else [])

    def tracked_records(self) -> list[TrackedRecord]:
        """Every success entry; failure records are never tracked."""
        records: list[TrackedRecord] = []

        for path, entry in self.entries.items():
            if entry.get("failed") or not entry.get("runId"):
                continue
            generated_at = _parse_timestamp(entry.get("generatedAt"))
            if generated_at is None:
                continue

            baseline = entry.get("baseline") if isinstance(entry.get("baseline"), dict) else {}
            baseline_ctr = baseline.get("ctr")
            baseline_impressions = baseline.get("impressions")
            records.append(
                TrackedRecord(
                    path=path,
                    title=str(entry.get("title") or ""),
                    description=str(entry.get("description") or ""),
                    run_id=str(entry["runId"]),
                    generated_at=generated_at,
                    baseline_ctr=float(baseline_ctr) if baseline_ctr is not None else None,
                    baseline_impressions=(
                        int(baseline_impressions) if baseline_impressions is not None else None
                    ),
                )
            )

        return records
