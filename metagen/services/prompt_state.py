"""Layered, persisted prompt state shared by the generator and the learner.

Three files live under one directory:

- ``base.md``: hard constraints, never written after creation.
- ``quality.md``: guidance replaced wholesale by the learner; the prior
  version is archived as ``quality-YYYY-MM-DD.md`` before each replace.
- ``patterns.json``: ``{"patterns": [...]}``, an append-only log.

The effective system prompt is base + quality + rendered patterns. There is no
locking; callers run full cycles one at a time.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from metagen.core.exceptions import PromptStateError
from metagen.services.prompt_defaults import BASE_PROMPT, QUALITY_PROMPT_INITIAL

logger = logging.getLogger(__name__)

PATTERNS_HEADER = "## LEARNED PATTERNS (from your high-CTR descriptions):"


class Pattern(BaseModel):
    """One learned pattern as persisted in patterns.json."""

    model_config = ConfigDict(populate_by_name=True)

    description: str
    example: str = ""
    impact: float
    confidence: str
    sample_size: int = Field(alias="sampleSize")
    added_at: datetime = Field(alias="addedAt")


class PromptState:
    """File-backed base/quality/patterns prompt layers."""

    def __init__(self, prompts_dir: str | Path) -> None:
        self.prompts_dir = Path(prompts_dir)
        self.base_path = self.prompts_dir / "base.md"
        self.quality_path = self.prompts_dir / "quality.md"
        self.patterns_path = self.prompts_dir / "patterns.json"

    def initialize(self) -> None:
        """Create any missing layer with its default content."""
        self.prompts_dir.mkdir(parents=True, exist_ok=True)

        created: list[str] = []
        if not self.base_path.exists():
            self.base_path.write_text(BASE_PROMPT, encoding="utf-8")
            created.append(self.base_path.name)
        if not self.quality_path.exists():
            self.quality_path.write_text(QUALITY_PROMPT_INITIAL, encoding="utf-8")
            created.append(self.quality_path.name)
        if not self.patterns_path.exists():
            self._write_patterns([])
            created.append(self.patterns_path.name)

        if created:
            logger.info(
                "Prompt state initialized",
                extra={"prompts_dir": str(self.prompts_dir), "created": created},
            )

    def get_base_prompt(self) -> str:
        self.initialize()
        return self.base_path.read_text(encoding="utf-8")

    def get_quality_prompt(self) -> str:
        self.initialize()
        return self.quality_path.read_text(encoding="utf-8")

    def get_patterns(self) -> list[Pattern]:
        self.initialize()
        return self._read_patterns()

    def get_system_prompt(self) -> str:
        """Render base + quality + learned patterns (patterns only when present)."""
        prompt = f"{self.get_base_prompt()}\n\n{self.get_quality_prompt()}"

        patterns = self._read_patterns()
        if patterns:
            lines = [
                f"- {p.description} ({p.impact:g}x CTR, {p.sample_size} samples)"
                for p in patterns
            ]
            prompt += f"\n\n{PATTERNS_HEADER}\n" + "\n".join(lines) + "\n"

        return prompt

    def update_quality_prompt(self, new_content: str, *, now: datetime | None = None) -> Path:
        """Archive the current quality layer verbatim, then replace it.

        Returns the backup path. A second update on the same day gets a
        numbered suffix so no archived version is overwritten.
        """
        self.initialize()
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
        backup_path = self.prompts_dir / f"quality-{stamp}.md"
        suffix = 2
        while backup_path.exists():
            backup_path = self.prompts_dir / f"quality-{stamp}-{suffix}.md"
            suffix += 1

        old_content = self.quality_path.read_text(encoding="utf-8")
        backup_path.write_text(old_content, encoding="utf-8")
        self.quality_path.write_text(new_content, encoding="utf-8")

        logger.info(
            "Quality prompt updated",
            extra={
                "backup_path": str(backup_path),
                "old_length": len(old_content),
                "new_length": len(new_content),
            },
        )
        return backup_path

    def add_pattern(
        self,
        *,
        description: str,
        example: str,
        impact: float,
        confidence: str,
        sample_size: int,
        now: datetime | None = None,
    ) -> Pattern:
        """Append one pattern stamped with sample size and time."""
        self.initialize()
        pattern = Pattern(
            description=description,
            example=example,
            impact=impact,
            confidence=confidence,
            sample_size=sample_size,
            added_at=now or datetime.now(timezone.utc),
        )
        patterns = self._read_patterns()
        patterns.append(pattern)
        self._write_patterns(patterns)
        return pattern

    def _read_patterns(self) -> list[Pattern]:
        try:
            payload = json.loads(self.patterns_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PromptStateError(str(self.patterns_path), str(exc)) from exc

        raw_patterns = payload.get("patterns") if isinstance(payload, dict) else None
        if not isinstance(raw_patterns, list):
            raise PromptStateError(str(self.patterns_path), "expected a 'patterns' list")

        try:
            return [Pattern.model_validate(item) for item in raw_patterns]
        except ValidationError as exc:
            raise PromptStateError(str(self.patterns_path), str(exc)) from exc

    def _write_patterns(self, patterns: list[Pattern]) -> None:
        payload = {
            "patterns": [p.model_dump(mode="json", by_alias=True) for p in patterns],
        }
        self.patterns_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
