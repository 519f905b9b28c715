"""Pattern analyst agent: mines tracked outcomes for CTR patterns."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from metagen.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)


class LearnedPattern(BaseModel):
    """A phrasing pattern correlated with click-through changes."""

    description: str
    example: str
    impact: float = Field(description="CTR multiplier, e.g. 2.1")
    confidence: str = Field(description="high, medium, or low")


class PatternAnalysisInput(BaseModel):
    """Input for the pattern analyst."""

    high_performers: list[dict[str, Any]] = Field(default_factory=list)
    low_performers: list[dict[str, Any]] = Field(default_factory=list)
    generation_failures: list[dict[str, Any]] = Field(default_factory=list)
    max_examples: int = 10


class PatternAnalysisOutput(BaseModel):
    """Extracted patterns and prompt improvement instructions."""

    patterns: list[LearnedPattern] = Field(default_factory=list)
    improvements: str
    failure_insights: list[str] = Field(default_factory=list)


class PatternAnalystAgent(BaseAgent[PatternAnalysisInput, PatternAnalysisOutput]):
    """Compare high and low performers and explain generation failures."""

    model_tier = "reasoning"
    temperature = 0.3

    @property
    def system_prompt(self) -> str:
        return """You analyze meta titles and descriptions against their measured click-through rates.

Rules:
1. Only report patterns supported by the examples you are given.
2. Patterns must be concrete: word choice, structure, or elements a writer can reuse.
3. Impact is your estimate of the CTR multiplier the pattern is associated with.
4. Improvements must be specific edits to a generation prompt, not general advice."""

    @property
    def output_type(self) -> type[PatternAnalysisOutput]:
        return PatternAnalysisOutput

    def _build_prompt(self, input_data: PatternAnalysisInput) -> str:
        cap = input_data.max_examples
        failures = input_data.generation_failures
        logger.info(
            "Building pattern analysis prompt",
            extra={
                "high_performers": len(input_data.high_performers),
                "low_performers": len(input_data.low_performers),
                "generation_failures": len(failures),
                "max_examples": cap,
            },
        )

        sections = [
            "Analyze these meta descriptions and identify patterns that correlate with high CTR.",
            "",
            "HIGH PERFORMERS (20%+ CTR increase):",
            json.dumps(input_data.high_performers[:cap], indent=2, ensure_ascii=True),
            "",
            "LOW PERFORMERS (no improvement or decline):",
            json.dumps(input_data.low_performers[:cap], indent=2, ensure_ascii=True),
        ]

        if failures:
            sections.extend([
                "",
                "GENERATION FAILURES (couldn't pass validation after multiple retries):",
                json.dumps(failures[:cap], indent=2, ensure_ascii=True),
                "",
                "Also analyze why generation fails for these pages and suggest prompt "
                "improvements to handle them.",
            ])

        goals = [
            "1. Common patterns in high performers (word choice, structure, elements)",
            "2. Common mistakes in low performers",
            "3. Specific actionable improvements to the generation prompt",
        ]
        if failures:
            goals.append("4. Why generation fails for certain page types and how to fix it")

        sections.extend(["", "Identify:", *goals])
        return "\n".join(sections)
